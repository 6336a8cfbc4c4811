import pytest

from l3afkit.routes import Route, Router, new_router


def list_configs():
    return "all"


def iface_config():
    return "one"


def add_configs():
    return "add"


@pytest.fixture
def router():
    return new_router(
        [
            Route("GET", "/l3af/configs/v1", list_configs),
            Route("GET", "/l3af/configs/v1/{iface}", iface_config),
            Route("POST", "/l3af/configs/v1/add", add_configs),
        ]
    )


def test_static_route(router):
    assert router.resolve("GET", "/l3af/configs/v1") == (list_configs, {})


def test_param_route(router):
    handler, params = router.resolve("GET", "/l3af/configs/v1/fakeif0")
    assert handler is iface_config
    assert params == {"iface": "fakeif0"}


def test_static_wins_over_param_for_other_method(router):
    assert router.resolve("POST", "/l3af/configs/v1/add") == (add_configs, {})
    handler, params = router.resolve("GET", "/l3af/configs/v1/add")
    assert handler is iface_config
    assert params == {"iface": "add"}


def test_method_is_case_insensitive(router):
    assert router.resolve("get", "/l3af/configs/v1") == (list_configs, {})


def test_no_match(router):
    assert router.resolve("DELETE", "/l3af/configs/v1") is None
    assert router.resolve("GET", "/l3af/configs/v1/a/b") is None


def test_regex_param_and_wildcard():
    router = new_router(
        [
            Route("GET", "/items/{id:[0-9]+}", iface_config),
            Route("GET", "/static/*", list_configs),
        ]
    )
    assert router.resolve("GET", "/items/42") == (iface_config, {"id": "42"})
    assert router.resolve("GET", "/items/abc") is None
    assert router.resolve("GET", "/static/css/site.css") == (list_configs, {"*": "css/site.css"})


def test_add_replaces_same_route():
    router = Router()
    router.add(Route("GET", "/x", list_configs))
    router.add(Route("GET", "/x", add_configs))
    assert router.resolve("GET", "/x") == (add_configs, {})
    assert len(router.routes) == 1


def test_invalid_patterns_raise():
    router = Router()
    with pytest.raises(ValueError):
        router.add(Route("GET", "no-slash", list_configs))
    with pytest.raises(ValueError):
        router.add(Route("GET", "/a/*/b", list_configs))