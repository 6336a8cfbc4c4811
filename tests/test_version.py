import platform
import re

from l3afkit.version import BuildInfo


def test_short_version_plain():
    assert BuildInfo(version="2.1.0").short_version() == "2.1.0"


def test_short_version_with_suffix():
    assert BuildInfo(version="2.1.0", suffix_tag="beta").short_version() == "2.1.0-beta"


def test_zero_version_is_dev():
    assert BuildInfo(version="0.0.0", suffix_tag="beta").short_version() == "0.0.0-dev"


def test_default_version():
    assert BuildInfo().short_version() == "2.1.0"


def test_info_with_build_date_and_sha():
    text = BuildInfo(version="2.1.0", version_date="20240102030405", version_sha="abc123").info()
    lines = text.split("\n")
    assert lines[0] == "Version: 2.1.0"
    assert lines[1] == f"Python Version: {platform.python_version()}"
    assert lines[2] == "Build Date: built 2024-01-02T03:04:05Z"
    assert lines[3] == "Build SHA: abc123"


def test_info_without_sha_has_no_sha_line():
    text = BuildInfo(version_date="20240102030405").info()
    assert "Build SHA" not in text
    assert len(text.split("\n")) == 3


def test_info_falls_back_to_executable_mtime():
    text = BuildInfo(version_date="not-a-date").info()
    date_line = text.split("\n")[2]
    value = date_line[len("Build Date: "):]
    assert not value.startswith("built")
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d(Z|[+-]\d\d:\d\d)", value)