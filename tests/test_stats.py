import logging
import urllib.error
import urllib.request

import pytest

from l3afkit import stats


@pytest.fixture
def registry():
    return stats.Registry()


@pytest.fixture
def metrics(registry):
    return stats.create_metrics("host1", "l3afd", registry)


def test_add_counts_with_host_label(metrics):
    stats.add(2, metrics.bpf_start_count, "ratelimiting", "ingress", "eth0")
    stats.add(3, metrics.bpf_start_count, "ratelimiting", "ingress", "eth0")
    samples = metrics.bpf_start_count.samples()
    assert samples == [
        (
            {
                "host": "host1",
                "ebpf_program": "ratelimiting",
                "direction": "ingress",
                "interface_name": "eth0",
            },
            5.0,
        )
    ]


def test_counter_names_use_namespace(metrics):
    assert metrics.bpf_start_count.name == "l3afd_BPFStartCount"
    assert metrics.bpf_monitor_map.name == "l3afd_BPFMonitorMap"


def test_update_failed_count_rejects_ebpf_program_label(metrics, caplog):
    with caplog.at_level(logging.WARNING, logger="l3afkit.stats"):
        stats.add(1, metrics.bpf_update_failed_count, "p", "ingress", "eth0")
    assert metrics.bpf_update_failed_count.samples() == []
    assert "unable to fetch counter" in caplog.text


def test_add_with_missing_vector_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="l3afkit.stats"):
        stats.add(1, None, "p", "ingress", "eth0")
    assert "counter vector is nil" in caplog.text


def test_set_gauge_overwrites(metrics):
    stats.set_gauge(10, metrics.bpf_start_time, "p", "egress", "eth1")
    stats.set_gauge(20, metrics.bpf_start_time, "p", "egress", "eth1")
    [(labels, value)] = metrics.bpf_start_time.samples()
    assert value == 20.0
    assert labels["direction"] == "egress"


def test_set_value_and_with_version(metrics):
    stats.set_value(7, metrics.bpf_monitor_map, "p", "count_map", "eth0")
    stats.set_with_version(1, metrics.bpf_running, "p", "1.0", "ingress", "eth0")
    [(map_labels, map_value)] = metrics.bpf_monitor_map.samples()
    [(run_labels, run_value)] = metrics.bpf_running.samples()
    assert (map_labels["map_name"], map_value) == ("count_map", 7.0)
    assert (run_labels["version"], run_value) == ("1.0", 1.0)


def test_wrong_labels_for_gauge_leave_it_untouched(metrics):
    stats.set_gauge(1, metrics.bpf_running, "p", "ingress", "eth0")
    assert metrics.bpf_running.samples() == []


def test_counter_cannot_decrease(metrics):
    with pytest.raises(ValueError):
        stats.add(-1, metrics.bpf_stop_count, "p", "ingress", "eth0")


def test_duplicate_counter_registration_raises(registry, metrics):
    with pytest.raises(ValueError, match="duplicate"):
        stats.create_metrics("host1", "l3afd", registry)


def test_curry_with_errors():
    vec = stats.GaugeVec("g", "help", ["a", "b"])
    with pytest.raises(ValueError):
        vec.curry_with({"c": "x"})
    curried = vec.curry_with({"a": "x"})
    with pytest.raises(ValueError):
        curried.curry_with({"a": "y"})
    with pytest.raises(ValueError):
        curried.get_metric_with({"a": "x", "b": "y"})


def test_curried_views_share_storage():
    vec = stats.CounterVec("c", "help", ["host", "k"])
    one = vec.curry_with({"host": "one"})
    two = vec.curry_with({"host": "two"})
    one.get_metric_with({"k": "v"}).add(1)
    two.get_metric_with({"k": "v"}).add(4)
    assert [value for _, value in vec.samples()] == [1.0, 4.0]
    assert [value for _, value in two.samples()] == [4.0]


def test_invalid_label_name_rejected():
    with pytest.raises(ValueError):
        stats.CounterVec("c", "help", ["bad-name"])


def test_exposition_format(registry, metrics):
    stats.add(3, metrics.bpf_start_count, "p", "ingress", "eth0")
    text = registry.exposition()
    assert "# TYPE l3afd_BPFStartCount counter\n" in text
    assert "# HELP l3afd_BPFStartCount The count of network functions started\n" in text
    assert (
        'l3afd_BPFStartCount{host="host1",ebpf_program="p",direction="ingress",'
        'interface_name="eth0"} 3\n'
    ) in text
    assert "l3afd_BPFStopCount" not in text


def test_serve_metrics_endpoint(registry, metrics):
    stats.add(1, metrics.bpf_start_count, "p", "ingress", "eth0")
    server = stats.serve_metrics(registry, "127.0.0.1:0")
    try:
        port = server.server_address[1]
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics", timeout=5) as resp:
            body = resp.read().decode()
        assert body == registry.exposition()
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(f"http://127.0.0.1:{port}/other", timeout=5)
        assert info.value.code == 404
    finally:
        server.shutdown()
        server.server_close()


def test_serve_metrics_bad_address(registry):
    with pytest.raises(ValueError):
        stats.serve_metrics(registry, "localhost")