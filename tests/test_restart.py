import os

import pytest

from l3afkit import restart, stats
from l3afkit.models import L3AFAllHostData, Label, MetricVec


@pytest.fixture
def metrics():
    return stats.create_metrics("host1", "l3afd", stats.Registry())


def test_get_value_of_label_goodtest():
    labels = [Label(name="iface", value="fakeif0")]
    assert restart.get_value_of_label("iface", labels) == "fakeif0"


def test_get_value_of_label_missing():
    assert restart.get_value_of_label("iface", [Label(name="other", value="x")]) == ""


def test_vec_lookup_by_metric_name(metrics):
    assert restart.counter_vec_by_metric_name(metrics, "l3afd_BPFStartCount") is metrics.bpf_start_count
    assert restart.counter_vec_by_metric_name(metrics, "l3afd_BPFRunning") is None
    assert restart.gauge_vec_by_metric_name(metrics, "l3afd_BPFMonitorMap") is metrics.bpf_monitor_map
    assert restart.gauge_vec_by_metric_name(metrics, "l3afd_BPFStartCount") is None


def _labels(**values):
    return [Label(name=k, value=v) for k, v in values.items()]


def test_set_metrics_restores_each_kind(metrics):
    data = L3AFAllHostData(
        all_stats=[
            MetricVec(
                metric_name="l3afd_BPFStartCount",
                labels=_labels(ebpf_program="p", direction="ingress", interface_name="eth0"),
                value=4,
                type=0,
            ),
            MetricVec(
                metric_name="l3afd_BPFRunning",
                labels=_labels(ebpf_program="p", version="1.0", direction="ingress", interface_name="eth0"),
                value=1,
                type=1,
            ),
            MetricVec(
                metric_name="l3afd_BPFMonitorMap",
                labels=_labels(ebpf_program="p", map_name="m", interface_name="eth0"),
                value=9,
                type=1,
            ),
            MetricVec(
                metric_name="l3afd_BPFStartTime",
                labels=_labels(ebpf_program="p", direction="ingress", interface_name="eth0"),
                value=123,
                type=1,
            ),
        ]
    )
    restart.set_metrics(metrics, data)
    assert [v for _, v in metrics.bpf_start_count.samples()] == [4.0]
    assert [v for _, v in metrics.bpf_running.samples()] == [1.0]
    assert [l["map_name"] for l, _ in metrics.bpf_monitor_map.samples()] == ["m"]
    assert [v for _, v in metrics.bpf_start_time.samples()] == [123.0]


def test_set_metrics_ignores_unknown_names(metrics):
    data = L3AFAllHostData(
        all_stats=[MetricVec(metric_name="unknown", labels=_labels(ebpf_program="p"), value=1, type=0)]
    )
    restart.set_metrics(metrics, data)
    assert metrics.bpf_start_count.samples() == []
    assert metrics.bpf_stop_count.samples() == []


def test_symlink_round_trip(tmp_path):
    target = tmp_path / "target"
    target.write_text("x")
    link = tmp_path / "link"
    restart.add_symlink(str(target), str(link))
    assert restart.read_symlink(str(link)) == str(target)
    restart.remove_symlink(str(link))
    assert not os.path.lexists(link)


def test_symlink_errors(tmp_path):
    with pytest.raises(OSError):
        restart.read_symlink(str(tmp_path / "missing"))
    with pytest.raises(OSError):
        restart.remove_symlink(str(tmp_path / "missing"))


def _setup_layout(base, new_version):
    (base / "latest").mkdir()
    new_dir = base / new_version / "l3afd"
    new_dir.mkdir(parents=True)
    os.symlink(new_dir / "l3afd", base / "latest" / "l3afd")
    os.symlink(new_dir / "l3afd.cfg", base / "latest" / "l3afd.cfg")
    old_dir = base / "v1.0.0" / "l3afd"
    old_dir.mkdir(parents=True)
    return str(old_dir / "l3afd.cfg"), str(old_dir / "l3afd")


def test_roll_back_symlink(tmp_path):
    old_cfg, old_bin = _setup_layout(tmp_path, "v2.0.0")
    restart.roll_back_symlink(old_cfg, old_bin, "v1.0.0", "v2.0.0", str(tmp_path))
    assert os.readlink(tmp_path / "latest" / "l3afd") == old_bin
    assert os.readlink(tmp_path / "latest" / "l3afd.cfg") == old_cfg
    assert not (tmp_path / "v2.0.0").exists()


def test_roll_back_same_version_is_noop(tmp_path):
    old_cfg, old_bin = _setup_layout(tmp_path, "v2.0.0")
    restart.roll_back_symlink(old_cfg, old_bin, "v2.0.0", "v2.0.0", str(tmp_path))
    assert (tmp_path / "v2.0.0").is_dir()
    assert os.readlink(tmp_path / "latest" / "l3afd") != old_bin


def test_roll_back_missing_links(tmp_path):
    with pytest.raises(OSError, match="unable to remove symlink"):
        restart.roll_back_symlink("cfg", "bin", "v1.0.0", "v2.0.0", str(tmp_path))


def test_roll_back_malicious_path(tmp_path):
    old_cfg, old_bin = _setup_layout(tmp_path, "a..b")
    with pytest.raises(ValueError, match="malicious path"):
        restart.roll_back_symlink(old_cfg, old_bin, "v1.0.0", "a..b", str(tmp_path))
    assert (tmp_path / "a..b").is_dir()
    assert os.readlink(tmp_path / "latest" / "l3afd") == old_bin