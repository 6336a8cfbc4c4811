"""State restoration and version switching for a graceful restart."""

from __future__ import annotations

import logging
import os
import posixpath
import shutil

from . import stats

log = logging.getLogger(__name__)


def _join(*parts: str) -> str:
    joined = "/".join(p for p in parts if p)
    return posixpath.normpath(joined) if joined else ""


def _remove_all(path: str) -> None:
    if not os.path.lexists(path):
        return
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


def get_value_of_label(name, labels):
    """Return the value of the first label with the given name, or ""."""
    return next((label.value for label in labels if label.name == name), "")


def counter_vec_by_metric_name(metrics, name):
    """Return the counter vector for a saved metric name, or None."""
    return {
        "l3afd_BPFUpdateCount": metrics.bpf_update_count,
        "l3afd_BPFStartCount": metrics.bpf_start_count,
        "l3afd_BPFStopCount": metrics.bpf_stop_count,
        "l3afd_BPFUpdateFailedCount": metrics.bpf_update_failed_count,
    }.get(name)


def gauge_vec_by_metric_name(metrics, name):
    """Return the gauge vector for a saved metric name, or None."""
    return {
        "l3afd_BPFRunning": metrics.bpf_running,
        "l3afd_BPFStartTime": metrics.bpf_start_time,
        "l3afd_BPFMonitorMap": metrics.bpf_monitor_map,
    }.get(name)


def set_metrics(metrics, data):
    """Restore every saved metric sample of a host into the metric vectors."""
    for sample in data.all_stats:
        labels = sample.labels

        def label(name):
            return get_value_of_label(name, labels)

        if sample.type == 0:
            stats.add(
                sample.value,
                counter_vec_by_metric_name(metrics, sample.metric_name),
                label("ebpf_program"),
                label("direction"),
                label("interface_name"),
            )
            continue
        gauge = gauge_vec_by_metric_name(metrics, sample.metric_name)
        if label("version"):
            stats.set_with_version(
                sample.value,
                gauge,
                label("ebpf_program"),
                label("version"),
                label("direction"),
                label("interface_name"),
            )
        elif label("map_name"):
            stats.set_value(
                sample.value,
                gauge,
                label("ebpf_program"),
                label("map_name"),
                label("interface_name"),
            )
        else:
            stats.set_gauge(
                sample.value,
                gauge,
                label("ebpf_program"),
                label("direction"),
                label("interface_name"),
            )


def add_symlink(source_path, symlink):
    """Create symlink pointing at source_path."""
    os.symlink(source_path, symlink)


def remove_symlink(symlink):
    """Remove a symlink (or a file or empty directory) at the given path."""
    if os.path.isdir(symlink) and not os.path.islink(symlink):
        os.rmdir(symlink)
    else:
        os.remove(symlink)


def read_symlink(symlink):
    """Return the target of a symlink."""
    return os.readlink(symlink)


def roll_back_symlink(old_cfg_path, old_bin_path, old_version, new_version, base_path):
    """Point the latest binary and config links back at the old version.

    The directory of the new version is then removed.
    """
    if old_version == new_version:
        return

    latest_bin = _join(base_path, "latest/l3afd")
    latest_cfg = _join(base_path, "latest/l3afd.cfg")
    for link in (latest_bin, latest_cfg):
        try:
            remove_symlink(link)
        except OSError as exc:
            raise OSError(f"unable to remove symlink {exc}") from exc

    for target, link in ((old_bin_path, latest_bin), (old_cfg_path, latest_cfg)):
        try:
            add_symlink(target, link)
        except OSError as exc:
            raise OSError(f"unable to add symlink {exc}") from exc

    new_version_path = _join(base_path, new_version)
    if ".." in new_version_path:
        raise ValueError("malicious path")
    try:
        _remove_all(new_version_path)
    except OSError as exc:
        raise OSError(f"error while deleting directory: {exc}") from exc