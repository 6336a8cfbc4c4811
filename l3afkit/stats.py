"""Prometheus-style metrics for eBPF program lifecycle events."""

from __future__ import annotations

import copy
import logging
import math
import re
import socket
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

log = logging.getLogger(__name__)

_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*\Z")
_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*\Z")

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class _Counter:
    """A monotonically increasing value."""

    def __init__(self):
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self):
        return self._value

    def inc(self):
        self.add(1.0)

    def add(self, value):
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += float(value)


class _Gauge:
    """A value that can go up and down."""

    def __init__(self):
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self):
        return self._value

    def set(self, value):
        with self._lock:
            self._value = float(value)

    def add(self, value):
        with self._lock:
            self._value += float(value)


@dataclass
class _Family:
    name: str
    help: str
    kind: str
    label_names: tuple
    child_type: type
    children: dict = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def snapshot(self):
        with self.lock:
            items = list(self.children.items())
        return sorted(items, key=lambda item: item[0])


class MetricVec:
    """A family of metrics partitioned by label values."""

    kind = "untyped"
    _child_type: type = _Gauge

    def __init__(self, name, help, label_names, namespace=""):
        full_name = f"{namespace}_{name}" if namespace else name
        if not _METRIC_NAME.match(full_name):
            raise ValueError(f"invalid metric name {full_name!r}")
        names = tuple(label_names)
        for label in names:
            if not _LABEL_NAME.match(label) or label.startswith("__"):
                raise ValueError(f"invalid label name {label!r}")
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate label names in {names!r}")
        self._family = _Family(full_name, help, self.kind, names, self._child_type)
        self._curried: dict[str, str] = {}

    @property
    def name(self):
        return self._family.name

    @property
    def help(self):
        return self._family.help

    @property
    def label_names(self):
        return self._family.label_names

    def curry_with(self, labels):
        """Return a view of this vector with some label values fixed."""
        for label in labels:
            if label not in self._family.label_names:
                raise ValueError(f"label name {label!r} missing in label names")
            if label in self._curried:
                raise ValueError(f"label name {label!r} is already curried")
        view = copy.copy(self)
        view._curried = {**self._curried, **{k: str(v) for k, v in labels.items()}}
        return view

    def get_metric_with(self, labels):
        """Return the metric for the given labels, creating it if needed."""
        expected = {n for n in self._family.label_names if n not in self._curried}
        if set(labels) != expected:
            raise ValueError(
                f"inconsistent label cardinality: expected {sorted(expected)}, "
                f"got {sorted(labels)}"
            )
        key = tuple(
            self._curried[n] if n in self._curried else str(labels[n])
            for n in self._family.label_names
        )
        family = self._family
        with family.lock:
            child = family.children.get(key)
            if child is None:
                child = family.children[key] = family.child_type()
        return child

    def samples(self):
        """Return (labels, value) pairs of the metrics visible through this view."""
        out = []
        for key, child in self._family.snapshot():
            labels = dict(zip(self._family.label_names, key))
            if all(labels[k] == v for k, v in self._curried.items()):
                out.append((labels, child.value))
        return out


class CounterVec(MetricVec):
    """A family of counters."""

    kind = "counter"
    _child_type = _Counter


class GaugeVec(MetricVec):
    """A family of gauges."""

    kind = "gauge"
    _child_type = _Gauge


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


class Registry:
    """A collection of metric families that can be rendered as text."""

    def __init__(self):
        self._families: dict[str, _Family] = {}
        self._lock = threading.Lock()

    def register(self, vec):
        """Add a metric vector; a second family with the same name is refused."""
        family = vec._family
        with self._lock:
            if family.name in self._families:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {family.name}"
                )
            self._families[family.name] = family

    def exposition(self):
        """Render every registered family in the text exposition format."""
        with self._lock:
            families = sorted(self._families.values(), key=lambda f: f.name)
        lines = []
        for family in families:
            items = family.snapshot()
            if not items:
                continue
            lines.append(f"# HELP {family.name} {_escape_help(family.help)}")
            lines.append(f"# TYPE {family.name} {family.kind}")
            for key, child in items:
                pairs = ",".join(
                    f'{name}="{_escape_label(value)}"'
                    for name, value in zip(family.label_names, key)
                )
                suffix = f"{{{pairs}}}" if pairs else ""
                lines.append(f"{family.name}{suffix} {_format_value(child.value)}")
        return "".join(line + "\n" for line in lines)


@dataclass
class Metrics:
    """The daemon's metric vectors, each curried with the host name."""

    bpf_start_count: CounterVec
    bpf_stop_count: CounterVec
    bpf_update_count: CounterVec
    bpf_update_failed_count: CounterVec
    bpf_running: GaugeVec
    bpf_start_time: GaugeVec
    bpf_monitor_map: GaugeVec


def create_metrics(hostname, daemon_name, registry):
    """Create and register the daemon's metric vectors."""
    host = {"host": hostname}

    def counter(name, help_text, labels):
        vec = CounterVec(name, help_text, ["host", *labels], namespace=daemon_name)
        registry.register(vec)
        return vec.curry_with(host)

    def gauge(name, help_text, labels):
        vec = GaugeVec(name, help_text, ["host", *labels], namespace=daemon_name)
        try:
            registry.register(vec)
        except ValueError as exc:
            log.warning("Failed to register %s metrics: %s", name, exc)
        return vec.curry_with(host)

    common = ["ebpf_program", "direction", "interface_name"]
    return Metrics(
        bpf_start_count=counter(
            "BPFStartCount", "The count of network functions started", common
        ),
        bpf_stop_count=counter(
            "BPFStopCount", "The count of network functions stopped", common
        ),
        bpf_update_count=counter(
            "BPFUpdateCount", "The count of network functions updated", common
        ),
        bpf_update_failed_count=counter(
            "BPFUpdateFailedCount",
            "The count of Failed eBPF programs updates",
            ["bpf_program", "direction", "interface_name"],
        ),
        bpf_running=gauge(
            "BPFRunning",
            "This value indicates network functions is running or not",
            ["ebpf_program", "version", "direction", "interface_name"],
        ),
        bpf_start_time=gauge(
            "BPFStartTime",
            "This value indicates start time of the network function since unix epoch in seconds",
            common,
        ),
        bpf_monitor_map=gauge(
            "BPFMonitorMap",
            "This value indicates network function monitor counters",
            ["ebpf_program", "map_name", "interface_name"],
        ),
    )


def _parse_address(metrics_addr: str):
    host, sep, port = metrics_addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {metrics_addr!r}")
    try:
        port_number = int(port) if port else 0
    except ValueError as exc:
        raise ValueError(f"invalid port in address {metrics_addr!r}") from exc
    if not 0 <= port_number <= 65535:
        raise ValueError(f"invalid port in address {metrics_addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port_number


class _IPv6Server(ThreadingHTTPServer):
    address_family = socket.AF_INET6


def serve_metrics(registry, metrics_addr):
    """Serve the registry at /metrics on a background thread; return the server."""
    host, port = _parse_address(metrics_addr)

    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path.split("?", 1)[0] != "/metrics":
                self.send_error(404)
                return
            body = registry.exposition().encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", CONTENT_TYPE)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            log.debug("metrics endpoint: " + format, *args)

    server_cls = _IPv6Server if ":" in host else ThreadingHTTPServer
    server = server_cls((host, port), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


def add(value, counter_vec: Optional[CounterVec], ebpf_program, direction, iface_name):
    """Add to the counter for a program, direction and interface."""
    if counter_vec is None:
        log.warning("Metrics: counter vector is nil and needs to be initialized before Incr")
        return
    try:
        counter = counter_vec.get_metric_with(
            {"ebpf_program": ebpf_program, "direction": direction, "interface_name": iface_name}
        )
    except ValueError:
        log.warning(
            "Metrics: unable to fetch counter with fields: ebpf_program: %s, direction: %s, "
            "interface_name: %s",
            ebpf_program,
            direction,
            iface_name,
        )
        return
    counter.add(value)


def set_gauge(value, gauge_vec: Optional[GaugeVec], ebpf_program, direction, iface_name):
    """Set the gauge for a program, direction and interface."""
    if gauge_vec is None:
        log.warning("Metrics: gauge vector is nil and needs to be initialized before Set")
        return
    try:
        gauge = gauge_vec.get_metric_with(
            {"ebpf_program": ebpf_program, "direction": direction, "interface_name": iface_name}
        )
    except ValueError:
        log.warning(
            "Metrics: unable to fetch gauge with fields: ebpf_program: %s, direction: %s, "
            "interface_name: %s",
            ebpf_program,
            direction,
            iface_name,
        )
        return
    gauge.set(value)


def set_value(value, gauge_vec: Optional[GaugeVec], ebpf_program, map_name, iface_name):
    """Set the gauge for a program, map and interface."""
    if gauge_vec is None:
        log.warning("Metrics: gauge vector is nil and needs to be initialized before SetValue")
        return
    try:
        gauge = gauge_vec.get_metric_with(
            {"ebpf_program": ebpf_program, "map_name": map_name, "interface_name": iface_name}
        )
    except ValueError:
        log.warning(
            "Metrics: unable to fetch gauge with fields: ebpf_program: %s, map_name: %s, "
            "interface_name: %s",
            ebpf_program,
            map_name,
            iface_name,
        )
        return
    gauge.set(value)


def set_with_version(
    value, gauge_vec: Optional[GaugeVec], ebpf_program, version, direction, iface_name
):
    """Set the gauge for a program version, direction and interface."""
    if gauge_vec is None:
        log.warning("Metrics: gauge vector is nil and needs to be initialized before Set")
        return
    try:
        gauge = gauge_vec.get_metric_with(
            {
                "ebpf_program": ebpf_program,
                "version": version,
                "direction": direction,
                "interface_name": iface_name,
            }
        )
    except ValueError:
        log.warning(
            "Metrics: unable to fetch gauge with fields: ebpf_program: %s, version: %s, "
            "direction: %s, interface_name: %s",
            ebpf_program,
            version,
            direction,
            iface_name,
        )
        return
    gauge.set(value)