"""Data model for eBPF program configurations and restart state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

ENABLED = "enabled"
DISABLED = "disabled"

START_TYPE = "start"
STOP_TYPE = "stop"
UPDATE_TYPE = "update"

XDP_TYPE = "xdp"
TC_TYPE = "tc"

INGRESS_TYPE = "ingress"
EGRESS_TYPE = "egress"
XDP_INGRESS_TYPE = "xdpingress"
TC_MAP_PIN_PATH = "tc/globals"

KPROBE = "kprobe"
TRACEPOINT = "tracepoint"
KRETPROBE = "kretprobe"

HTTP_SCHEME = "http"
HTTPS_SCHEME = "https"
FILE_SCHEME = "file"
STATUS_FAILED = "Failed"
STATUS_READY = "Ready"

# Socket paths are the channel between an old and a new daemon during a
# graceful restart; they must stay stable across versions.
HOST_SOCK = "/tmp/l3afd.sock"
STATE_SOCK = "/tmp/l3afstate.sock"
L3AFD_RESTART_ARTIFACT_NAME = "l3afd.tar.gz"


def _require_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _scalar(data: dict, key: str, kind: type) -> Any:
    value = data.get(key)
    if value is None:
        return kind()
    if kind is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif kind is bool:
        ok = isinstance(value, bool)
    else:
        ok = isinstance(value, kind)
    if not ok:
        raise ValueError(
            f"field {key!r}: expected {kind.__name__}, got {type(value).__name__}"
        )
    return value


def _args(data: dict, key: str) -> Optional[dict]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"field {key!r}: expected an object, got {type(value).__name__}")
    return dict(value)


def _items(data: dict, key: str, decode: Callable[[Any], Any]) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r}: expected an array, got {type(value).__name__}")
    return [decode(item) for item in value]


def _optional(decode: Callable[[Any], Any]) -> Callable[[Any], Any]:
    return lambda item: None if item is None else decode(item)


def _encode_optional(item: Any) -> Any:
    return None if item is None else item.to_dict()


@dataclass
class KeyValue:
    """A key/value pair written into a BPF map."""

    key: int = 0
    value: int = 0

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "KeyValue")
        return cls(key=_scalar(data, "key", int), value=_scalar(data, "value", int))

    def to_dict(self):
        return {"key": self.key, "value": self.value}


@dataclass
class L3afDMapArg:
    """Arguments to store in a named BPF map."""

    name: str = ""
    args: list[KeyValue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "L3afDMapArg")
        return cls(
            name=_scalar(data, "name", str),
            args=_items(data, "args", KeyValue.from_dict),
        )

    def to_dict(self):
        return {"name": self.name, "args": [kv.to_dict() for kv in self.args]}


@dataclass
class L3afDNFMetricsMap:
    """A BPF map watched for metrics."""

    name: str = ""
    key: int = 0
    aggregator: str = ""

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "L3afDNFMetricsMap")
        return cls(
            name=_scalar(data, "name", str),
            key=_scalar(data, "key", int),
            aggregator=_scalar(data, "aggregator", str),
        )

    def to_dict(self):
        return {"name": self.name, "key": self.key, "aggregator": self.aggregator}


_ARGS = "args"
_MAP_ARGS = "map_args"
_MONITOR_MAPS = "monitor_maps"

# (attribute, JSON key, kind) in wire order.
_BPF_PROGRAM_FIELDS: tuple[tuple[str, str, Any], ...] = (
    ("id", "id", int),
    ("name", "name", str),
    ("seq_id", "seq_id", int),
    ("artifact", "artifact", str),
    ("map_name", "map_name", str),
    ("cmd_start", "cmd_start", str),
    ("cmd_stop", "cmd_stop", str),
    ("cmd_status", "cmd_status", str),
    ("cmd_config", "cmd_config", str),
    ("cmd_update", "cmd_update", str),
    ("version", "version", str),
    ("user_program_daemon", "user_program_daemon", bool),
    ("is_plugin", "is_plugin", bool),
    ("cpu", "cpu", int),
    ("memory", "memory", int),
    ("admin_status", "admin_status", str),
    ("prog_type", "prog_type", str),
    ("rules_file", "rules_file", str),
    ("rules", "rules", str),
    ("config_file_path", "config_file_path", str),
    ("cfg_version", "cfg_version", int),
    ("start_args", "start_args", _ARGS),
    ("stop_args", "stop_args", _ARGS),
    ("status_args", "status_args", _ARGS),
    ("update_args", "update_args", _ARGS),
    ("map_args", "map_args", _MAP_ARGS),
    ("config_args", "config_args", _ARGS),
    ("monitor_maps", "monitor_maps", _MONITOR_MAPS),
    ("epr_url", "ebpf_package_repo_url", str),
    ("object_file", "object_file", str),
    ("entry_function_name", "entry_function_name", str),
)


@dataclass
class BPFProgram:
    """An eBPF program as configured for one host."""

    id: int = 0
    name: str = ""
    seq_id: int = 0
    artifact: str = ""
    map_name: str = ""
    cmd_start: str = ""
    cmd_stop: str = ""
    cmd_status: str = ""
    cmd_config: str = ""
    cmd_update: str = ""
    version: str = ""
    user_program_daemon: bool = False
    is_plugin: bool = False
    cpu: int = 0
    memory: int = 0
    admin_status: str = ""
    prog_type: str = ""
    rules_file: str = ""
    rules: str = ""
    config_file_path: str = ""
    cfg_version: int = 0
    start_args: Optional[dict] = None
    stop_args: Optional[dict] = None
    status_args: Optional[dict] = None
    update_args: Optional[dict] = None
    map_args: list[L3afDMapArg] = field(default_factory=list)
    config_args: Optional[dict] = None
    monitor_maps: list[L3afDNFMetricsMap] = field(default_factory=list)
    epr_url: str = ""
    object_file: str = ""
    entry_function_name: str = ""

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "BPFProgram")
        values = {}
        for attr, key, kind in _BPF_PROGRAM_FIELDS:
            if kind == _ARGS:
                values[attr] = _args(data, key)
            elif kind == _MAP_ARGS:
                values[attr] = _items(data, key, L3afDMapArg.from_dict)
            elif kind == _MONITOR_MAPS:
                values[attr] = _items(data, key, L3afDNFMetricsMap.from_dict)
            else:
                values[attr] = _scalar(data, key, kind)
        return cls(**values)

    def to_dict(self):
        out = {}
        for attr, key, kind in _BPF_PROGRAM_FIELDS:
            value = getattr(self, attr)
            if kind in (_MAP_ARGS, _MONITOR_MAPS):
                out[key] = [item.to_dict() for item in value]
            elif kind == _ARGS:
                out[key] = None if value is None else dict(value)
            else:
                out[key] = value
        return out


_DIRECTIONS = ("xdp_ingress", "tc_ingress", "tc_egress", "probes")


@dataclass
class BPFPrograms:
    """The programs of a node, grouped by attach point."""

    xdp_ingress: list[Optional[BPFProgram]] = field(default_factory=list)
    tc_ingress: list[Optional[BPFProgram]] = field(default_factory=list)
    tc_egress: list[Optional[BPFProgram]] = field(default_factory=list)
    probes: list[Optional[BPFProgram]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "BPFPrograms")
        decode = _optional(BPFProgram.from_dict)
        return cls(**{key: _items(data, key, decode) for key in _DIRECTIONS})

    def to_dict(self):
        return {
            key: [_encode_optional(p) for p in getattr(self, key)] for key in _DIRECTIONS
        }


@dataclass
class L3afBPFPrograms:
    """The programs configured for one interface of a host."""

    host_name: str = ""
    iface: str = ""
    bpf_programs: Optional[BPFPrograms] = None

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "L3afBPFPrograms")
        programs = data.get("bpf_programs")
        return cls(
            host_name=_scalar(data, "host_name", str),
            iface=_scalar(data, "iface", str),
            bpf_programs=None if programs is None else BPFPrograms.from_dict(programs),
        )

    def to_dict(self):
        return {
            "host_name": self.host_name,
            "iface": self.iface,
            "bpf_programs": _encode_optional(self.bpf_programs),
        }


@dataclass
class BPFProgramNames:
    """Names of programs on a node, grouped by attach point."""

    xdp_ingress: list[str] = field(default_factory=list)
    tc_ingress: list[str] = field(default_factory=list)
    tc_egress: list[str] = field(default_factory=list)
    probes: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "BPFProgramNames")

        def decode(item):
            if not isinstance(item, str):
                raise ValueError(f"program name: expected str, got {type(item).__name__}")
            return item

        return cls(**{key: _items(data, key, decode) for key in _DIRECTIONS})

    def to_dict(self):
        return {key: list(getattr(self, key)) for key in _DIRECTIONS}


@dataclass
class L3afBPFProgramNames:
    """Names of programs to remove from one interface of a host."""

    host_name: str = ""
    iface: str = ""
    bpf_program_names: Optional[BPFProgramNames] = None

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "L3afBPFProgramNames")
        names = data.get("bpf_programs")
        return cls(
            host_name=_scalar(data, "host_name", str),
            iface=_scalar(data, "iface", str),
            bpf_program_names=None if names is None else BPFProgramNames.from_dict(names),
        )

    def to_dict(self):
        return {
            "host_name": self.host_name,
            "iface": self.iface,
            "bpf_programs": _encode_optional(self.bpf_program_names),
        }


@dataclass
class RestartConfig:
    """Request body of a graceful restart."""

    hostname: str = ""
    version: str = ""

    @classmethod
    def from_dict(cls, data):
        data = _require_mapping(data, "RestartConfig")
        return cls(
            hostname=_scalar(data, "hostname", str),
            version=_scalar(data, "version", str),
        )

    def to_dict(self):
        return {"hostname": self.hostname, "version": self.version}


@dataclass
class MetaColl:
    """Names of the programs and maps of a program collection."""

    programs: list[str] = field(default_factory=list)
    maps: list[str] = field(default_factory=list)


@dataclass
class MetaMetricsBPFMap:
    """Saved state of a metrics map."""

    map_name: str = ""
    key: int = 0
    values: list[float] = field(default_factory=list)
    aggregator: str = ""
    last_value: float = 0.0


@dataclass
class Label:
    """A metric label."""

    name: str = ""
    value: str = ""


@dataclass
class MetricVec:
    """A saved metric sample; type 0 is a counter, anything else a gauge."""

    metric_name: str = ""
    labels: list[Label] = field(default_factory=list)
    value: float = 0.0
    type: int = 0


@dataclass
class L3AFMetaData:
    """Saved state of one running program."""

    program: BPFProgram = field(default_factory=BPFProgram)
    file_path: str = ""
    restart_count: int = 0
    prev_map_name_path: str = ""
    map_name_path: str = ""
    prog_id: int = 0
    bpf_maps: list[str] = field(default_factory=list)
    metrics_bpf_maps: dict[str, MetaMetricsBPFMap] = field(default_factory=dict)
    prog_map_collection: MetaColl = field(default_factory=MetaColl)
    prog_map_id: int = 0
    prev_prog_map_id: int = 0
    xdp_link: bool = False


@dataclass
class L3AFAllHostData:
    """Everything a daemon hands to its successor on restart."""

    host_name: str = ""
    host_interfaces: dict[str, bool] = field(default_factory=dict)
    ingress_xdp_bpfs: dict[str, list[L3AFMetaData]] = field(default_factory=dict)
    ingress_tc_bpfs: dict[str, list[L3AFMetaData]] = field(default_factory=dict)
    egress_tc_bpfs: dict[str, list[L3AFMetaData]] = field(default_factory=dict)
    probes_bpfs: list[L3AFMetaData] = field(default_factory=list)
    ifaces: dict[str, str] = field(default_factory=dict)
    all_stats: list[MetricVec] = field(default_factory=list)


def load_programs_json(text):
    """Parse a JSON array of per-interface program configurations."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to unmarshal config json: {exc}") from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")
    return [L3afBPFPrograms.from_dict(item) for item in data]


def dump_programs_json(programs):
    """Serialise per-interface program configurations as a JSON array."""
    return json.dumps([p.to_dict() for p in programs])