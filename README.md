# l3afkit

Building blocks for a daemon that manages eBPF programs (XDP, TC ingress and
egress, probes) on a host. The package holds the parts that do not touch the
kernel: configuration models, PID file handling, metrics, restart helpers,
routing and start-up checks. It uses only the Python standard library
(3.10 or newer).

## Modules

- `l3afkit.models` – dataclasses for the JSON configuration documents:
  `L3afBPFPrograms`, `BPFPrograms`, `BPFProgram`, `L3afDMapArg`, `KeyValue`,
  `L3afDNFMetricsMap`, `L3afBPFProgramNames`, `BPFProgramNames` and
  `RestartConfig`, each with `from_dict` and `to_dict`. Malformed fields raise
  `ValueError`. `load_programs_json(text)` parses a JSON array of
  `L3afBPFPrograms` (JSON `null` gives an empty list) and
  `dump_programs_json(programs)` writes one. The saved-state records
  `L3AFAllHostData`, `L3AFMetaData`, `MetaColl`, `MetaMetricsBPFMap`,
  `MetricVec` and `Label` are plain dataclasses. Constants such as `XDP_TYPE`,
  `TC_TYPE`, `ENABLED`, `HOST_SOCK` and `STATE_SOCK` are defined here too.
- `l3afkit.pidfile` – `check_pid_conflict(path)` clears empty-process or
  stale PID files and raises `PIDFileError` when another instance with the
  same command name is running; `create_pid(path)` writes the current PID
  (mode 0640); `remove_pid(path)` removes it, ignoring a missing file;
  `setup_graceful_shutdown(handler, timeout, path)` installs handlers for
  SIGTERM, SIGHUP, SIGINT and SIGQUIT that run `handler` with a timeout
  (seconds or `timedelta`, default 10 s), remove the PID file and exit. It
  returns the installed signal handler.
- `l3afkit.version` – `BuildInfo(version, suffix_tag, version_date,
  version_sha)` with `short_version()` (version `0.0.0` is tagged `dev`) and
  `info()`, a multi-line build description.
- `l3afkit.signals` – `shutdown_signals(platform=None)` returns the signals
  that should stop the daemon; only SIGINT on Windows.
- `l3afkit.routes` – `Route(method, path, handler_func)`, `Router` with
  `add(route)`, `resolve(method, path)` (returns `(handler, params)` or
  `None`; `{name}`, `{name:regex}` and a trailing `*` are supported) and
  `new_router(routes)`.
- `l3afkit.stats` – `CounterVec` and `GaugeVec` with `curry_with`,
  `get_metric_with` and `samples`; a `Registry` with `register` and
  `exposition()` (text exposition format); `create_metrics(hostname,
  daemon_name, registry)` returning a `Metrics` dataclass of vectors curried
  with the host name; `serve_metrics(registry, addr)` serving `/metrics` on a
  background thread and returning the server; and the helpers `add`,
  `set_gauge`, `set_value` and `set_with_version`, which log a warning rather
  than raise when the vector is `None` or the labels do not fit.
- `l3afkit.restart` – `set_metrics(metrics, data)` restores saved samples of
  an `L3AFAllHostData` into the metric vectors; `get_value_of_label`,
  `counter_vec_by_metric_name` and `gauge_vec_by_metric_name` support it.
  `add_symlink`, `remove_symlink`, `read_symlink` and
  `roll_back_symlink(old_cfg_path, old_bin_path, old_version, new_version,
  base_path)` manage the `latest/l3afd` and `latest/l3afd.cfg` links under a
  base directory.
- `l3afkit.daemon` – `setup_logging(environ=None)` (level from
  `L3AF_LOG_LEVEL`: trace, debug, info, warn, error, fatal, panic, disabled or
  a number; returns the level), `get_kernel_version(path)`,
  `check_kernel_version(version, min_major, min_minor)` (raises
  `KernelVersionError`), `read_configs_from_config_store(path)` (`None` when
  the file does not exist), `populate_versions(limit)` and `register_l3afd()`.

## Example

```python
from l3afkit.models import load_programs_json
from l3afkit.pidfile import check_pid_conflict, create_pid
from l3afkit.daemon import check_kernel_version, populate_versions

with open("l3afd.cfg.json") as handle:
    programs = load_programs_json(handle.read())
for entry in programs:
    if entry.bpf_programs is not None:
        print(entry.iface, [p.name for p in entry.bpf_programs.xdp_ingress])

check_pid_conflict("/var/run/l3afd.pid")
create_pid("/var/run/l3afd.pid")

check_kernel_version("5.15.0-91-generic", 5, 1)
versions = populate_versions(2)   # {"v0.0.0": "v0.0.0", ..., "v2.2.2": "v2.2.2"}
```

Metrics:

```python
from l3afkit.stats import Registry, create_metrics, add

registry = Registry()
metrics = create_metrics("host-a", "l3afd", registry)
add(1, metrics.bpf_start_count, "ratelimiting", "ingress", "eth0")
print(registry.exposition())
```

## What the package does not do

There is no daemon command and no configuration HTTP API: `Router` matches
requests but no handlers for adding, updating or removing programs are
provided. The package does not load, attach, pin or chain eBPF programs, does
not download or unpack program or upgrade artifacts, and does not hand state
over a socket between an old and a new daemon; `L3AFAllHostData` and the
socket path constants only describe that state. `roll_back_symlink` can undo a
version switch, but there is no function that performs one.