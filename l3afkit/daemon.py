"""Start-up checks and helpers for the daemon: logging, kernel version, config store."""

from __future__ import annotations

import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

from .models import load_programs_json

log = logging.getLogger(__name__)

DAEMON_NAME = "l3afd"
LOG_LEVEL_ENV_NAME = "L3AF_LOG_LEVEL"
TRACE = 5
DISABLED = logging.CRITICAL + 10

_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "disabled": DISABLED,
}
_INTEGER = re.compile(r"[+-]?[0-9]+")
_MIN_VERSION_PARTS = 2


class KernelVersionError(Exception):
    """The kernel version could not be read or is older than required."""


class _ConsoleFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        moment = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()
        return moment.isoformat(timespec="microseconds")


def _parse_level(text: str) -> int:
    name = text.lower()
    if name in _LEVELS:
        return _LEVELS[name]
    if _INTEGER.fullmatch(text):
        return int(text)
    raise ValueError(f"Unknown Level String: {text!r}")


def setup_logging(environ=None):
    """Send human-readable logs to stderr and set the level from L3AF_LOG_LEVEL.

    Returns the logging level now in effect.
    """
    environ = os.environ if environ is None else environ
    root = logging.getLogger()
    if not any(getattr(h, "_l3af_console", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_ConsoleFormatter("%(asctime)s %(levelname)s %(message)s"))
        handler._l3af_console = True
        root.addHandler(handler)

    root.setLevel(logging.INFO)
    level_text = environ.get(LOG_LEVEL_ENV_NAME, "")
    if not level_text:
        return logging.INFO
    try:
        level = _parse_level(level_text)
    except ValueError as exc:
        log.error("Invalid L3AF_LOG_LEVEL: %s", exc)
        return logging.INFO
    root.setLevel(level)
    log.debug("Log level set to %r", level_text)
    return level


def get_kernel_version(proc_version_path="/proc/version"):
    """Return the third word of the kernel's version banner."""
    try:
        banner = Path(proc_version_path).read_text(errors="replace")
    except OSError as exc:
        raise KernelVersionError(f"failed to read procfs: {exc}") from exc
    words = banner.split()
    if len(words) < 3:
        raise KernelVersionError("failed to scan procfs version: unexpected EOF")
    return words[2]


def check_kernel_version(kernel_version, min_major, min_minor):
    """Raise KernelVersionError unless kernel_version is at least min_major.min_minor."""
    parts = kernel_version.split(".")
    if len(parts) < _MIN_VERSION_PARTS:
        raise KernelVersionError(
            f"expected minimum kernel version length {_MIN_VERSION_PARTS} "
            f"and got {len(parts)}, ver {parts!r}"
        )
    if not _INTEGER.fullmatch(parts[0]):
        raise KernelVersionError(f"failed to find kernel major version: {parts[0]!r}")
    if not _INTEGER.fullmatch(parts[1]):
        raise KernelVersionError(f"failed to find kernel minor version: {parts[1]!r}")
    major, minor = int(parts[0]), int(parts[1])

    if major > min_major:
        return
    if major == min_major and minor >= min_minor:
        return
    raise KernelVersionError(f"expected Kernel version >=  {min_major}.{min_minor}")


def read_configs_from_config_store(path):
    """Load persisted program configurations; None if the store does not exist."""
    store = Path(path)
    if not store.exists():
        log.warning("no persistent config exists")
        return None
    try:
        text = store.read_bytes()
    except OSError as exc:
        raise OSError(f"failed to read persistent file ({path}): {exc}") from exc
    try:
        return load_programs_json(text)
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal persistent config json: {exc}") from exc


def populate_versions(limit):
    """Return every version vI.J.K with components from 0 to limit, keyed by itself."""
    span = range(limit + 1)
    return {
        version: version
        for version in (f"v{i}.{j}.{k}" for i in span for j in span for k in span)
    }


def register_l3afd():
    """Registration with a management server; this build has none."""
    log.warning("Implement custom registration with management server")