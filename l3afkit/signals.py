"""Signals that ask the daemon to shut down."""

from __future__ import annotations

import signal
import sys


def shutdown_signals(platform=None):
    """Return the shutdown signals for a platform name such as sys.platform."""
    platform = sys.platform if platform is None else platform
    if platform.startswith("win"):
        return (signal.SIGINT,)
    names = ("SIGINT", "SIGHUP", "SIGTERM", "SIGQUIT")
    return tuple(getattr(signal, name) for name in names if hasattr(signal, name))