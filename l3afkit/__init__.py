"""Helpers for an eBPF program daemon: config models, PID files, metrics, restart state, routing."""

__version__ = "2.1.0"
__all__ = ["daemon", "models", "pidfile", "restart", "routes", "signals", "stats", "version"]