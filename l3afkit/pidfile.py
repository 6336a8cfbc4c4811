"""PID file handling and graceful shutdown on termination signals."""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import sys
import threading
from datetime import timedelta
from pathlib import Path

log = logging.getLogger(__name__)

_PROC_ROOT = Path("/proc")
_DEFAULT_SHUTDOWN_TIMEOUT = 10.0
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class PIDFileError(Exception):
    """A PID file could not be read, written or removed, or is in conflict."""


def _is_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def check_pid_conflict(pid_filename):
    """Fail if another instance of this program holds the PID file; clear stale files."""
    log.info('Checking for another already running instance (using PID file "%s")...', pid_filename)
    path = Path(pid_filename)
    try:
        content = path.read_bytes()
    except FileNotFoundError:
        log.info("OK, no PID file already exists at %s.", pid_filename)
        return
    except OSError as exc:
        raise PIDFileError(
            f"could not open PID file: {pid_filename}, please manually remove; error: {exc}"
        ) from exc

    if not content:
        log.warning("PID file already exists at %s, but it is empty... ignoring.", pid_filename)
        return

    old_pid_text = content.decode("utf-8", errors="replace")
    old_pid = int(old_pid_text) if _INTEGER.fullmatch(old_pid_text) else None
    if old_pid is None or not _INT64_MIN <= old_pid <= _INT64_MAX:
        raise PIDFileError(
            f"PID file: {pid_filename}, contained value: {old_pid_text}, which could not be parsed"
        )

    own_pid = os.getpid()
    log.info("Found PID file with PID: %d; checking if it is this process: PID: %d", old_pid, own_pid)
    if old_pid == own_pid:
        log.warning(
            "PID file already exists at %s, but it contains the current PID(%d)... ignoring.",
            pid_filename,
            old_pid,
        )
        return

    log.info("Found PID file with PID: %s; checking if process is running...", old_pid_text)
    if not _is_running(old_pid):
        log.info("Process was not running, removing PID file.")
        try:
            remove_pid(pid_filename)
        except PIDFileError as exc:
            raise PIDFileError(f"removal failed, please manually remove; err: {exc}") from exc
        return

    log.info(
        "Process with PID: %s; is running. Comparing process names to ensure it is a true conflict.",
        old_pid_text,
    )
    try:
        self_name = (_PROC_ROOT / "self" / "comm").read_bytes()
    except OSError as exc:
        raise PIDFileError(
            f"could not read this processes command name from the proc filesystem; err: {exc}"
        ) from exc
    try:
        conflict_name = (_PROC_ROOT / str(old_pid) / "comm").read_bytes()
    except OSError as exc:
        raise PIDFileError(
            f"could not read old processes (PID: {old_pid_text}) command name "
            f"from the proc filesystem; error: {exc}"
        ) from exc

    if self_name != conflict_name:
        log.info(
            "Old process had command name: %r, not %r, removing PID file.", conflict_name, self_name
        )
        try:
            remove_pid(pid_filename)
        except PIDFileError as exc:
            raise PIDFileError(f"removal failed, please manually remove; error: {exc}") from exc
        return

    raise PIDFileError(
        f"a previous instance of this process ({self_name.decode(errors='replace')}) is running "
        f"with ID {old_pid_text}; please shutdown this process before running"
    )


def create_pid(pid_filename):
    """Write the current process ID to the PID file."""
    pid = os.getpid()
    log.info("Writing process ID %d to %s...", pid, pid_filename)
    try:
        fd = os.open(pid_filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o640)
        with os.fdopen(fd, "w") as handle:
            handle.write(str(pid))
    except OSError as exc:
        raise PIDFileError(
            f'could not write process ID to file: "{pid_filename}"; error: {exc}'
        ) from exc


def remove_pid(pid_filename):
    """Remove the PID file, or a directory at that path; a missing path is fine."""
    path = Path(pid_filename)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        raise PIDFileError(f"could not remove PID file: {pid_filename}; error: {exc}") from exc


def _shutdown_signals():
    names = ("SIGTERM", "SIGHUP", "SIGINT", "SIGQUIT")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


def setup_graceful_shutdown(shutdown_handler, shutdown_handler_timeout, pid_filename):
    """Install handlers that run shutdown_handler, remove the PID file and exit.

    The timeout is in seconds (or a timedelta). Returns the installed handler.
    """
    timeout = shutdown_handler_timeout
    if isinstance(timeout, timedelta):
        timeout = timeout.total_seconds()
    if timeout is None or timeout <= 0:
        log.warning(
            "GracefulShutdown: No shutdown timeout was provided! Using %ss.",
            _DEFAULT_SHUTDOWN_TIMEOUT,
        )
        timeout = _DEFAULT_SHUTDOWN_TIMEOUT

    def _on_signal(signum, frame):
        try:
            signame = signal.Signals(signum).name
        except ValueError:
            signame = str(signum)
        exit_code = 0

        if shutdown_handler is not None:
            log.info(
                "GracefulShutdown: Received shutdown signal: %s, waiting for shutdown handler "
                "to execute (will timeout after %ss)...",
                signame,
                timeout,
            )
            failures = []

            def _run():
                try:
                    shutdown_handler()
                except Exception as exc:
                    log.error("GracefulShutdown: Shutdown handler returned error: %s", exc)
                    failures.append(exc)

            worker = threading.Thread(target=_run, daemon=True)
            worker.start()
            worker.join(timeout)
            if worker.is_alive():
                log.error(
                    "GracefulShutdown: Shutdown handler execution timed-out after %ss! "
                    "Shutting down...",
                    timeout,
                )
                exit_code = 1
            else:
                log.info("GracefulShutdown: Shutdown handler execution complete. Shutting down...")
                if failures:
                    exit_code = 1
        else:
            log.info("GracefulShutdown: Received shutdown signal: %s, shutting down...", signame)

        if pid_filename:
            try:
                remove_pid(pid_filename)
            except PIDFileError as exc:
                log.warning("Could not cleanup PID file: %s", exc)
        log.info("Shutdown now.")
        sys.exit(exit_code)

    for sig in _shutdown_signals():
        signal.signal(sig, _on_signal)
    return _on_signal