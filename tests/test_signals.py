import signal
import sys

from l3afkit.signals import shutdown_signals


def test_windows_only_interrupt():
    assert shutdown_signals("win32") == (signal.SIGINT,)


def test_unix_signals():
    signals = shutdown_signals("linux")
    assert signal.SIGINT in signals
    assert signal.SIGTERM in signals
    assert signal.SIGHUP in signals
    assert signal.SIGQUIT in signals


def test_unix_signals_have_no_duplicates():
    signals = shutdown_signals("linux")
    assert len(set(signals)) == len(signals)


def test_default_platform_matches_current():
    assert shutdown_signals() == shutdown_signals(sys.platform)