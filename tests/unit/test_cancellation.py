"""
Unit tests for src/common/cancellation.py
"""

import signal
import threading

from src.common.cancellation import StopToken, install_signal_handlers


class TestStopToken:
    """Tests for StopToken."""

    def test_initially_running(self):
        token = StopToken()
        assert token.stopped is False
        assert token.reason is None

    def test_stop_sets_reason_once(self):
        token = StopToken()
        token.stop("first")
        token.stop("second")

        assert token.stopped is True
        assert token.reason == "first"

    def test_zero_wait_returns_immediately(self):
        token = StopToken()
        assert token.wait(0) is False
        token.stop()
        assert token.wait(0) is True

    def test_wait_interrupted_by_stop(self):
        token = StopToken()
        timer = threading.Timer(0.05, token.stop)
        timer.start()

        # Would block for a minute without the interruption
        assert token.wait(60) is True
        timer.join()


class TestInstallSignalHandlers:
    """Tests for install_signal_handlers()."""

    def test_sigterm_stops_token(self):
        token = StopToken()
        previous_int = signal.getsignal(signal.SIGINT)
        previous_term = signal.getsignal(signal.SIGTERM)
        try:
            install_signal_handlers(token)
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
        finally:
            signal.signal(signal.SIGINT, previous_int)
            signal.signal(signal.SIGTERM, previous_term)

        assert token.stopped is True
        assert token.reason == "received SIGTERM"
