"""
Cooperative cancellation for long-running loops.

Every loop and every delay takes a StopToken. Sleeping through
StopToken.wait() means a stop request interrupts delays immediately instead
of waiting out a 10-minute retry interval.
"""

import logging
import signal
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class StopToken:
    """Cancellation flag with an interruptible wait."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def stop(self, reason: str = "stop requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.info(f"Stop requested: {reason}")
        self._event.set()

    @property
    def stopped(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, returning early on stop.

        Returns:
            True if the token was stopped during (or before) the wait
        """
        if seconds <= 0:
            return self.stopped
        return self._event.wait(seconds)


def install_signal_handlers(token: StopToken) -> None:
    """
    Route SIGINT and SIGTERM onto the token.

    Only called by CLI entry points; library code never touches signals.
    """

    def _handle(signum, _frame):
        token.stop(f"received {signal.Signals(signum).name}")

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
