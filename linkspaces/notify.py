from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

from .log import get_logger

log = get_logger(__name__)

DEFAULT_CLEAR_AFTER_S = 2.2


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class LogNotifier:
    """Notices go to the log only."""

    def notify(self, message: str) -> None:
        log.warning("%s", message)


class ToastNotifier:
    """Holds the latest notice until ``clear_after_s`` has passed.

    A newer notice replaces the current one and restarts the timer.
    """

    def __init__(self, clear_after_s: float = DEFAULT_CLEAR_AFTER_S, *, clock: Callable[[], float] = time.monotonic):
        self.clear_after_s = max(0.0, float(clear_after_s))
        self._clock = clock
        self._message: Optional[str] = None
        self._shown_at = 0.0

    def notify(self, message: str) -> None:
        log.info("Notice: %s", message)
        self._message = message
        self._shown_at = self._clock()

    @property
    def current(self) -> Optional[str]:
        if self._message is None:
            return None
        if self._clock() - self._shown_at >= self.clear_after_s:
            self._message = None
        return self._message
