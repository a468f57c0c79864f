from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .log import get_logger
from .model import OpenMode

log = get_logger(__name__)

BLOCKED_WINDOW_NOTICE = "Popup blocked. Allow popups or switch to tabs mode in Settings."
BLOCKED_TABS_NOTICE = "Popup blocked. Allow popups or reduce open settings."

# opener(url, group) -> handle, or None when the open was refused.
Opener = Callable[[str, Optional[Any]], Optional[Any]]


@dataclass
class OpenAllPlan:
    urls: List[str] = field(default_factory=list)
    truncated: bool = False
    total: int = 0
    open_mode: OpenMode = "tabs"
    delay_ms: int = 80
    confirm: bool = True
    folder_id: Optional[str] = None
    folder_name: str = ""

    @property
    def prompt(self) -> str:
        capped = " (capped)" if self.truncated else ""
        return f'Open {len(self.urls)}{capped} tabs from "{self.folder_name}"?'


@dataclass
class DispatchReport:
    opened: int = 0
    failed: int = 0
    blocked: bool = False
    cancelled: bool = False
    notice: Optional[str] = None


class OpenSequence:
    """Opens the plan's URLs one at a time, ``delay_ms`` apart.

    In window mode the handle returned by the first open is passed to every
    later open as ``group`` so the opener can keep them together. A refused
    first open aborts the run; later failures are counted and skipped.
    ``cancel()`` or a falsy ``should_continue()`` stops before the next open.
    """

    def __init__(
        self,
        plan: OpenAllPlan,
        opener: Opener,
        *,
        sleep: Callable[[float], None] = time.sleep,
        should_continue: Optional[Callable[[], bool]] = None,
    ):
        self.plan = plan
        self.opener = opener
        self.sleep = sleep
        self.should_continue = should_continue
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> DispatchReport:
        report = DispatchReport()
        group: Optional[Any] = None
        for i, url in enumerate(self.plan.urls):
            if i > 0:
                self.sleep(self.plan.delay_ms / 1000.0)
            if self._stopped():
                report.cancelled = True
                log.info("Open-all stopped after %d of %d links.", report.opened, len(self.plan.urls))
                break

            handle = self._open(url, group)
            if handle is None:
                if i == 0:
                    report.blocked = True
                    report.notice = BLOCKED_WINDOW_NOTICE if self.plan.open_mode == "window" else BLOCKED_TABS_NOTICE
                    log.warning("First open was refused; aborting open-all for %s.", url)
                    break
                report.failed += 1
                continue
            report.opened += 1
            if i == 0 and self.plan.open_mode == "window":
                group = handle
        return report

    def _stopped(self) -> bool:
        if self._cancelled:
            return True
        return self.should_continue is not None and not self.should_continue()

    def _open(self, url: str, group: Optional[Any]) -> Optional[Any]:
        try:
            return self.opener(url, group)
        except Exception as e:
            log.warning("Opening %s failed: %s", url, e)
            if group is None:
                return None
            # The grouped context is gone; fall back to an ungrouped open.
            try:
                return self.opener(url, None)
            except Exception as e2:
                log.warning("Ungrouped open of %s failed: %s", url, e2)
                return None
