from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

try:
    from rich.logging import RichHandler
    _HAS_RICH = True
except Exception:
    RichHandler = None  # type: ignore
    _HAS_RICH = False

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False


def setup_logging(cfg: LogConfig) -> None:
    """Install a single root handler; rich on a colour terminal, plain text otherwise."""
    level = _resolve_level(cfg.level)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = _build_handler(use_color=_wants_color(cfg))
    handler.setLevel(level)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _resolve_level(name: Optional[str]) -> int:
    value = getattr(logging, (name or "INFO").upper(), None)
    return value if isinstance(value, int) else logging.INFO


def _wants_color(cfg: LogConfig) -> bool:
    if cfg.no_color or os.getenv("NO_COLOR") is not None:
        return False
    return _HAS_RICH and sys.stderr.isatty()


def _build_handler(*, use_color: bool) -> logging.Handler:
    if use_color:
        handler = RichHandler(rich_tracebacks=True, show_time=False, show_level=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        return handler
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    return handler
