from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

DEFAULT_STORAGE_KEY = "spaces_v1"
DEFAULT_LEGACY_KEYS = ("workspace_switcher_v1",)


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_list(name: str, default: List[str]) -> List[str]:
    v = os.getenv(name)
    if v is None:
        return list(default)
    return [part.strip() for part in v.split(",") if part.strip()]


def _default_db_path() -> str:
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return str(Path(base) / "linkspaces" / "spaces.sqlite")


@dataclass
class Settings:
    # Storage
    db_path: str = field(default_factory=_default_db_path)
    storage_key: str = DEFAULT_STORAGE_KEY
    legacy_keys: List[str] = field(default_factory=lambda: list(DEFAULT_LEGACY_KEYS))

    # Notices
    notice_clear_s: float = 2.2

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.db_path = _env_str("SPACES_DB_PATH", s.db_path)
        s.storage_key = _env_str("SPACES_STORAGE_KEY", s.storage_key) or DEFAULT_STORAGE_KEY
        s.legacy_keys = _env_list("SPACES_LEGACY_KEYS", s.legacy_keys)
        s.notice_clear_s = _env_float("SPACES_NOTICE_CLEAR_S", s.notice_clear_s)

        s.log_level = _env_str("SPACES_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("SPACES_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if not hasattr(s, k):
                continue
            if k == "legacy_keys" and isinstance(v, str):
                v = [part.strip() for part in v.split(",") if part.strip()]
            setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
