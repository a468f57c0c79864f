from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Sequence

from .config import DEFAULT_LEGACY_KEYS, DEFAULT_STORAGE_KEY
from .log import get_logger
from .model import Document
from .normalize import normalize_document
from .notify import LogNotifier, Notifier

log = get_logger(__name__)

SAVE_FAILED_NOTICE = "Unable to save changes. Check storage permissions."


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqliteKeyValueStore:
    """String values keyed by name in a single SQLite table.

    ``set`` replaces the whole value in one transaction, so readers see
    either the previous or the new value.
    """

    def __init__(self, db_path: Path | str, *, create: bool = True):
        self.db_path = Path(db_path)
        if create:
            try:
                self.init()
            except (OSError, sqlite3.Error) as e:
                # Reads and writes will fail too; the gateway reports those.
                log.warning("Could not initialise key-value store %s: %s", self.db_path, e)

    def init(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        if not self.db_path.exists():
            return None
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, value, now),
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # `with conn` only commits or rolls back; the connection is closed here.
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()


class PersistenceGateway:
    """Loads and saves the Document under one primary key.

    Legacy keys are only ever read, as a fallback when the primary key is
    absent.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        legacy_keys: Sequence[str] = DEFAULT_LEGACY_KEYS,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.key = key
        self.legacy_keys = tuple(k for k in legacy_keys if k and k != key)
        self.notifier = notifier or LogNotifier()

    def load(self) -> Document:
        try:
            raw = self.store.get(self.key)
            if raw:
                return normalize_document(json.loads(raw))
            for legacy in self.legacy_keys:
                legacy_raw = self.store.get(legacy)
                if not legacy_raw:
                    continue
                log.info("Primary key %r absent; loading legacy key %r.", self.key, legacy)
                return normalize_document(json.loads(legacy_raw))
        except Exception as e:
            log.warning("Failed to load stored spaces (%s); starting from defaults.", e)
            return normalize_document(None)
        log.info("No stored spaces found; seeding defaults.")
        return normalize_document(None)

    def save(self, doc: Document, *, silent: bool = False) -> bool:
        try:
            payload = json.dumps(doc.to_json_dict(), ensure_ascii=False)
            self.store.set(self.key, payload)
        except Exception as e:
            log.warning("Failed to save spaces under %r: %s", self.key, e)
            if not silent:
                self.notifier.notify(SAVE_FAILED_NOTICE)
            return False
        return True
