from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .config import Settings
from .ids import create_id, now_ms
from .log import get_logger
from .model import DEFAULT_EMOJI, Document, Folder, Link, OpenAllSettings
from .normalize import (
    MAX_OPEN_ALL_RANGE,
    OPEN_DELAY_MS_RANGE,
    clamp_int,
    normalize_document,
    normalize_emoji,
)
from .notify import Notifier, ToastNotifier
from .open_all import OpenAllPlan
from .ordering import assign_positions, move, next_order, reindex
from .storage import SAVE_FAILED_NOTICE, PersistenceGateway, SqliteKeyValueStore
from .url_norm import domain_of, sanitize_url

log = get_logger(__name__)

NAME_REQUIRED = "Space name is required."
TITLE_REQUIRED = "Title is required."
URL_INVALID = "Enter a valid URL (http, https, or mailto)."
NO_SPACE = "Create a space first."
IMPORT_FAILED = "Import failed. Paste valid JSON from an export."
IMPORT_DONE = "Import complete."
SETTINGS_SAVED = "Settings saved."
LINK_GONE = "That link is not valid anymore."


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    INVALID_JSON = "invalid_json"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass
class MutationResult:
    ok: bool = True
    error: Optional[ErrorKind] = None
    field: Optional[str] = None
    message: str = ""
    id: Optional[str] = None
    changed: bool = False
    # None when nothing was written, else whether the write succeeded.
    saved: Optional[bool] = None


def _rejected(error: ErrorKind, message: str, field: Optional[str] = None) -> MutationResult:
    return MutationResult(ok=False, error=error, field=field, message=message)


def _invalid(field: str, message: str) -> MutationResult:
    return _rejected(ErrorKind.VALIDATION_FAILED, message, field)


class SpacesStore:
    """Owns the Document; every change goes through these methods.

    Each successful mutation re-densifies orders and saves. Readers get deep
    copies so nothing outside can bypass normalization. A failed save leaves
    the in-memory state as is and is reported through the notifier.
    """

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway
        self._doc = gateway.load()
        gateway.save(self._doc, silent=True)

    @classmethod
    def from_settings(cls, cfg: Settings, *, notifier: Optional[Notifier] = None) -> "SpacesStore":
        gateway = PersistenceGateway(
            SqliteKeyValueStore(cfg.db_path),
            key=cfg.storage_key,
            legacy_keys=cfg.legacy_keys,
            notifier=notifier or ToastNotifier(cfg.notice_clear_s),
        )
        return cls(gateway)

    @property
    def notifier(self) -> Notifier:
        return self.gateway.notifier

    # Reads

    def get_document(self) -> Document:
        return self._doc.model_copy(deep=True)

    def active_folder(self) -> Optional[Folder]:
        folder = self._folder_or_active(None)
        return folder.model_copy(deep=True) if folder else None

    def export_snapshot(self) -> str:
        return json.dumps(self._doc.to_json_dict(), indent=2, ensure_ascii=False)

    def search_links(self, query: str, folder_id: Optional[str] = None) -> List[Link]:
        folder = self._folder_or_active(folder_id)
        if folder is None:
            return []
        needle = (query or "").strip().lower()
        out = []
        for link in folder.links:
            hay = f"{link.title} {link.url} {domain_of(link.url)}".lower()
            if not needle or needle in hay:
                out.append(link.model_copy(deep=True))
        return out

    def open_all(self, folder_id: Optional[str] = None) -> OpenAllPlan:
        settings = self._doc.settings
        plan = OpenAllPlan(
            open_mode=settings.open_mode,
            delay_ms=settings.open_delay_ms,
            confirm=settings.confirm_open_all,
        )
        folder = self._folder_or_active(folder_id)
        if folder is None:
            return plan
        urls = [link.url for link in folder.links if sanitize_url(link.url)]
        cap = max(1, settings.max_open_all)
        plan.urls = urls[:cap]
        plan.total = len(urls)
        plan.truncated = len(urls) > cap
        plan.folder_id = folder.id
        plan.folder_name = folder.name
        return plan

    def open_one(self, url: str) -> Optional[str]:
        safe = sanitize_url(url)
        if not safe:
            self.notifier.notify(LINK_GONE)
        return safe

    # Folders

    def create_folder(self, name: str, emoji: Optional[str] = DEFAULT_EMOJI) -> MutationResult:
        clean = _trimmed(name)
        if not clean:
            return _invalid("name", NAME_REQUIRED)
        folder = Folder(
            id=create_id(),
            name=clean,
            emoji=normalize_emoji(emoji),
            created_at=now_ms(),
            order=next_order(self._doc.folders),
        )
        self._doc.folders.append(folder)
        self._doc.active_folder_id = folder.id
        log.debug("Created space %s (%s)", folder.id, folder.name)
        return self._commit(MutationResult(id=folder.id))

    def rename_folder(self, folder_id: str, name: str, emoji: Optional[str] = None) -> MutationResult:
        clean = _trimmed(name)
        if not clean:
            return _invalid("name", NAME_REQUIRED)
        folder = self._doc.find_folder(folder_id)
        if folder is None:
            return MutationResult(id=folder_id)
        folder.name = clean
        if emoji is not None:
            folder.emoji = normalize_emoji(emoji)
        return self._commit(MutationResult(id=folder_id))

    def delete_folder(self, folder_id: str) -> MutationResult:
        if self._doc.find_folder(folder_id) is None:
            return MutationResult(id=folder_id)
        self._doc.folders = [f for f in self._doc.folders if f.id != folder_id]
        reindex(self._doc)
        if self._doc.active_folder_id == folder_id:
            self._doc.active_folder_id = self._doc.folders[0].id if self._doc.folders else None
        return self._commit(MutationResult(id=folder_id))

    def set_active_folder(self, folder_id: str) -> MutationResult:
        if self._doc.find_folder(folder_id) is None:
            return MutationResult(id=folder_id)
        self._doc.active_folder_id = folder_id
        return self._commit(MutationResult(id=folder_id))

    def reorder_folders(self, from_id: str, to_id: str) -> MutationResult:
        moved = move(self._doc.folders, from_id, to_id)
        if _same_order(moved, self._doc.folders):
            return MutationResult(id=from_id)
        assign_positions(moved)
        self._doc.folders = moved
        return self._commit(MutationResult(id=from_id))

    # Links

    def create_link(self, folder_id: Optional[str], title: str, url: str) -> MutationResult:
        folder = self._folder_or_active(folder_id)
        if folder is None:
            return _rejected(ErrorKind.NOT_FOUND, NO_SPACE, "folder")
        checked = _check_link_input(title, url)
        if isinstance(checked, MutationResult):
            return checked
        clean_title, safe_url = checked
        link = Link(
            id=create_id(),
            title=clean_title,
            url=safe_url,
            created_at=now_ms(),
            order=next_order(folder.links),
        )
        folder.links.append(link)
        return self._commit(MutationResult(id=link.id))

    def update_link(self, folder_id: Optional[str], link_id: str, title: str, url: str) -> MutationResult:
        checked = _check_link_input(title, url)
        if isinstance(checked, MutationResult):
            return checked
        folder = self._folder_or_active(folder_id)
        link = folder.find_link(link_id) if folder else None
        if link is None:
            return MutationResult(id=link_id)
        link.title, link.url = checked
        return self._commit(MutationResult(id=link_id))

    def delete_link(self, folder_id: Optional[str], link_id: str) -> MutationResult:
        folder = self._folder_or_active(folder_id)
        if folder is None or folder.find_link(link_id) is None:
            return MutationResult(id=link_id)
        folder.links = [link for link in folder.links if link.id != link_id]
        return self._commit(MutationResult(id=link_id))

    def reorder_links(self, folder_id: Optional[str], from_id: str, to_id: str) -> MutationResult:
        folder = self._folder_or_active(folder_id)
        if folder is None:
            return MutationResult(id=from_id)
        moved = move(folder.links, from_id, to_id)
        if _same_order(moved, folder.links):
            return MutationResult(id=from_id)
        assign_positions(moved)
        folder.links = moved
        return self._commit(MutationResult(id=from_id))

    # Settings and whole-document operations

    def update_settings(
        self,
        *,
        open_mode: Optional[str] = None,
        confirm_open_all: Optional[bool] = None,
        max_open_all=None,
        open_delay_ms=None,
    ) -> MutationResult:
        current = self._doc.settings
        self._doc.settings = OpenAllSettings(
            open_mode=current.open_mode if open_mode is None else ("window" if open_mode == "window" else "tabs"),
            confirm_open_all=current.confirm_open_all if confirm_open_all is None else bool(confirm_open_all),
            max_open_all=current.max_open_all
            if max_open_all is None
            else clamp_int(max_open_all, *MAX_OPEN_ALL_RANGE, OpenAllSettings().max_open_all),
            open_delay_ms=current.open_delay_ms
            if open_delay_ms is None
            else clamp_int(open_delay_ms, *OPEN_DELAY_MS_RANGE, OpenAllSettings().open_delay_ms),
        )
        result = self._commit()
        if result.saved:
            self.notifier.notify(SETTINGS_SAVED)
        return result

    def import_replace(self, text: str) -> MutationResult:
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError, RecursionError) as e:
            log.info("Import rejected: %s", e)
            return _rejected(ErrorKind.INVALID_JSON, IMPORT_FAILED)
        self._doc = normalize_document(parsed)
        result = self._commit()
        if result.saved:
            self.notifier.notify(IMPORT_DONE)
        return result

    # Internals

    def _folder_or_active(self, folder_id: Optional[str]) -> Optional[Folder]:
        if folder_id is not None:
            return self._doc.find_folder(folder_id)
        active = self._doc.find_folder(self._doc.active_folder_id)
        if active is not None:
            return active
        return self._doc.folders[0] if self._doc.folders else None

    def _commit(self, result: Optional[MutationResult] = None) -> MutationResult:
        result = result or MutationResult()
        reindex(self._doc)
        result.changed = True
        result.saved = self.gateway.save(self._doc)
        if not result.saved:
            # The change stands in memory; only the write failed.
            result.error = ErrorKind.PERSISTENCE_FAILURE
            result.message = SAVE_FAILED_NOTICE
        return result


def _trimmed(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _check_link_input(title: str, url: str):
    clean_title = _trimmed(title)
    if not clean_title:
        return _invalid("title", TITLE_REQUIRED)
    safe_url = sanitize_url(url)
    if not safe_url:
        return _invalid("url", URL_INVALID)
    return clean_title, safe_url


def _same_order(a, b) -> bool:
    return [item.id for item in a] == [item.id for item in b]
