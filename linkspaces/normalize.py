from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, Iterable, List, Optional

from .ids import create_id, now_ms
from .log import get_logger
from .model import (
    DEFAULT_EMOJI,
    UNTITLED,
    Document,
    Folder,
    Link,
    OpenAllSettings,
)
from .ordering import reindex
from .url_norm import domain_of, sanitize_url

log = get_logger(__name__)

EMOJI_MAX_GRAPHEMES = 4
MAX_OPEN_ALL_RANGE = (1, 100)
OPEN_DELAY_MS_RANGE = (0, 2000)

_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")
_ZWJ = "\u200d"

SEED_FOLDERS = (
    ("Work", "🧠", (
        ("Email", "https://mail.google.com/"),
        ("Calendar", "https://calendar.google.com/"),
        ("GitHub", "https://github.com/"),
    )),
    ("Life", "✨", (
        ("YouTube", "https://www.youtube.com/"),
        ("Spotify", "https://open.spotify.com/"),
    )),
    ("Learn", "📚", (
        ("MDN", "https://developer.mozilla.org/"),
        ("Stack Overflow", "https://stackoverflow.com/"),
    )),
)


def normalize_document(raw: Any) -> Document:
    """Turn any parsed JSON value into a valid Document.

    Never raises. Anything that is not an object yields the seed document.
    Invalid folders and links are dropped, missing fields get defaults,
    duplicate ids are regenerated and orders are made dense.
    """
    if isinstance(raw, Document):
        raw = raw.to_json_dict()
    if not isinstance(raw, dict):
        log.debug("Stored value is not an object (%s); seeding defaults.", type(raw).__name__)
        return seed_document()

    raw_folders = raw.get("folders")
    if not isinstance(raw_folders, list):
        raw_folders = []
    folders: List[Folder] = []
    for index, entry in enumerate(raw_folders):
        folder = normalize_folder(entry, index)
        if folder is not None:
            folders.append(folder)
    if len(folders) != len(raw_folders):
        log.debug("Dropped %d malformed folder entries.", len(raw_folders) - len(folders))

    _regenerate_duplicate_ids(folders)
    for folder in folders:
        _regenerate_duplicate_ids(folder.links)

    wanted = raw.get("activeFolderId")
    if any(folder.id == wanted for folder in folders):
        active_id: Optional[str] = wanted
    else:
        active_id = folders[0].id if folders else None

    doc = Document(
        settings=normalize_settings(raw.get("settings")),
        active_folder_id=active_id,
        folders=folders,
    )
    return reindex(doc)


def normalize_settings(raw: Any) -> OpenAllSettings:
    if not isinstance(raw, dict):
        raw = {}
    default = OpenAllSettings()
    return OpenAllSettings(
        open_mode="window" if raw.get("openMode") == "window" else "tabs",
        confirm_open_all=_truthy(raw.get("confirmOpenAll")),
        max_open_all=clamp_int(raw.get("maxOpenAll"), *MAX_OPEN_ALL_RANGE, default.max_open_all),
        open_delay_ms=clamp_int(raw.get("openDelayMs"), *OPEN_DELAY_MS_RANGE, default.open_delay_ms),
    )


def normalize_folder(raw: Any, fallback_order: int) -> Optional[Folder]:
    if not isinstance(raw, dict):
        return None
    raw_links = raw.get("links")
    if not isinstance(raw_links, list):
        raw_links = []
    links = []
    for index, entry in enumerate(raw_links):
        link = normalize_link(entry, index)
        if link is not None:
            links.append(link)

    return Folder(
        id=_keep_id(raw.get("id")),
        name=_trimmed(raw.get("name")) or UNTITLED,
        emoji=normalize_emoji(raw.get("emoji")),
        created_at=_keep_number(raw.get("createdAt"), now_ms()),
        order=_keep_number(raw.get("order"), fallback_order),
        links=links,
    )


def normalize_link(raw: Any, fallback_order: int) -> Optional[Link]:
    if not isinstance(raw, dict):
        return None
    url = sanitize_url(raw.get("url")) if isinstance(raw.get("url"), str) else None
    if not url:
        return None
    return Link(
        id=_keep_id(raw.get("id")),
        title=_trimmed(raw.get("title")) or domain_of(url) or UNTITLED,
        url=url,
        created_at=_keep_number(raw.get("createdAt"), now_ms()),
        order=_keep_number(raw.get("order"), fallback_order),
    )


def normalize_emoji(raw: Any) -> str:
    text = raw.strip() if isinstance(raw, str) else DEFAULT_EMOJI
    return clip_graphemes(text, EMOJI_MAX_GRAPHEMES) or DEFAULT_EMOJI


def clip_graphemes(text: str, limit: int) -> str:
    """Keep the first ``limit`` user-perceived characters of ``text``.

    Combining marks, variation selectors, skin-tone modifiers, tag
    characters and ZWJ sequences stay attached to their base character;
    regional indicators pair up into flags.
    """
    clusters: List[str] = []
    for ch in text:
        if clusters and _extends_cluster(clusters[-1], ch):
            clusters[-1] += ch
            continue
        if len(clusters) >= limit:
            break
        clusters.append(ch)
    return "".join(clusters)


def clamp_int(value: Any, lo: int, hi: int, fallback: int) -> int:
    number = _parse_int(value)
    if number is None:
        return fallback
    return min(hi, max(lo, number))


def seed_document() -> Document:
    folders = []
    for order, (name, emoji, links) in enumerate(SEED_FOLDERS):
        folders.append(
            Folder(
                id=create_id(),
                name=name,
                emoji=emoji,
                created_at=now_ms(),
                order=order,
                links=[
                    Link(id=create_id(), title=title, url=url, created_at=now_ms(), order=i)
                    for i, (title, url) in enumerate(links)
                ],
            )
        )
    return Document(settings=OpenAllSettings(), active_folder_id=folders[0].id, folders=folders)


def _regenerate_duplicate_ids(items: Iterable[Any]) -> None:
    seen = set()
    for item in items:
        if item.id in seen:
            old = item.id
            item.id = create_id()
            log.debug("Regenerated duplicate id %s -> %s", old, item.id)
        seen.add(item.id)


def _keep_id(value: Any) -> str:
    return value if isinstance(value, str) and value else create_id()


def _trimmed(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int)


def _keep_number(value: Any, default):
    return value if _is_number(value) else default


def _truthy(value: Any) -> bool:
    # JSON truthiness: empty string, zero, null and false are false; containers are true.
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _INT_PREFIX_RE.match(value)
        return int(m.group(1)) if m else None
    return None


def _extends_cluster(cluster: str, ch: str) -> bool:
    prev = cluster[-1]
    cp = ord(ch)
    if prev == _ZWJ or ch == _ZWJ:
        return True
    if unicodedata.category(ch) in ("Mn", "Me", "Mc"):
        return True
    if 0x1F3FB <= cp <= 0x1F3FF or 0xE0020 <= cp <= 0xE007F:
        return True
    return _is_regional_indicator(ch) and len(cluster) == 1 and _is_regional_indicator(prev)


def _is_regional_indicator(ch: str) -> bool:
    return 0x1F1E6 <= ord(ch) <= 0x1F1FF
