from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, TypeVar

from .model import Document


class _Ordered(Protocol):
    id: str
    order: float


T = TypeVar("T", bound=_Ordered)


def reindex(doc: Document) -> Document:
    """Sort folders and links by ``order`` and rewrite it as 0..n-1.

    Sorting is stable, so equal orders keep their list position. After this
    call list position and ``order`` agree for every folder and link.
    """
    doc.folders = _dense(doc.folders)
    for folder in doc.folders:
        folder.links = _dense(folder.links)
    return doc


def move(items: Sequence[T], from_id: str, to_id: str) -> List[T]:
    """Move ``from_id`` to the index ``to_id`` occupies; later items shift right.

    Returns a new list. Unknown ids, or ``from_id == to_id``, leave the order
    unchanged. Positions are not rewritten here; callers reindex.
    """
    out = list(items)
    if from_id == to_id:
        return out
    src = _index_of(out, from_id)
    dst = _index_of(out, to_id)
    if src is None or dst is None:
        return out
    moved = out.pop(src)
    out.insert(dst, moved)
    return out


def assign_positions(items: Sequence[T]) -> None:
    for i, item in enumerate(items):
        item.order = i


def next_order(items: Sequence[T]) -> int:
    return max([-1] + [int(item.order) for item in items]) + 1


def _dense(items: Sequence[T]) -> List[T]:
    out = sorted(items, key=lambda item: item.order)
    assign_positions(out)
    return out


def _index_of(items: Sequence[T], item_id: str) -> Optional[int]:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    return None
