"""Reading sync-relevant fields out of document metadata.

Front-matter values arrive untyped (YAML/JSON), so every accessor here
coerces defensively and never raises on odd input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bookmark_sync.adapters.linkding.sync.constants import TAG_SEPARATOR

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.adapters.linkding.sync.models import SyncOptions
    from bookmark_sync.adapters.linkding.sync.protocols import SyncDocument


@dataclass
class MemoryDocument:
    """Plain in-memory document: a path, a metadata mapping and a body."""

    path: str
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    def get_field(self, name: str) -> Any:
        return self.metadata.get(name)

    def set_field(self, name: str, value: Any) -> None:
        self.metadata[name] = value


def extract_text(document: SyncDocument, name: str) -> str | None:
    """Stripped string value of ``name``, or None when missing/blank/non-string."""
    value = document.get_field(name)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def extract_url(document: SyncDocument, options: SyncOptions) -> str | None:
    return extract_text(document, options.url_field)


def coerce_remote_id(value: Any) -> int | None:
    """Positive integer identifier, or None when the value means "not synced"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        parsed = int(value)
    elif isinstance(value, str) and value.strip().isdecimal():
        parsed = int(value.strip())
    else:
        return None
    return parsed if parsed > 0 else None


def extract_remote_id(document: SyncDocument, options: SyncOptions) -> int | None:
    return coerce_remote_id(document.get_field(options.id_field))


def to_tag_list(value: Any) -> list[str]:
    """Normalize the many shapes front-matter tags come in.

    Accepts a list/tuple of strings or a comma-separated string. Blank
    entries are dropped, surrounding whitespace is trimmed and the original
    order is kept.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[Any] = value.split(TAG_SEPARATOR)
    elif isinstance(value, list | tuple | set | frozenset):
        items = value
    else:
        return []

    tags: list[str] = []
    for item in items:
        if isinstance(item, str) and item.strip():
            tags.append(item.strip())
    return tags


def extract_tags(document: SyncDocument, options: SyncOptions) -> list[str]:
    return to_tag_list(document.get_field(options.tags_field))


def has_url(document: SyncDocument, options: SyncOptions) -> bool:
    return extract_url(document, options) is not None


def is_synced(document: SyncDocument, options: SyncOptions) -> bool:
    return extract_remote_id(document, options) is not None


def find_syncable(documents: Iterable[SyncDocument], options: SyncOptions) -> list[SyncDocument]:
    """Documents eligible for sync (they carry a URL), in input order."""
    return [doc for doc in documents if has_url(doc, options)]


def find_unsynced(documents: Iterable[SyncDocument], options: SyncOptions) -> list[SyncDocument]:
    """Documents with a URL but no positive remote identifier, in input order."""
    return [doc for doc in documents if has_url(doc, options) and not is_synced(doc, options)]
