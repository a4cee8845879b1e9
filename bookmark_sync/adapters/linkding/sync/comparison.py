"""Building create payloads and diffing local fields against a remote bookmark."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bookmark_sync.adapters.linkding.models import BookmarkCreate, BookmarkUpdate
from bookmark_sync.adapters.linkding.sync.documents import extract_tags, extract_text

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.adapters.linkding.models import Bookmark
    from bookmark_sync.adapters.linkding.sync.models import SyncOptions
    from bookmark_sync.adapters.linkding.sync.protocols import SyncDocument


def normalize_tag_set(tags: Iterable[str], *, case_sensitive: bool = True) -> frozenset[str]:
    """Tag collection as compared for reconciliation: unordered, no duplicates."""
    cleaned = (tag.strip() for tag in tags if tag and tag.strip())
    if case_sensitive:
        return frozenset(cleaned)
    return frozenset(tag.casefold() for tag in cleaned)


def tags_equal(left: Iterable[str], right: Iterable[str], *, case_sensitive: bool = True) -> bool:
    return normalize_tag_set(left, case_sensitive=case_sensitive) == normalize_tag_set(
        right, case_sensitive=case_sensitive
    )


def dedupe_tags(tags: Iterable[str]) -> list[str]:
    """Drop repeated tags, keeping first-seen order."""
    return list(dict.fromkeys(tags))


def build_create_request(document: SyncDocument, url: str, options: SyncOptions) -> BookmarkCreate:
    """Payload for creating a bookmark from a document's local fields."""
    tags = dedupe_tags(extract_tags(document, options))
    return BookmarkCreate(
        url=url,
        title=extract_text(document, options.title_field),
        description=extract_text(document, options.description_field),
        notes=extract_text(document, options.notes_field),
        tag_names=tags or None,
        is_archived=True if options.mark_archived else None,
    )


def build_update_request(
    document: SyncDocument, remote: Bookmark, options: SyncOptions
) -> BookmarkUpdate:
    """Partial update holding only enabled fields whose local value differs.

    A field missing locally never clears the remote value.
    """
    update = BookmarkUpdate()

    if options.sync_title:
        title = extract_text(document, options.title_field)
        if title is not None and title != remote.title:
            update.title = title

    if options.sync_description:
        description = extract_text(document, options.description_field)
        if description is not None and description != remote.description:
            update.description = description

    if options.sync_notes:
        notes = extract_text(document, options.notes_field)
        if notes is not None and notes != remote.notes:
            update.notes = notes

    if options.sync_tags:
        tags = extract_tags(document, options)
        if tags and not tags_equal(
            tags, remote.tag_names, case_sensitive=options.tag_case_sensitive
        ):
            update.tag_names = dedupe_tags(tags)

    return update
