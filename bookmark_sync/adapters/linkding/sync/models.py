"""Options, outcomes and batch results for Linkding reconciliation."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookmark_sync.adapters.linkding.sync.constants import (
    DEFAULT_DESCRIPTION_FIELD,
    DEFAULT_ID_FIELD,
    DEFAULT_NOTES_FIELD,
    DEFAULT_TAGS_FIELD,
    DEFAULT_TITLE_FIELD,
    DEFAULT_URL_FIELD,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from bookmark_sync.adapters.linkding.sync.protocols import SyncDocument


class SyncAction(StrEnum):
    """What reconciliation did (or would do) for one document."""

    CREATED = "created"
    VERIFIED = "verified"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of reconciling one document. Immutable once produced."""

    document: SyncDocument
    action: SyncAction
    remote_id: int | None = None
    previous_id: int | None = None
    error: BaseException | None = None
    planned: dict[str, Any] | None = None
    dry_run: bool = False

    @property
    def path(self) -> str:
        return str(self.document.path)

    @property
    def identifier_changed(self) -> bool:
        """True when the document's stored identifier must be persisted."""
        if self.dry_run or self.action is SyncAction.ERROR or not self.remote_id:
            return False
        return self.remote_id != self.previous_id


ProgressCallback = Callable[[SyncOutcome], None]


class SyncOptions(BaseModel):
    """Which document fields to use and how reconciliation behaves."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url_field: str = DEFAULT_URL_FIELD
    title_field: str = DEFAULT_TITLE_FIELD
    tags_field: str = DEFAULT_TAGS_FIELD
    description_field: str = DEFAULT_DESCRIPTION_FIELD
    notes_field: str = DEFAULT_NOTES_FIELD
    id_field: str = DEFAULT_ID_FIELD

    sync_title: bool = False
    sync_tags: bool = False
    sync_description: bool = False
    sync_notes: bool = False

    dry_run: bool = False
    skip_verification: bool = False
    check_existing: bool = False
    reprobe_on_stale: bool = False
    tag_case_sensitive: bool = True
    mark_archived: bool = False

    max_workers: int = Field(default=1, ge=1, le=32)
    ordered: bool = True

    progress_callback: ProgressCallback | None = Field(default=None, exclude=True)

    @field_validator(
        "url_field",
        "title_field",
        "tags_field",
        "description_field",
        "notes_field",
        "id_field",
        mode="before",
    )
    @classmethod
    def _validate_field_name(cls, value: Any) -> str:
        name = str(value or "").strip()
        if not name:
            msg = "document field names cannot be empty"
            raise ValueError(msg)
        return name


@dataclass(frozen=True)
class BatchResult:
    """Ordered outcomes of one batch run."""

    outcomes: tuple[SyncOutcome, ...]
    cancelled: bool = False
    correlation_id: str = ""
    duration_seconds: float = 0.0

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[SyncOutcome]:
        return iter(self.outcomes)

    def counts(self) -> dict[SyncAction, int]:
        tally = Counter(o.action for o in self.outcomes)
        return {action: tally.get(action, 0) for action in SyncAction}

    @property
    def errors(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if o.action is SyncAction.ERROR]

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and not self.errors

    def changed_identifiers(self) -> Iterator[tuple[SyncDocument, int]]:
        """``(document, new_id)`` pairs the caller should persist."""
        for outcome in self.outcomes:
            if outcome.identifier_changed and outcome.remote_id is not None:
                yield outcome.document, outcome.remote_id
