"""Domain models for catalog sync: items, payloads, jobs and run reports."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class CatalogItem(BaseModel):
    """One entry of the remote catalog listing.

    Attributes
    ----------
    id:
        Remote article identifier.
    title:
        Article title (``name`` on the wire).
    updated_at:
        Last-update time in epoch seconds (``update_timestamp`` on the wire).
    path_segments:
        Position of the article in the remote tree, root first.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    title: str = Field(default="", alias="name")
    updated_at: int = Field(default=0, alias="update_timestamp")
    path_segments: tuple[str, ...] = Field(default=(), alias="path")


class ArticlePayload(BaseModel):
    """A fetched article: metadata plus its parsed rich-text document."""

    model_config = ConfigDict(coerce_numbers_to_str=True, arbitrary_types_allowed=True)

    id: str
    title: str
    updated_at: int
    document: dict[str, Any]


class IngestedRecord(BaseModel):
    """Locally known state of a previously ingested item (diffing only)."""

    id: str
    title: str = ""
    updated_at: int


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundStats(BaseModel):
    """Observability record emitted once per convergence round."""

    round: int
    attempted: int
    failed: int
    remaining: int


class SyncJob(BaseModel):
    """Progress record of one sync run, as observed by collaborators.

    Lifecycle: ``pending`` → ``running`` on the first fetch round → exactly one
    terminal state (``completed``, ``failed`` or ``cancelled``).
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    mode: SyncMode = SyncMode.INCREMENTAL
    status: SyncStatus = SyncStatus.PENDING
    items_total: int = 0
    items_processed: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    rounds: list[RoundStats] = Field(default_factory=list)

    @property
    def progress(self) -> int:
        """Completion percentage, rounded like the job listing shows it."""
        if self.items_total <= 0:
            return 0
        return round(self.items_processed / self.items_total * 100)


class SyncReport(BaseModel):
    """Outcome of a convergence run, including any partial failure."""

    job_id: str
    status: SyncStatus
    rounds: list[RoundStats] = Field(default_factory=list)
    succeeded: list[str] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    not_attempted: list[str] = Field(default_factory=list)

    @property
    def drained(self) -> bool:
        return not (self.unresolved or self.skipped or self.not_attempted)
