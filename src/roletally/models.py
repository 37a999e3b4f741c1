"""Data model for activity reports.

Identities are Discord snowflakes carried as strings, the same way message,
channel and guild ids travel through the rest of the package.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Identity -> message count. Missing keys read as zero.
CountMap = Counter


# =============================================================================
# Enums
# =============================================================================


class SourceKind(str, Enum):
    """Kinds of paginatable message history."""

    CHANNEL = "channel"
    THREAD = "thread"


class ScopeKind(str, Enum):
    """Which sources a report covers."""

    SINGLE = "single"  # The channel or thread the request came from
    BROAD = "broad"  # Every text channel in the server, plus threads


class StopReason(str, Enum):
    """Why a source scan ended."""

    EXHAUSTED = "exhausted"
    WINDOW = "window"
    BUDGET = "budget"
    FAILED = "failed"


# =============================================================================
# History
# =============================================================================


class MessageRecord(BaseModel):
    """The parts of a message the scanner looks at."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    author_id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


@runtime_checkable
class MessageSource(Protocol):
    """A single reverse-chronological message history.

    Channels and threads page identically. ``fetch_page`` returns at most
    ``limit`` records, newest first, strictly older than ``before_id`` (or
    the newest page when ``before_id`` is None). Implementations raise
    ``SourceFetchFailure`` when the remote request fails.
    """

    id: str
    name: str
    kind: SourceKind

    async def fetch_page(
        self, limit: int, before_id: str | None = None
    ) -> list[MessageRecord]: ...


@dataclass
class SourceScan:
    """Outcome of scanning one source."""

    source_id: str
    kind: SourceKind
    counts: Counter[str] = field(default_factory=Counter)
    fetched: int = 0
    pages: int = 0
    stop_reason: StopReason = StopReason.EXHAUSTED

    @property
    def failed(self) -> bool:
        """True when the scan ended on a failed page request."""
        return self.stop_reason == StopReason.FAILED


# =============================================================================
# Reports
# =============================================================================


class ReportRow(BaseModel):
    """One identity's line in a report."""

    model_config = ConfigDict(frozen=True)

    identity: str
    tag: str
    count: int = Field(ge=0)
    lookback_days: int
    scope_id: str | None = None


class ActivityReport(BaseModel):
    """Result of one report run."""

    summary_rows: list[ReportRow] = Field(default_factory=list)
    full_rows: list[ReportRow] = Field(default_factory=list)
    scanned_source_count: int = 0
    failed_source_count: int = 0
    lookback_days: int
    since: datetime
    scope_id: str
    scope_kind: ScopeKind
    target_count: int = 0
