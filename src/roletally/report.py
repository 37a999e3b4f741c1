"""Build and render activity reports.

Rows are sorted by count, highest first. Python's sort is stable, so
members with equal counts keep the order the member directory returned
them in.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from roletally.errors import DirectoryLookupFailure
from roletally.logging import get_logger
from roletally.membership import MemberDirectory
from roletally.models import ReportRow

log = get_logger("report")

MIN_DISPLAY = 1
MAX_DISPLAY = 50

CSV_HEADER = "user_id,user_tag,message_count,days_lookback"
CSV_SOURCE_COLUMN = "channel_id"


def clamp_display_limit(display_limit: int | None, default: int = 20) -> int:
    """Clamp a requested display size into 1..50."""
    if display_limit is None:
        display_limit = default
    return max(MIN_DISPLAY, min(MAX_DISPLAY, display_limit))


class ReportBuilder:
    """Turns merged totals into ranked report rows."""

    def __init__(self, directory: MemberDirectory, group_id: str) -> None:
        self.directory = directory
        self.group_id = group_id

    async def resolve_tag(self, identity: str) -> str:
        """Best-effort display tag; the raw identity when lookup fails."""
        try:
            return await self.directory.lookup_tag(self.group_id, identity)
        except DirectoryLookupFailure as e:
            log.debug("tag_lookup_failed", identity=identity, error=e.reason or str(e))
            return identity

    async def build(
        self,
        totals: Mapping[str, int],
        identities: Iterable[str],
        display_limit: int | None,
        lookback_days: int,
        scope_id: str | None = None,
    ) -> tuple[list[ReportRow], list[ReportRow]]:
        """Rank identities by message count.

        Args:
            totals: Reindexed totals (every identity present).
            identities: Target identities, in tie-break order.
            display_limit: Requested summary size. None keeps every row.
            lookback_days: Window length, echoed into each row.
            scope_id: Channel/thread id for single scope, None otherwise.

        Returns:
            (summary_rows, full_rows). Summary holds at most
            ``clamp(display_limit, 1, 50)`` rows.
        """
        rows = [
            ReportRow(
                identity=identity,
                tag=await self.resolve_tag(identity),
                count=totals.get(identity, 0),
                lookback_days=lookback_days,
                scope_id=scope_id,
            )
            for identity in identities
        ]
        rows.sort(key=lambda r: r.count, reverse=True)

        if display_limit is None:
            return list(rows), rows
        return rows[: clamp_display_limit(display_limit)], rows


# =============================================================================
# Rendering
# =============================================================================


def quote_field(value: str) -> str:
    """Wrap a CSV field in double quotes, doubling embedded quotes."""
    return '"' + value.replace('"', '""') + '"'


def render_csv(rows: Sequence[ReportRow], include_source: bool = True) -> str:
    """Render rows as CSV text with a header line.

    Only the tag column is quoted; ids and counts are plain digits.

    Args:
        rows: Report rows, already ordered.
        include_source: Append the ``channel_id`` column.
    """
    header = CSV_HEADER + (f",{CSV_SOURCE_COLUMN}" if include_source else "")
    lines = [header]
    for row in rows:
        fields = [row.identity, quote_field(row.tag), str(row.count), str(row.lookback_days)]
        if include_source:
            fields.append(row.scope_id or "")
        lines.append(",".join(fields))
    return "\n".join(lines)


def render_table(rows: Sequence[ReportRow]) -> str:
    """Render rows as a fenced monospace table for chat display."""
    name_col = max([12, *(len(r.tag) for r in rows)])
    count_col = max([5, *(len(str(r.count)) for r in rows)])

    lines = [
        f"{'User'.ljust(name_col)}  {'Msgs'.ljust(count_col)}",
        f"{'-' * name_col}  {'-' * count_col}",
    ]
    lines.extend(f"{r.tag.ljust(name_col)}  {str(r.count).ljust(count_col)}" for r in rows)
    return "```\n" + "\n".join(lines) + "\n```"


def csv_filename(scope_id: str, lookback_days: int) -> str:
    """Attachment name for a report export."""
    return f"social_activity_{scope_id}_{lookback_days}d.csv"


def render_header(
    role_name: str,
    location: str,
    lookback_days: int,
    shown: int,
    max_scanned: int,
    failed_sources: int = 0,
) -> str:
    """Two-line summary heading shown above the table."""
    lines = [
        f"**{role_name} activity in {location} (last {lookback_days}d)**",
        f"Showing top {shown} • Scanned up to {max_scanned} messages",
    ]
    if failed_sources:
        noun = "source" if failed_sources == 1 else "sources"
        lines[1] += f" • {failed_sources} {noun} skipped"
    return "\n".join(lines)
