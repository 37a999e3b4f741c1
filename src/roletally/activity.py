"""Run role-scoped activity reports.

This is where the pieces meet: membership is resolved first so that a bad
role or an unreachable member list aborts before any history is requested,
then every source in scope is scanned into its own count map, the maps are
merged, and the merged totals are ranked into report rows.

Sources are scanned through a bounded worker pool (``max_concurrency``,
default 1). Each scan owns its private map and only the merge step sees
them all, so the pool size never changes the totals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from roletally.aggregate import merge_counts, reindex
from roletally.config import Config
from roletally.history import HistoryScanner
from roletally.logging import get_logger
from roletally.membership import MemberDirectory, MembershipResolver
from roletally.models import (
    ActivityReport,
    MessageSource,
    ReportRow,
    ScopeKind,
    SourceKind,
    SourceScan,
)
from roletally.report import ReportBuilder
from roletally.sources import (
    ChannelDirectory,
    ReportScope,
    SourceEnumerator,
    validate_origin,
)

log = get_logger("activity")


@dataclass
class ActivityRequest:
    """One report request, built by the transport layer.

    Attributes:
        group_id: Guild whose role holders are counted.
        scope: Which sources to scan.
        lookback_days: Window length in days.
        display_limit: Summary size; None for exports with no summary.
    """

    group_id: str
    scope: ReportScope
    lookback_days: int
    display_limit: int | None = None


class ActivityService:
    """Resolves members, scans sources and builds reports.

    The directories are session handles supplied by the caller (normally
    adapters around the running discord.py client); the service holds no
    global state of its own.
    """

    def __init__(
        self,
        members: MemberDirectory,
        channels: ChannelDirectory,
        config: Config,
        scanner: HistoryScanner | None = None,
    ) -> None:
        self.members = members
        self.channels = channels
        self.config = config
        self.scanner = scanner or HistoryScanner(
            page_size=config.activity.page_size,
            pacing_seconds=config.activity.pacing_seconds,
        )
        self.resolver = MembershipResolver(members)
        self.enumerator = SourceEnumerator(
            channels, archived_page_size=config.activity.page_size
        )

    def clamp_days(self, lookback_days: int | None) -> int:
        """Clamp a requested lookback into 1..max_days."""
        activity = self.config.activity
        if lookback_days is None:
            lookback_days = activity.default_days
        return max(1, min(activity.max_days, lookback_days))

    def budget_for(self, scope: ReportScope, source: MessageSource) -> int:
        """Scan budget for ``source`` under ``scope``."""
        activity = self.config.activity
        if scope.kind == ScopeKind.SINGLE:
            return activity.max_fetch
        if source.kind == SourceKind.THREAD:
            return activity.thread_budget
        return activity.max_messages_per_channel

    async def run_activity_report(
        self,
        request: ActivityRequest,
        now: datetime | None = None,
    ) -> ActivityReport:
        """Run one report end to end.

        Args:
            request: What to count and where.
            now: Reference time for the window (defaults to current UTC).

        Returns:
            ActivityReport with ranked rows and source counts.

        Raises:
            RoleNotFound: If the configured role does not exist.
            MembershipUnavailable: If members cannot be listed.
            UnsupportedSourceType: If a single-scope origin is not a
                text channel or thread.
        """
        lookback_days = self.clamp_days(request.lookback_days)
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=lookback_days)
        scope = request.scope

        log.info(
            "report_started",
            group_id=request.group_id,
            scope=scope.kind.value,
            scope_id=scope.scope_id,
            lookback_days=lookback_days,
        )

        if scope.kind == ScopeKind.SINGLE:
            validate_origin(scope.origin)

        identities = await self.resolver.resolve(
            request.group_id,
            role_id=self.config.role.role_id,
            role_name=self.config.role.role_name,
        )

        report = ActivityReport(
            lookback_days=lookback_days,
            since=since,
            scope_id=scope.scope_id,
            scope_kind=scope.kind,
            target_count=len(identities),
        )

        if not identities:
            log.warning("report_no_members", group_id=request.group_id)
            return report

        scans = await self.scan_all(scope, identities, since)
        totals = reindex(merge_counts(s.counts for s in scans), identities)

        builder = ReportBuilder(self.members, request.group_id)
        summary_rows, full_rows = await builder.build(
            totals,
            identities,
            request.display_limit,
            lookback_days,
            scope_id=scope.scope_id if scope.kind == ScopeKind.SINGLE else None,
        )

        report.summary_rows = summary_rows
        report.full_rows = full_rows
        report.scanned_source_count = len(scans)
        report.failed_source_count = sum(1 for s in scans if s.failed)

        log.info(
            "report_complete",
            group_id=request.group_id,
            scope=scope.kind.value,
            scope_id=scope.scope_id,
            members=len(identities),
            sources=report.scanned_source_count,
            failed_sources=report.failed_source_count,
            messages_counted=sum(totals.values()),
        )
        return report

    async def run_batch_report(
        self,
        group_id: str,
        lookback_days: int | None = None,
        include_threads: bool | None = None,
        now: datetime | None = None,
    ) -> list[ReportRow]:
        """Server-wide report with no display limit.

        Returns:
            Every target identity's row, ranked.
        """
        if include_threads is None:
            include_threads = self.config.activity.include_threads

        report = await self.run_activity_report(
            ActivityRequest(
                group_id=group_id,
                scope=ReportScope.broad(group_id, include_threads=include_threads),
                lookback_days=lookback_days or self.config.activity.default_days,
                display_limit=None,
            ),
            now=now,
        )
        return report.full_rows

    async def scan_all(
        self,
        scope: ReportScope,
        identities: Sequence[str],
        since: datetime,
    ) -> list[SourceScan]:
        """Scan every source in ``scope`` through the bounded worker pool."""
        targets = frozenset(identities)
        semaphore = asyncio.Semaphore(self.config.activity.max_concurrency)

        async def scan_one(source: MessageSource) -> SourceScan:
            async with semaphore:
                return await self.scanner.scan_source(
                    source, targets, since, self.budget_for(scope, source)
                )

        tasks: list[asyncio.Task[SourceScan]] = []
        try:
            async for source in self.enumerator.enumerate(scope):
                tasks.append(asyncio.create_task(scan_one(source)))
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
