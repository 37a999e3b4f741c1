"""Paginated history scanning.

A scan walks one source newest-to-oldest a page at a time and counts
messages from a fixed set of identities. It stops at the first of:

- an empty page (history exhausted),
- a page containing a message older than the window (the rest of that
  page is still counted, since the boundary may fall mid-page),
- the scan budget (``max_to_scan`` messages fetched),
- a failed page request, which keeps whatever was counted so far.

Between pages the scanner sleeps for a fixed pacing interval. discord.py
still handles hard 429s on its own.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable, Collection
from datetime import datetime

from roletally.errors import SourceFetchFailure
from roletally.logging import get_logger
from roletally.models import MessageSource, SourceScan, StopReason

log = get_logger("history")

DEFAULT_PAGE_SIZE = 100
DEFAULT_PACING_SECONDS = 0.35


class HistoryScanner:
    """Counts per-author messages in one source within a time window.

    The scanner keeps no state between scans; every call owns its own
    cursor and count map, so one instance may serve concurrent scans.
    """

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the scanner.

        Args:
            page_size: Messages requested per page (the API caps this at 100).
            pacing_seconds: Pause between consecutive page requests.
            sleep: Awaitable sleep, injectable for tests.
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self.pacing_seconds = pacing_seconds
        self._sleep = sleep

    async def scan(
        self,
        source: MessageSource,
        target_identities: Collection[str],
        since: datetime,
        max_to_scan: int,
    ) -> Counter[str]:
        """Count in-window messages per target identity in ``source``.

        Args:
            source: Channel or thread to walk.
            target_identities: Identities to count; everyone else is ignored.
            since: Window start. Messages created at or after it count.
            max_to_scan: Hard ceiling on messages fetched from this source.

        Returns:
            Counts keyed by identity. Identities with no messages are absent.
        """
        result = await self.scan_source(source, target_identities, since, max_to_scan)
        return result.counts

    async def scan_source(
        self,
        source: MessageSource,
        target_identities: Collection[str],
        since: datetime,
        max_to_scan: int,
    ) -> SourceScan:
        """Scan ``source`` and report how the scan went.

        Same arguments as :meth:`scan`.

        Returns:
            SourceScan with counts, pages fetched and the stop reason.
        """
        targets = (
            target_identities
            if isinstance(target_identities, (set, frozenset))
            else frozenset(target_identities)
        )
        result = SourceScan(source_id=source.id, kind=source.kind)
        cursor: str | None = None
        past_window = False

        while result.fetched < max_to_scan:
            try:
                page = await source.fetch_page(self.page_size, before_id=cursor)
            except SourceFetchFailure as e:
                log.warning(
                    "source_fetch_failed",
                    source_id=source.id,
                    source_name=source.name,
                    kind=source.kind.value,
                    pages=result.pages,
                    error=e.reason or str(e),
                )
                result.stop_reason = StopReason.FAILED
                break

            if not page:
                result.stop_reason = StopReason.EXHAUSTED
                break

            for message in page:
                if message.created_at < since:
                    past_window = True
                    continue
                if message.author_id in targets:
                    result.counts[message.author_id] += 1

            result.pages += 1
            result.fetched += len(page)
            cursor = page[-1].message_id

            if past_window:
                result.stop_reason = StopReason.WINDOW
                break

            if result.fetched >= max_to_scan:
                result.stop_reason = StopReason.BUDGET
                break

            if self.pacing_seconds > 0:
                await self._sleep(self.pacing_seconds)
        else:
            result.stop_reason = StopReason.BUDGET

        log.debug(
            "source_scan_complete",
            source_id=source.id,
            source_name=source.name,
            kind=source.kind.value,
            pages=result.pages,
            fetched=result.fetched,
            matched=sum(result.counts.values()),
            stop_reason=result.stop_reason.value,
        )
        return result
