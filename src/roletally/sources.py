"""Discover the message sources a report should scan.

A single-scope report scans exactly the channel or thread it was asked
from. A broad report lists every text channel in the server and, when
threads are included, each channel's active threads plus the first page of
its archived public threads. Archived-thread pagination is not
followed past that page.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from roletally.errors import SourceFetchFailure, UnsupportedSourceType
from roletally.logging import get_logger
from roletally.models import MessageSource, ScopeKind, SourceKind

log = get_logger("sources")


class ChannelDirectory(Protocol):
    """Enumerates child sources of a server."""

    async def list_text_channels(self, group_id: str) -> list[MessageSource]:
        """Return the server's text channels. Raises SourceFetchFailure."""
        ...

    async def list_active_threads(self, channel: MessageSource) -> list[MessageSource]:
        """Return active threads under a channel. Raises SourceFetchFailure."""
        ...

    async def list_archived_threads(
        self, channel: MessageSource, limit: int
    ) -> list[MessageSource]:
        """Return one page of archived public threads. Raises SourceFetchFailure."""
        ...


@dataclass
class ReportScope:
    """Which sources a report covers.

    Attributes:
        kind: Single origin or the whole server.
        scope_id: Origin source id for single scope, guild id for broad.
        origin: The source the request came from (single scope only).
        include_threads: Whether broad scope descends into threads.
    """

    kind: ScopeKind
    scope_id: str
    origin: MessageSource | None = None
    include_threads: bool = True

    @classmethod
    def single(cls, origin: MessageSource) -> "ReportScope":
        """Scope covering only the origin channel or thread."""
        return cls(kind=ScopeKind.SINGLE, scope_id=origin.id, origin=origin)

    @classmethod
    def broad(cls, group_id: str, include_threads: bool = True) -> "ReportScope":
        """Scope covering every text channel in a server."""
        return cls(kind=ScopeKind.BROAD, scope_id=group_id, include_threads=include_threads)


class SourceEnumerator:
    """Lazily yields the sources for a scope."""

    def __init__(self, directory: ChannelDirectory, archived_page_size: int = 100) -> None:
        self.directory = directory
        self.archived_page_size = archived_page_size

    async def enumerate(self, scope: ReportScope) -> AsyncIterator[MessageSource]:
        """Yield every source in ``scope``.

        Raises:
            UnsupportedSourceType: Single scope whose origin is not a text
                channel or thread.
        """
        if scope.kind == ScopeKind.SINGLE:
            yield validate_origin(scope.origin)
            return

        async for source in self._enumerate_broad(scope.scope_id, scope.include_threads):
            yield source

    async def _enumerate_broad(
        self, group_id: str, include_threads: bool
    ) -> AsyncIterator[MessageSource]:
        try:
            channels = await self.directory.list_text_channels(group_id)
        except SourceFetchFailure as e:
            log.warning("channel_list_failed", group_id=group_id, error=e.reason or str(e))
            return

        for channel in channels:
            yield channel

            if not include_threads:
                continue

            seen: set[str] = set()
            for thread in await self._threads(channel):
                if thread.id in seen:
                    continue
                seen.add(thread.id)
                yield thread

    async def _threads(self, channel: MessageSource) -> list[MessageSource]:
        threads: list[MessageSource] = []

        try:
            threads.extend(await self.directory.list_active_threads(channel))
        except SourceFetchFailure as e:
            log.warning(
                "active_threads_skipped",
                channel_id=channel.id,
                channel_name=channel.name,
                error=e.reason or str(e),
            )

        try:
            threads.extend(
                await self.directory.list_archived_threads(channel, self.archived_page_size)
            )
        except SourceFetchFailure as e:
            log.warning(
                "archived_threads_skipped",
                channel_id=channel.id,
                channel_name=channel.name,
                error=e.reason or str(e),
            )

        return threads


def validate_origin(origin: MessageSource | None) -> MessageSource:
    """Check that a single-scope origin has scannable history.

    Raises:
        UnsupportedSourceType: If origin is missing or not a channel/thread.
    """
    kind = getattr(origin, "kind", None)
    if origin is None or kind not in (SourceKind.CHANNEL, SourceKind.THREAD):
        raise UnsupportedSourceType(getattr(kind, "value", None))
    return origin
