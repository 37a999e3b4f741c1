"""Tests for source enumeration."""

import pytest

from fakes import FakeChannelDirectory, FakeSource
from roletally.errors import UnsupportedSourceType
from roletally.models import ScopeKind, SourceKind
from roletally.sources import ReportScope, SourceEnumerator, validate_origin


async def collect(enumerator: SourceEnumerator, scope: ReportScope) -> list[str]:
    return [s.id async for s in enumerator.enumerate(scope)]


def thread(thread_id: str) -> FakeSource:
    return FakeSource(thread_id, kind=SourceKind.THREAD)


@pytest.fixture
def directory() -> FakeChannelDirectory:
    return FakeChannelDirectory(
        channels=[FakeSource("c1"), FakeSource("c2")],
        active={"c1": [thread("t1")], "c2": [thread("t3")]},
        archived={"c1": [thread("t2")]},
    )


class TestSingleScope:
    """Tests for single-origin scopes."""

    @pytest.mark.asyncio
    async def test_yields_origin_only(self, directory: FakeChannelDirectory) -> None:
        origin = FakeSource("c9")
        enumerator = SourceEnumerator(directory)

        assert await collect(enumerator, ReportScope.single(origin)) == ["c9"]

    @pytest.mark.asyncio
    async def test_thread_origin(self, directory: FakeChannelDirectory) -> None:
        enumerator = SourceEnumerator(directory)

        assert await collect(enumerator, ReportScope.single(thread("t9"))) == ["t9"]

    @pytest.mark.asyncio
    async def test_missing_origin_rejected(self, directory: FakeChannelDirectory) -> None:
        enumerator = SourceEnumerator(directory)
        scope = ReportScope(kind=ScopeKind.SINGLE, scope_id="x", origin=None)

        with pytest.raises(UnsupportedSourceType):
            await collect(enumerator, scope)

    def test_validate_origin_rejects_unknown_kind(self) -> None:
        origin = FakeSource("v1")
        origin.kind = "voice"  # type: ignore[assignment]

        with pytest.raises(UnsupportedSourceType):
            validate_origin(origin)

    def test_single_scope_id_is_origin_id(self) -> None:
        scope = ReportScope.single(FakeSource("c5"))

        assert scope.kind == ScopeKind.SINGLE
        assert scope.scope_id == "c5"


class TestBroadScope:
    """Tests for server-wide scopes."""

    @pytest.mark.asyncio
    async def test_channels_then_their_threads(self, directory: FakeChannelDirectory) -> None:
        enumerator = SourceEnumerator(directory)

        ids = await collect(enumerator, ReportScope.broad("g1"))

        assert ids == ["c1", "t1", "t2", "c2", "t3"]

    @pytest.mark.asyncio
    async def test_threads_excluded(self, directory: FakeChannelDirectory) -> None:
        enumerator = SourceEnumerator(directory)

        ids = await collect(enumerator, ReportScope.broad("g1", include_threads=False))

        assert ids == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_archived_listing_limited_to_one_page(self) -> None:
        """Only the first archived page is requested, with the page size as limit."""
        archived = [thread(f"a{i}") for i in range(5)]
        directory = FakeChannelDirectory(channels=[FakeSource("c1")], archived={"c1": archived})
        enumerator = SourceEnumerator(directory, archived_page_size=3)

        ids = await collect(enumerator, ReportScope.broad("g1"))

        assert ids == ["c1", "a0", "a1", "a2"]
        assert directory.archived_limits == [3]

    @pytest.mark.asyncio
    async def test_thread_seen_active_and_archived_yielded_once(self) -> None:
        directory = FakeChannelDirectory(
            channels=[FakeSource("c1")],
            active={"c1": [thread("t1")]},
            archived={"c1": [thread("t1"), thread("t2")]},
        )
        enumerator = SourceEnumerator(directory)

        assert await collect(enumerator, ReportScope.broad("g1")) == ["c1", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_active_thread_failure_skips_only_those(self, directory: FakeChannelDirectory) -> None:
        """A failed active-thread listing keeps the channel and archived threads."""
        directory.failing = {("active", "c1")}
        enumerator = SourceEnumerator(directory)

        ids = await collect(enumerator, ReportScope.broad("g1"))

        assert ids == ["c1", "t2", "c2", "t3"]

    @pytest.mark.asyncio
    async def test_archived_failure_is_not_fatal(self, directory: FakeChannelDirectory) -> None:
        directory.failing = {("archived", "c1"), ("archived", "c2")}
        enumerator = SourceEnumerator(directory)

        ids = await collect(enumerator, ReportScope.broad("g1"))

        assert ids == ["c1", "t1", "c2", "t3"]

    @pytest.mark.asyncio
    async def test_channel_list_failure_yields_nothing(self, directory: FakeChannelDirectory) -> None:
        directory.failing = {("channels", "g1")}
        enumerator = SourceEnumerator(directory)

        assert await collect(enumerator, ReportScope.broad("g1")) == []
