"""Tests for report ranking and rendering."""

import pytest

from fakes import FakeMemberDirectory
from roletally.models import ReportRow
from roletally.report import (
    CSV_HEADER,
    ReportBuilder,
    clamp_display_limit,
    csv_filename,
    quote_field,
    render_csv,
    render_header,
    render_table,
)


def row(identity: str, tag: str, count: int, scope_id: str | None = "c1") -> ReportRow:
    return ReportRow(identity=identity, tag=tag, count=count, lookback_days=30, scope_id=scope_id)


@pytest.fixture
def directory() -> FakeMemberDirectory:
    return FakeMemberDirectory(tags={"1": "alice", "2": "bob", "3": "carol#0042"})


class TestClampDisplayLimit:
    """Tests for clamp_display_limit."""

    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(None, 20), (0, 1), (-5, 1), (1, 1), (20, 20), (50, 50), (9999, 50)],
    )
    def test_clamps_into_range(self, requested: int | None, expected: int) -> None:
        assert clamp_display_limit(requested) == expected


class TestReportBuilder:
    """Tests for ReportBuilder.build."""

    @pytest.mark.asyncio
    async def test_ranks_by_count(self, directory: FakeMemberDirectory) -> None:
        builder = ReportBuilder(directory, "g1")

        summary, full = await builder.build({"1": 3, "2": 1, "3": 7}, ["1", "2", "3"], 20, 30)

        assert [r.identity for r in full] == ["3", "1", "2"]
        assert summary == full

    @pytest.mark.asyncio
    async def test_ties_keep_directory_order(self, directory: FakeMemberDirectory) -> None:
        builder = ReportBuilder(directory, "g1")

        _, full = await builder.build({"1": 2, "2": 5, "3": 2}, ["3", "2", "1"], 20, 30)

        assert [r.identity for r in full] == ["2", "3", "1"]

    @pytest.mark.asyncio
    async def test_summary_truncated_full_kept(self, directory: FakeMemberDirectory) -> None:
        builder = ReportBuilder(directory, "g1")

        summary, full = await builder.build({"1": 3, "2": 2, "3": 1}, ["1", "2", "3"], 2, 30)

        assert [r.identity for r in summary] == ["1", "2"]
        assert len(full) == 3

    @pytest.mark.asyncio
    async def test_oversized_limit_clamped(self, directory: FakeMemberDirectory) -> None:
        identities = [str(i) for i in range(60)]
        builder = ReportBuilder(directory, "g1")

        summary, full = await builder.build({}, identities, 9999, 30)

        assert len(summary) == 50
        assert len(full) == 60

    @pytest.mark.asyncio
    async def test_no_limit_keeps_every_row(self, directory: FakeMemberDirectory) -> None:
        identities = [str(i) for i in range(60)]
        builder = ReportBuilder(directory, "g1")

        summary, full = await builder.build({}, identities, None, 30)

        assert len(summary) == len(full) == 60

    @pytest.mark.asyncio
    async def test_failed_tag_lookup_uses_identity(self, directory: FakeMemberDirectory) -> None:
        builder = ReportBuilder(directory, "g1")

        _, full = await builder.build({"1": 1, "99": 4}, ["1", "99"], 20, 30)

        assert [(r.identity, r.tag) for r in full] == [("99", "99"), ("1", "alice")]

    @pytest.mark.asyncio
    async def test_rows_carry_window_and_scope(self, directory: FakeMemberDirectory) -> None:
        builder = ReportBuilder(directory, "g1")

        _, full = await builder.build({"1": 1}, ["1"], 20, 14, scope_id="c7")

        assert full[0].lookback_days == 14
        assert full[0].scope_id == "c7"


class TestRenderCsv:
    """Tests for render_csv."""

    def test_header_and_rows(self) -> None:
        text = render_csv([row("1", "alice", 3), row("2", "bob", 0)])

        assert text.splitlines() == [
            CSV_HEADER + ",channel_id",
            '1,"alice",3,30,c1',
            '2,"bob",0,30,c1',
        ]

    def test_embedded_quotes_doubled(self) -> None:
        text = render_csv([row("1", 'Al"Bob', 2)])

        assert text.splitlines()[1] == '1,"Al""Bob",2,30,c1'

    def test_commas_in_tag_stay_inside_quotes(self) -> None:
        text = render_csv([row("1", "a,b", 1)], include_source=False)

        assert text.splitlines()[1] == '1,"a,b",1,30'

    def test_without_source_column(self) -> None:
        text = render_csv([row("1", "alice", 3, scope_id=None)], include_source=False)

        assert text.splitlines() == [CSV_HEADER, '1,"alice",3,30']

    def test_empty_rows_is_header_only(self) -> None:
        assert render_csv([], include_source=False) == CSV_HEADER

    def test_quote_field(self) -> None:
        assert quote_field('say "hi"') == '"say ""hi"""'


class TestRenderTable:
    """Tests for render_table."""

    def test_fenced_with_columns(self) -> None:
        text = render_table([row("1", "alice", 12), row("2", "bob", 3)])
        lines = text.splitlines()

        assert lines[0] == "```"
        assert lines[-1] == "```"
        assert lines[1].startswith("User")
        assert "Msgs" in lines[1]
        assert set(lines[2].replace(" ", "")) == {"-"}
        assert lines[3].split() == ["alice", "12"]
        assert lines[4].split() == ["bob", "3"]

    def test_long_tag_widens_column(self) -> None:
        tag = "a-really-long-member-name"
        lines = render_table([row("1", tag, 1)]).splitlines()

        assert lines[2].split()[0] == "-" * len(tag)


class TestHeadings:
    """Tests for headers and filenames."""

    def test_csv_filename(self) -> None:
        assert csv_filename("123", 30) == "social_activity_123_30d.csv"

    def test_header(self) -> None:
        text = render_header("Social Member", "#general", 30, 20, 2000)

        assert text == (
            "**Social Member activity in #general (last 30d)**\n"
            "Showing top 20 • Scanned up to 2000 messages"
        )

    def test_header_mentions_skipped_sources(self) -> None:
        assert render_header("R", "the server", 7, 5, 100, failed_sources=1).endswith(
            "• 1 source skipped"
        )
        assert render_header("R", "the server", 7, 5, 100, failed_sources=3).endswith(
            "• 3 sources skipped"
        )
