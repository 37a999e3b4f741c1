"""discord.py adapters for the directory and history interfaces.

The core only sees ``MessageSource``, ``MemberDirectory`` and
``ChannelDirectory``. These classes implement them on top of a connected
``discord.Client`` and translate discord.py and transport exceptions
(connection resets, timeouts) into the activity error taxonomy.
"""

from __future__ import annotations

import asyncio

import aiohttp
import discord

from roletally.errors import (
    DirectoryLookupFailure,
    MembershipUnavailable,
    SourceFetchFailure,
    UnsupportedSourceType,
)
from roletally.logging import get_logger
from roletally.membership import MemberInfo, RoleInfo
from roletally.models import MessageRecord, SourceKind

log = get_logger("gateway")

# Request failures below the discord.py HTTP layer: resets, DNS, timeouts.
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def format_tag(user: discord.abc.User) -> str:
    """Render a user as ``name#discriminator``.

    Accounts migrated to unique usernames report discriminator ``"0"`` and
    are rendered as the bare username.
    """
    discriminator = getattr(user, "discriminator", "0") or "0"
    if discriminator == "0":
        return user.name
    return f"{user.name}#{discriminator}"


class DiscordHistorySource:
    """A text channel or thread, paged through ``channel.history``."""

    def __init__(self, channel: discord.TextChannel | discord.Thread) -> None:
        self.channel = channel
        self.id = str(channel.id)
        self.name = channel.name
        self.kind = SourceKind.THREAD if isinstance(channel, discord.Thread) else SourceKind.CHANNEL

    def __repr__(self) -> str:
        return f"<DiscordHistorySource {self.kind.value} {self.id} {self.name!r}>"

    @property
    def location(self) -> str:
        """How the source reads in a report heading."""
        if self.kind == SourceKind.THREAD:
            return "this thread"
        return f"#{self.name}"

    async def fetch_page(self, limit: int, before_id: str | None = None) -> list[MessageRecord]:
        """Fetch up to ``limit`` messages older than ``before_id``, newest first.

        Raises:
            SourceFetchFailure: If Discord rejects or fails the request.
        """
        before = discord.Object(id=int(before_id)) if before_id else None
        try:
            return [
                MessageRecord(
                    message_id=str(message.id),
                    author_id=str(message.author.id),
                    created_at=message.created_at,
                )
                async for message in self.channel.history(limit=limit, before=before)
            ]
        except (discord.HTTPException, *TRANSPORT_ERRORS) as e:
            raise SourceFetchFailure(self.id, str(e)) from e


def source_from_channel(channel: object) -> DiscordHistorySource:
    """Wrap the channel an interaction came from.

    Raises:
        UnsupportedSourceType: For DMs, voice, forum parents, categories and
            anything else without a plain message history.
    """
    if isinstance(channel, (discord.TextChannel, discord.Thread)):
        return DiscordHistorySource(channel)
    raise UnsupportedSourceType(type(channel).__name__ if channel is not None else None)


async def _get_guild(client: discord.Client, group_id: str) -> discord.Guild:
    guild = client.get_guild(int(group_id))
    if guild is None:
        guild = await client.fetch_guild(int(group_id))
    return guild


class DiscordMemberDirectory:
    """Member and role lookups for guilds the client can see."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def fetch_roles(self, group_id: str) -> list[RoleInfo]:
        """List a guild's roles.

        Raises:
            MembershipUnavailable: If the guild or its roles cannot be loaded.
        """
        try:
            guild = await _get_guild(self.client, group_id)
            roles = guild.roles or await guild.fetch_roles()
        except (discord.HTTPException, *TRANSPORT_ERRORS) as e:
            raise MembershipUnavailable(group_id, str(e)) from e
        return [RoleInfo(id=str(r.id), name=r.name) for r in roles]

    async def fetch_members(self, group_id: str) -> list[MemberInfo]:
        """List every member with their role ids.

        Uses the gateway member cache when the guild is fully chunked and
        falls back to paging the members endpoint otherwise. Both require
        the privileged members intent.

        Raises:
            MembershipUnavailable: If members cannot be listed.
        """
        try:
            guild = await _get_guild(self.client, group_id)
            if guild.chunked:
                members = list(guild.members)
            else:
                members = [m async for m in guild.fetch_members(limit=None)]
        except (discord.HTTPException, discord.ClientException, *TRANSPORT_ERRORS) as e:
            raise MembershipUnavailable(group_id, str(e)) from e

        log.debug("members_fetched", group_id=group_id, members=len(members))
        return [
            MemberInfo(id=str(m.id), role_ids=frozenset(str(r.id) for r in m.roles))
            for m in members
        ]

    async def lookup_tag(self, group_id: str, identity: str) -> str:
        """Resolve a member's display tag, cache first.

        Raises:
            DirectoryLookupFailure: If the member cannot be found.
        """
        try:
            guild = await _get_guild(self.client, group_id)
            member = guild.get_member(int(identity))
            if member is None:
                member = await guild.fetch_member(int(identity))
        except (discord.HTTPException, ValueError, *TRANSPORT_ERRORS) as e:
            raise DirectoryLookupFailure(identity, str(e)) from e
        return format_tag(member)


class DiscordChannelDirectory:
    """Enumerates text channels and their threads.

    The guild-wide active thread list is fetched once per enumeration and
    shared by every channel in it. Listing a guild's text channels starts a
    new enumeration and drops the previous list.
    """

    def __init__(self, client: discord.Client) -> None:
        self.client = client
        self._active_threads: dict[int, list[discord.Thread]] = {}

    async def list_text_channels(self, group_id: str) -> list[DiscordHistorySource]:
        """List text channels the bot can read history in.

        Raises:
            SourceFetchFailure: If the channel list cannot be loaded.
        """
        try:
            guild = await _get_guild(self.client, group_id)
            channels = guild.text_channels or [
                c for c in await guild.fetch_channels() if isinstance(c, discord.TextChannel)
            ]
        except (discord.HTTPException, *TRANSPORT_ERRORS) as e:
            raise SourceFetchFailure(group_id, str(e)) from e

        self._active_threads.pop(guild.id, None)
        me = guild.me
        sources = []
        for channel in channels:
            if me is not None and not channel.permissions_for(me).read_message_history:
                log.debug("channel_unreadable", channel_id=str(channel.id), channel_name=channel.name)
                continue
            sources.append(DiscordHistorySource(channel))
        return sources

    async def list_active_threads(self, channel: DiscordHistorySource) -> list[DiscordHistorySource]:
        """List active threads whose parent is ``channel``.

        Raises:
            SourceFetchFailure: If the active thread list cannot be loaded.
        """
        parent = channel.channel
        guild = parent.guild
        threads = self._active_threads.get(guild.id)
        if threads is None:
            try:
                threads = await guild.active_threads()
            except (discord.HTTPException, *TRANSPORT_ERRORS) as e:
                raise SourceFetchFailure(channel.id, str(e)) from e
            self._active_threads[guild.id] = threads
        return [DiscordHistorySource(t) for t in threads if t.parent_id == parent.id]

    async def list_archived_threads(
        self, channel: DiscordHistorySource, limit: int
    ) -> list[DiscordHistorySource]:
        """Fetch one page of archived public threads under ``channel``.

        Raises:
            SourceFetchFailure: If the archive listing fails.
        """
        parent = channel.channel
        if not isinstance(parent, discord.TextChannel):
            return []
        try:
            return [
                DiscordHistorySource(t)
                async for t in parent.archived_threads(limit=limit)
            ]
        except (discord.HTTPException, *TRANSPORT_ERRORS) as e:
            raise SourceFetchFailure(channel.id, str(e)) from e
