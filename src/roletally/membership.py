"""Resolve which members hold the tracked role."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from roletally.errors import RoleNotFound
from roletally.logging import get_logger

log = get_logger("membership")


@dataclass(frozen=True)
class RoleInfo:
    """A role in a group's role directory."""

    id: str
    name: str


@dataclass(frozen=True)
class MemberInfo:
    """A member snapshot: identity plus the ids of roles they hold."""

    id: str
    role_ids: frozenset[str] = field(default_factory=frozenset)


class MemberDirectory(Protocol):
    """Directory service for one or more groups (Discord guilds)."""

    async def fetch_roles(self, group_id: str) -> list[RoleInfo]:
        """Return the group's roles. Raises MembershipUnavailable on failure."""
        ...

    async def fetch_members(self, group_id: str) -> Iterable[MemberInfo]:
        """Return every member of the group. Raises MembershipUnavailable."""
        ...

    async def lookup_tag(self, group_id: str, identity: str) -> str:
        """Return a display tag. Raises DirectoryLookupFailure."""
        ...


class MembershipResolver:
    """Turns a role selector into the set of identities holding that role."""

    def __init__(self, directory: MemberDirectory) -> None:
        self.directory = directory

    async def find_role(
        self,
        group_id: str,
        role_id: str | None = None,
        role_name: str | None = None,
    ) -> RoleInfo:
        """Find a role by explicit id, falling back to exact name match.

        Raises:
            RoleNotFound: If neither selector matches a role.
        """
        roles = await self.directory.fetch_roles(group_id)

        if role_id:
            for role in roles:
                if role.id == role_id:
                    return role
            raise RoleNotFound(role_id=role_id)

        if role_name:
            for role in roles:
                if role.name == role_name:
                    return role

        raise RoleNotFound(role_name=role_name)

    async def resolve(
        self,
        group_id: str,
        role_id: str | None = None,
        role_name: str | None = None,
    ) -> list[str]:
        """Return identities currently holding the selected role.

        The role is checked before the (slow) member fetch so that a bad
        selector fails fast. The result is de-duplicated and keeps the
        directory's member order, which later serves as the report's
        tie-break order.

        Args:
            group_id: Guild id.
            role_id: Explicit role id. Preferred when set.
            role_name: Role name, used only when ``role_id`` is not set.

        Returns:
            Member identities holding the role.

        Raises:
            RoleNotFound: If the role cannot be found.
            MembershipUnavailable: If the member directory cannot be loaded.
        """
        role = await self.find_role(group_id, role_id=role_id, role_name=role_name)
        members = await self.directory.fetch_members(group_id)

        identities = list(
            dict.fromkeys(m.id for m in members if role.id in m.role_ids)
        )

        log.info(
            "membership_resolved",
            group_id=group_id,
            role_id=role.id,
            role_name=role.name,
            members=len(identities),
        )
        return identities
