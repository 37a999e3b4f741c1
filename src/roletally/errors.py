"""Error taxonomy for activity reports.

Fatal errors (role, membership, unsupported origin) abort a report before
any history is requested. Per-source and per-identity errors are caught
inside the core and degrade that one source or tag; they never reach the
caller.
"""

from __future__ import annotations


class ActivityError(Exception):
    """Base class for activity report errors.

    Attributes:
        user_message: Short explanation suitable for showing to the
            person who asked for the report.
    """

    user_message = "Something went wrong while counting."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class RoleNotFound(ActivityError):
    """Neither the configured role id nor role name exists in the group."""

    def __init__(self, role_id: str | None = None, role_name: str | None = None) -> None:
        self.role_id = role_id
        self.role_name = role_name
        if role_id:
            message = f"Role not found: id {role_id}."
        else:
            message = (
                f'Role not found: "{role_name}". '
                "Set role.role_id in the configuration for reliability."
            )
        super().__init__(message)


class MembershipUnavailable(ActivityError):
    """The member directory for a group could not be loaded."""

    def __init__(self, group_id: str, reason: str | None = None) -> None:
        self.group_id = group_id
        self.reason = reason
        message = f"Could not load the member list for server {group_id}."
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnsupportedSourceType(ActivityError):
    """The request originated somewhere that has no message history to scan."""

    def __init__(self, kind: str | None = None) -> None:
        self.kind = kind
        super().__init__(
            "This command must be used in a text channel or thread within a server."
        )


class SourceFetchFailure(ActivityError):
    """A history page request for one source failed."""

    def __init__(self, source_id: str, reason: str | None = None) -> None:
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"History fetch failed for source {source_id}: {reason or 'unknown'}")


class DirectoryLookupFailure(ActivityError):
    """A member's display tag could not be resolved."""

    def __init__(self, identity: str, reason: str | None = None) -> None:
        self.identity = identity
        self.reason = reason
        super().__init__(f"Could not resolve member {identity}: {reason or 'unknown'}")
