"""Enums used in Porthor models and configuration."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "AuthFailure",
    "RoleStatus",
    "UserIdField",
]


class AuthFailure(Enum):
    """Reason an authentication attempt was refused."""

    not_found = "not_found"
    """No user entry matched the username."""

    bind_rejected = "bind_rejected"
    """The directory did not accept the password."""


class RoleStatus(Enum):
    """Outcome of resolving the roles of a user."""

    resolved = "resolved"
    """Roles were searched for (possibly finding none)."""

    skipped = "skipped"
    """No role search is configured and that is allowed."""

    missing_config = "missing_config"
    """No role search is configured and roles are required."""


class UserIdField(Enum):
    """Which key of a member is stored in group membership attributes."""

    dn = "dn"
    """The distinguished name of the member entry."""

    username = "username"
    """The username of the member (or name of a nested group)."""
