"""Representation of authentication outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field

from .enums import AuthFailure, RoleStatus
from .ldap import LDAPUser

__all__ = ["AuthResult", "RoleResolution"]


@dataclass(frozen=True, slots=True)
class RoleResolution:
    """Result of resolving the roles of a user."""

    status: RoleStatus
    """Whether roles were resolved, skipped, or could not be resolved."""

    roles: frozenset[str] = field(default_factory=frozenset)
    """Role tokens found, always empty unless roles were resolved."""


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Result of an authentication attempt.

    Only expected negative outcomes are represented here.  Errors caused by
    the directory or its configuration are raised as exceptions instead.
    """

    user: LDAPUser | None = None
    """The authenticated user with roles, if authentication succeeded."""

    failure: AuthFailure | None = None
    """Why authentication failed, if it did."""

    @property
    def success(self) -> bool:
        """Whether the user was found and the password accepted."""
        return self.user is not None and self.failure is None

    def __bool__(self) -> bool:
        return self.success
