"""Exceptions for Porthor."""

from __future__ import annotations

from safir.slack.blockkit import SlackException

__all__ = [
    "AmbiguousUserError",
    "DirectoryConfigError",
    "DirectoryError",
    "GroupRecursionError",
    "InvalidUsernameError",
    "LDAPError",
    "PreconditionError",
    "RoleConfigMissingError",
]


class InvalidUsernameError(Exception):
    """The username cannot be used for a directory search.

    Raised before any directory call is made, so the directory never sees a
    search that could match every entry.
    """


class PreconditionError(Exception):
    """A resolution step was invoked without the data it requires."""


class DirectoryError(SlackException):
    """Base class for errors caused by the directory or its configuration.

    The affected username or bind identity, if known, is available as
    ``user``.  These are never the user's fault and should be reported to
    operators, but must not be exposed to the person trying to
    authenticate, since the distinction between them and a simple
    authentication failure leaks information about the directory.
    """


class LDAPError(DirectoryError):
    """The LDAP server could not be queried."""


class DirectoryConfigError(DirectoryError):
    """The directory contents or search configuration are inconsistent."""


class AmbiguousUserError(DirectoryConfigError):
    """A username search returned more than one entry."""


class GroupRecursionError(DirectoryConfigError):
    """Group membership was nested too deeply, probably due to a cycle."""


class RoleConfigMissingError(DirectoryConfigError):
    """Roles were requested but no role search is configured."""
