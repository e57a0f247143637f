"""Resolution of usernames to directory entries."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..constants import WILDCARD_USERNAME
from ..exceptions import (
    AmbiguousUserError,
    InvalidUsernameError,
    PreconditionError,
)
from ..models.ldap import LDAPUser
from ..storage.ldap import DirectoryClient

__all__ = ["UserResolver", "validate_username"]


def validate_username(username: str) -> None:
    """Check that a username can safely be used for a directory operation.

    Parameters
    ----------
    username
        Username as supplied by the user.

    Raises
    ------
    InvalidUsernameError
        Raised if the username is the wildcard, which would match every
        entry in a search.
    PreconditionError
        Raised if the username is empty.
    """
    if not username:
        raise PreconditionError("Username not set")
    if username == WILDCARD_USERNAME:
        raise InvalidUsernameError("Invalid username given")


class UserResolver:
    """Find the single directory entry for a username.

    Parameters
    ----------
    directory
        Client for the directory holding user entries.
    logger
        Logger to use.
    """

    def __init__(
        self, directory: DirectoryClient, logger: BoundLogger
    ) -> None:
        self._directory = directory
        self._config = directory.config.user
        self._logger = logger

    async def resolve(self, username: str) -> LDAPUser | None:
        """Look up the entry of a user.

        Parameters
        ----------
        username
            Username as supplied by the user.

        Returns
        -------
        LDAPUser or None
            The user with attributes filled in but roles not yet resolved,
            or `None` if no entry matches the username.

        Raises
        ------
        AmbiguousUserError
            Raised if more than one entry matches the username.
        InvalidUsernameError
            Raised if the username is the wildcard.
        LDAPError
            Raised if the directory could not be searched.
        PreconditionError
            Raised if the username is empty.
        """
        validate_username(username)

        escaped = self._directory.escape(username)
        name_attr = self._config.name_attribute
        search = f"(&{self._config.filter}({name_attr}={escaped}))"
        logger = self._logger.bind(ldap_search=search, user=username)
        attributes = list(self._config.attributes)
        email_attr = self._config.email_attribute
        if email_attr and email_attr not in attributes:
            attributes.append(email_attr)
        entries = await self._directory.search(
            self._config.base_dn, search, attributes
        )

        if not entries:
            logger.debug("No LDAP entry found for user")
            return None
        if len(entries) > 1:
            msg = f"Search for user returned {len(entries)} entries"
            logger.error(msg, ldap_dns=[e.dn for e in entries])
            raise AmbiguousUserError(msg, username)
        entry = entries[0]
        logger.debug("Found LDAP entry for user", ldap_dn=entry.dn)

        values = {}
        for name in self._config.attributes:
            value = entry.first(name)
            if value is not None:
                values[name] = value
        email = entry.first(email_attr) if email_attr else None
        return LDAPUser(
            dn=entry.dn,
            username=username,
            attributes=values,
            email=email or "",
        )
