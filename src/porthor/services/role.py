"""Resolution of group memberships into role tokens."""

from __future__ import annotations

import re

from structlog.stdlib import BoundLogger

from ..config import RoleConfig
from ..constants import MAX_GROUP_DEPTH, ROLE_PREFIX
from ..exceptions import (
    GroupRecursionError,
    PreconditionError,
    RoleConfigMissingError,
)
from ..models.auth import RoleResolution
from ..models.enums import RoleStatus, UserIdField
from ..models.ldap import LDAPEntry, LDAPUser
from ..storage.ldap import DirectoryClient

_NON_WORD_REGEX = re.compile(r"\W+", re.ASCII)
"""Runs of characters replaced by a single underscore in role names."""

__all__ = ["RoleResolver", "slugify"]


def slugify(name: str) -> str:
    """Convert a group name to the canonical form used in role tokens.

    Every run of characters other than ASCII letters, digits, and underscore
    is replaced by a single underscore, leading and trailing underscores are
    removed, and the result is upper-cased.

    Parameters
    ----------
    name
        Name of the group.

    Returns
    -------
    str
        Slugified name, such as ``SITE_ADMINS`` for ``Site Admins!!``.
    """
    return _NON_WORD_REGEX.sub("_", name).strip("_").upper()


class RoleResolver:
    """Find the roles of a user by searching for group memberships.

    Parameters
    ----------
    directory
        Client for the directory holding group entries.
    logger
        Logger to use.
    """

    def __init__(
        self, directory: DirectoryClient, logger: BoundLogger
    ) -> None:
        self._directory = directory
        self._config = directory.config.role
        self._skip_roles = directory.config.client.skip_roles
        self._logger = logger

    async def resolve_for_user(self, user: LDAPUser | None) -> RoleResolution:
        """Resolve the roles of a user.

        Parameters
        ----------
        user
            User whose roles should be resolved.

        Returns
        -------
        RoleResolution
            The roles of the user.  If no role search is configured, the
            status says whether that is tolerated and no roles are returned.

        Raises
        ------
        GroupRecursionError
            Raised if groups are nested too deeply.
        LDAPError
            Raised if the directory could not be searched.
        PreconditionError
            Raised if no user was given.
        """
        if user is None:
            msg = "Roles can only be resolved once a user has been found"
            raise PreconditionError(msg)
        if not self._config:
            if self._skip_roles:
                self._logger.debug("Role search not configured, skipping")
                return RoleResolution(status=RoleStatus.skipped)
            return RoleResolution(status=RoleStatus.missing_config)

        if self._config.user_id_field == UserIdField.dn:
            key = user.dn
        else:
            key = user.username
        roles = await self.resolve_roles(key)
        return RoleResolution(status=RoleStatus.resolved, roles=roles)

    async def resolve_roles(self, key: str, depth: int = 0) -> frozenset[str]:
        """Resolve the roles granted to a member key.

        Parameters
        ----------
        key
            Identifying key of the member, as stored in the membership
            attribute of group entries.
        depth
            Nesting depth of this search, zero for the user.

        Returns
        -------
        frozenset of str
            Role tokens of all groups of which the key is a member,
            including groups reachable through nested membership if
            recursive search is enabled.

        Raises
        ------
        GroupRecursionError
            Raised if groups are nested too deeply.  Any roles found so far
            are discarded.
        LDAPError
            Raised if the directory could not be searched.
        RoleConfigMissingError
            Raised if no role search is configured.
        """
        config = self._config
        if not config:
            msg = "Role search not configured, set skipRoles to ignore roles"
            raise RoleConfigMissingError(msg)
        if depth >= MAX_GROUP_DEPTH:
            msg = f"Group membership nested at least {depth} levels deep"
            self._logger.error(msg, ldap_member=key)
            raise GroupRecursionError(msg)

        escaped = self._directory.escape(key)
        member_attr = config.user_attribute
        search = f"(&{config.filter}({member_attr}={escaped}))"
        logger = self._logger.bind(
            ldap_search=search, ldap_member=key, depth=depth
        )
        name_attr = config.name_attribute
        entries = await self._directory.search(
            config.base_dn, search, [name_attr]
        )
        logger.debug("LDAP groups found", ldap_dns=[e.dn for e in entries])

        roles: set[str] = set()
        for entry in entries:
            name = entry.first(name_attr)
            if name is None:
                logger.warning("LDAP group has no name", ldap_dn=entry.dn)
            elif not slugify(name):
                logger.warning(f"LDAP group name {name} invalid, ignoring")
            else:
                roles.add(ROLE_PREFIX + slugify(name))
            if not config.recursive_search:
                continue
            nested_key = self._get_member_key(entry, config)
            if nested_key is not None:
                roles |= await self.resolve_roles(nested_key, depth + 1)

        return frozenset(roles)

    def _get_member_key(
        self, entry: LDAPEntry, config: RoleConfig
    ) -> str | None:
        """Return the key by which a group is listed as a member.

        In ``username`` mode this is the group name, which may be missing.
        """
        if config.user_id_field == UserIdField.dn:
            return entry.dn
        return entry.first(config.name_attribute)
