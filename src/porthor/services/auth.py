"""Authentication of users against the directory."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..exceptions import RoleConfigMissingError
from ..models.auth import AuthResult
from ..models.enums import AuthFailure, RoleStatus
from ..models.ldap import LDAPUser
from ..storage.ldap import DirectoryClient
from .role import RoleResolver
from .user import UserResolver, validate_username

__all__ = ["AuthService"]


class AuthService:
    """Authenticate users and resolve their roles.

    Two strategies are supported.  `authenticate` searches for the user
    first and then binds as the DN found, which requires the service
    identity (or an anonymous bind) to be able to read user entries.
    `authenticate_no_anonymous_search` binds first with an identity built
    from the username and only searches once the password has been
    accepted.

    Errors in the directory or its configuration are raised as subclasses of
    `~porthor.exceptions.DirectoryError`.  Callers should report those to
    operators and show the user only a generic failure.

    Parameters
    ----------
    directory
        Client for the directory, used for binds.
    user_resolver
        Resolver for user entries.
    role_resolver
        Resolver for the roles of a user.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        directory: DirectoryClient,
        user_resolver: UserResolver,
        role_resolver: RoleResolver,
        logger: BoundLogger,
    ) -> None:
        self._directory = directory
        self._user_resolver = user_resolver
        self._role_resolver = role_resolver
        self._logger = logger

    async def authenticate(self, username: str, password: str) -> AuthResult:
        """Authenticate a user by searching for them and then binding.

        Parameters
        ----------
        username
            Username as supplied by the user.
        password
            Password as supplied by the user.

        Returns
        -------
        AuthResult
            Successful only if exactly one entry matched the username and
            the directory accepted the password for its DN.

        Raises
        ------
        AmbiguousUserError
            Raised if more than one entry matches the username.
        GroupRecursionError
            Raised if groups are nested too deeply.
        InvalidUsernameError
            Raised if the username is the wildcard.
        LDAPError
            Raised if the directory could not be queried.
        PreconditionError
            Raised if the username is empty.
        RoleConfigMissingError
            Raised if no role search is configured and roles are not
            skipped.
        """
        logger = self._logger.bind(user=username)
        user = await self.get_user(username)
        if not user:
            return self._fail(logger, AuthFailure.not_found)
        if not await self._directory.bind(user.dn, password):
            return self._fail(logger, AuthFailure.bind_rejected)
        logger.info("Authenticated user", roles=sorted(user.roles or ()))
        return AuthResult(user=user)

    async def authenticate_no_anonymous_search(
        self, username: str, password: str
    ) -> AuthResult:
        """Authenticate a user by binding and then searching for them.

        The bind identity is built from ``client.bindUserPattern`` if it is
        set, otherwise the username is used as is.  No search is done unless
        the bind succeeds.

        Parameters
        ----------
        username
            Username as supplied by the user.
        password
            Password as supplied by the user.

        Returns
        -------
        AuthResult
            Successful only if the directory accepted the password and
            exactly one entry then matched the username.

        Raises
        ------
        AmbiguousUserError
            Raised if more than one entry matches the username.
        GroupRecursionError
            Raised if groups are nested too deeply.
        InvalidUsernameError
            Raised if the username is the wildcard.
        LDAPError
            Raised if the directory could not be queried.
        PreconditionError
            Raised if the username is empty.
        RoleConfigMissingError
            Raised if no role search is configured and roles are not
            skipped.
        """
        validate_username(username)
        identity = self._directory.config.client.bind_identity(username)
        logger = self._logger.bind(user=username, ldap_bind=identity)
        if not await self._directory.bind(identity, password):
            return self._fail(logger, AuthFailure.bind_rejected)
        user = await self.get_user(username)
        if not user:
            return self._fail(logger, AuthFailure.not_found)
        logger.info("Authenticated user", roles=sorted(user.roles or ()))
        return AuthResult(user=user)

    async def exists(self, username: str) -> bool:
        """Check whether a username matches exactly one user.

        Parameters
        ----------
        username
            Username to look up.

        Returns
        -------
        bool
            Whether the user exists.  Roles are not resolved.
        """
        return await self._user_resolver.resolve(username) is not None

    async def get_user(self, username: str) -> LDAPUser | None:
        """Resolve a user and their roles without checking a password.

        Parameters
        ----------
        username
            Username to look up.

        Returns
        -------
        LDAPUser or None
            The user with roles attached (empty if roles are skipped), or
            `None` if no entry matches the username.
        """
        user = await self._user_resolver.resolve(username)
        if not user:
            return None
        resolution = await self._role_resolver.resolve_for_user(user)
        if resolution.status == RoleStatus.missing_config:
            msg = "Role search not configured, set skipRoles to ignore roles"
            self._logger.error(msg, user=username)
            raise RoleConfigMissingError(msg, username)
        return user.with_roles(resolution.roles)

    def _fail(self, logger: BoundLogger, reason: AuthFailure) -> AuthResult:
        logger.info("Authentication failed", reason=reason.value)
        return AuthResult(failure=reason)
