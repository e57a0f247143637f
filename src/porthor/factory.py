"""Create Porthor components."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from bonsai import LDAPClient
from bonsai.asyncio import AIOConnectionPool
from structlog.stdlib import BoundLogger

from .config import Config
from .services.auth import AuthService
from .services.role import RoleResolver
from .services.user import UserResolver
from .storage.ldap import LDAPStorage

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process application context.

    This object caches all of the per-process singletons that can be reused
    for every authentication attempt and only need to be recreated if the
    configuration changes.  Nothing here holds per-user state.
    """

    config: Config
    """Porthor's configuration."""

    ldap_pool: AIOConnectionPool
    """Connection pool for LDAP searches."""

    @classmethod
    async def from_config(cls, config: Config) -> Self:
        """Create a new process context from the Porthor configuration.

        Parameters
        ----------
        config
            The Porthor configuration.

        Returns
        -------
        ProcessContext
            Shared context for a Porthor process.
        """
        client = LDAPClient(str(config.client.url))
        if config.client.bind_dn and config.client.password:
            client.set_credentials(
                "SIMPLE",
                user=config.client.bind_dn,
                password=config.client.password.get_secret_value(),
            )
        elif config.client.use_kerberos:
            client.set_credentials("GSSAPI")
        return cls(config=config, ldap_pool=AIOConnectionPool(client))

    async def aclose(self) -> None:
        """Clean up a process context.

        Called during shutdown, or before recreating the process context using
        a different configuration.
        """
        await self.ldap_pool.close()


class Factory:
    """Build Porthor components.

    Uses the contents of a `ProcessContext` to construct the components of the
    application on demand.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to use for errors.
    """

    @classmethod
    async def create(cls, config: Config) -> Self:
        """Create a component factory.

        This class method should only be used in situations where an async
        context manager cannot be used.  If an async context manager can be
        used, call `standalone` rather than this method.

        Parameters
        ----------
        config
            Porthor configuration.

        Returns
        -------
        Factory
            Newly-created factory.  The caller must call `aclose` on the
            returned object during shutdown.
        """
        logger = structlog.get_logger("porthor")
        context = await ProcessContext.from_config(config)
        return cls(context, logger)

    @classmethod
    @asynccontextmanager
    async def standalone(cls, config: Config) -> AsyncIterator[Self]:
        """Async context manager for Porthor components.

        Parameters
        ----------
        config
            Porthor configuration.

        Yields
        ------
        Factory
            The factory.  Must be used as an async context manager.

        Examples
        --------
        .. code-block:: python

           async with Factory.standalone(config) as factory:
               auth_service = factory.create_auth_service()
               result = await auth_service.authenticate(username, password)
        """
        factory = await cls.create(config)
        async with aclosing(factory):
            yield factory

    def __init__(self, context: ProcessContext, logger: BoundLogger) -> None:
        self._context = context
        self._logger = logger

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid and
        must not be used.
        """
        await self._context.aclose()

    def create_auth_service(self) -> AuthService:
        """Create a service for authenticating users.

        Returns
        -------
        AuthService
            Newly-created authentication service.
        """
        ldap = self.create_ldap_storage()
        return AuthService(
            directory=ldap,
            user_resolver=UserResolver(ldap, self._logger),
            role_resolver=RoleResolver(ldap, self._logger),
            logger=self._logger,
        )

    def create_ldap_storage(self) -> LDAPStorage:
        """Create the LDAP storage layer.

        Returns
        -------
        LDAPStorage
            Newly-created LDAP storage.
        """
        return LDAPStorage(
            self._context.config, self._context.ldap_pool, self._logger
        )

    def create_role_resolver(self) -> RoleResolver:
        """Create a resolver for the roles of a user.

        Returns
        -------
        RoleResolver
            Newly-created role resolver.
        """
        return RoleResolver(self.create_ldap_storage(), self._logger)

    def create_user_resolver(self) -> UserResolver:
        """Create a resolver for user entries.

        Returns
        -------
        UserResolver
            Newly-created user resolver.
        """
        return UserResolver(self.create_ldap_storage(), self._logger)

    def set_context(self, context: ProcessContext) -> None:
        """Replace the process context.

        Used by the test suite when it reconfigures Porthor on the fly after a
        factory was already created.

        Parameters
        ----------
        context
            New process context.
        """
        self._context = context
