"""LDAP storage layer for Porthor."""

from __future__ import annotations

import asyncio
from typing import Protocol

import bonsai
from bonsai import LDAPClient, LDAPSearchScope
from bonsai.asyncio import AIOConnectionPool
from bonsai.utils import escape_filter_exp
from structlog.stdlib import BoundLogger

from ..config import Config
from ..constants import LDAP_TIMEOUT
from ..exceptions import LDAPError
from ..models.ldap import LDAPEntry

__all__ = ["DirectoryClient", "LDAPStorage"]


class DirectoryClient(Protocol):
    """Operations on the directory needed to authenticate users.

    This is the only interface through which the resolution services talk
    to the directory.  `LDAPStorage` is the production implementation.
    """

    @property
    def config(self) -> Config:
        """Active configuration, including the search parameters."""

    async def search(
        self, base_dn: str, filter_exp: str, attributes: list[str]
    ) -> list[LDAPEntry]:
        """Search the subtree below ``base_dn`` for matching entries."""

    async def bind(self, identity: str, password: str) -> bool:
        """Check whether the directory accepts a credential."""

    def escape(self, value: str) -> str:
        """Escape a string for safe interpolation into a search filter."""


class LDAPStorage:
    """LDAP storage layer.

    Searches go through a shared connection pool, which is bound as the
    service identity (or anonymously).  Binds to check a user's password
    always use a new connection that is closed immediately afterwards, so
    user credentials never end up on a pooled connection.

    Parameters
    ----------
    config
        Porthor configuration.
    pool
        Connection pool for LDAP searches.
    logger
        Logger for debug messages and errors.
    """

    def __init__(
        self, config: Config, pool: AIOConnectionPool, logger: BoundLogger
    ) -> None:
        self._config = config
        self._pool = pool
        self._logger = logger.bind(ldap_url=str(config.client.url))

    @property
    def config(self) -> Config:
        """Active configuration."""
        return self._config

    async def bind(self, identity: str, password: str) -> bool:
        """Check a credential by binding to the LDAP server.

        Parameters
        ----------
        identity
            DN (or other identity accepted by the server) to bind as.
        password
            Password to present, passed to the server unmodified.

        Returns
        -------
        bool
            `True` if the server accepted the credential, `False` otherwise.
            An empty password is always refused without contacting the
            server, since a simple bind with an empty password is an
            unauthenticated bind and succeeds for any identity.

        Raises
        ------
        LDAPError
            Raised if the LDAP server could not be contacted.
        """
        logger = self._logger.bind(ldap_bind=identity)
        if not password:
            logger.info("Refusing LDAP bind with empty password")
            return False

        client = LDAPClient(str(self._config.client.url))
        client.set_credentials("SIMPLE", user=identity, password=password)
        try:
            logger.debug("Binding to LDAP")
            conn = await client.connect(is_async=True, timeout=LDAP_TIMEOUT)
        except (bonsai.AuthenticationError, bonsai.InvalidDN) as e:
            logger.info("LDAP bind rejected", error=str(e))
            return False
        except (bonsai.LDAPError, asyncio.TimeoutError) as e:
            logger.exception("Cannot bind to LDAP", error=str(e))
            raise LDAPError("Error binding to LDAP", identity) from e
        conn.close()
        logger.debug("LDAP bind succeeded")
        return True

    def escape(self, value: str) -> str:
        """Escape a value for use in an LDAP search filter.

        Parameters
        ----------
        value
            Raw value, such as a username supplied by a user.

        Returns
        -------
        str
            The value with all filter metacharacters escaped.
        """
        return escape_filter_exp(value)

    async def search(
        self, base_dn: str, filter_exp: str, attributes: list[str]
    ) -> list[LDAPEntry]:
        """Search a subtree of the LDAP server.

        Parameters
        ----------
        base_dn
            Base DN of the search.
        filter_exp
            Search filter.  All untrusted values must already have been
            escaped with `escape`.
        attributes
            Attributes to retrieve.  The DN of each entry is always
            retrieved.

        Returns
        -------
        list of LDAPEntry
            Matching entries.

        Raises
        ------
        LDAPError
            Raised if the search failed.
        """
        results = await self._query(
            base_dn, LDAPSearchScope.SUB, filter_exp, attributes
        )
        return [LDAPEntry.from_values(str(r.dn), r) for r in results]

    async def _query(
        self,
        base: str,
        scope: LDAPSearchScope,
        filter_exp: str,
        attrlist: list[str],
    ) -> list[bonsai.LDAPEntry]:
        """Perform an LDAP query using the connection pool.

        Parameters
        ----------
        base
            Base DN of the search.
        scope
            Scope of the search.
        filter_exp
            Search filter.
        attrlist
            List of attributes to retrieve.

        Returns
        -------
        list of bonsai.LDAPEntry
            List of result entries.

        Raises
        ------
        LDAPError
            Raised if failed to run the search.

        Notes
        -----
        The bonsai connection pool does not keep track of failed connections
        and will keep returning the same connection even if the LDAP server
        has stopped responding (due to a firewall timeout, for example).
        Working around this requires setting a timeout, catching the timeout
        exception, and explicitly closing the connection.  A search is
        attempted at most twice.
        """
        logger = self._logger.bind(
            ldap_attrs=attrlist, ldap_base=base, ldap_search=filter_exp
        )

        try:
            for _ in range(2):
                async with self._pool.spawn() as conn:
                    try:
                        logger.debug("Querying LDAP")
                        return await conn.search(
                            base=base,
                            scope=scope,
                            filter_exp=filter_exp,
                            attrlist=attrlist,
                            timeout=LDAP_TIMEOUT,
                        )
                    except (bonsai.ConnectionError, asyncio.TimeoutError):
                        logger.debug("Reopening LDAP connection after timeout")
                        conn.close()
        except bonsai.LDAPError as e:
            logger.exception("Cannot query LDAP", error=str(e))
            raise LDAPError("Error querying LDAP") from e

        # Failed due to timeout or closed connection twice.
        msg = f"LDAP query timed out after {LDAP_TIMEOUT}s"
        logger.error("Cannot query LDAP", error=msg)
        raise LDAPError(msg)
