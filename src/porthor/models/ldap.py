"""Data models for LDAP."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Self

__all__ = ["LDAPEntry", "LDAPUser"]


@dataclass(frozen=True, slots=True)
class LDAPEntry:
    """A single entry returned by an LDAP search.

    Attribute names in LDAP are case-insensitive, so they are stored
    lowercased and looked up the same way.
    """

    dn: str
    """Distinguished name of the entry."""

    attributes: dict[str, list[str]] = field(default_factory=dict)
    """Values of the retrieved attributes, keyed by lowercase name."""

    @classmethod
    def from_values(
        cls, dn: str, attributes: dict[str, Iterable[str | bytes]]
    ) -> Self:
        """Build an entry from raw search results.

        Parameters
        ----------
        dn
            Distinguished name of the entry.
        attributes
            Mapping of attribute names to their values.  Binary values are
            decoded as UTF-8, replacing undecodable bytes with U+FFFD.
            A ``dn`` key, if present, is ignored.

        Returns
        -------
        LDAPEntry
            The corresponding entry.
        """
        values = {}
        for name, raw in attributes.items():
            if name.lower() == "dn":
                continue
            values[name.lower()] = [
                v.decode(errors="replace") if isinstance(v, bytes) else str(v)
                for v in raw
            ]
        return cls(dn=dn, attributes=values)

    def first(self, name: str) -> str | None:
        """Return the first value of an attribute.

        Parameters
        ----------
        name
            Name of the attribute, in any case.

        Returns
        -------
        str or None
            The first value, or `None` if the attribute has no values.
        """
        values = self.attributes.get(name.lower())
        return values[0] if values else None


@dataclass(frozen=True, slots=True)
class LDAPUser:
    """A user resolved from the directory.

    The user is immutable.  Roles are attached by building a new object with
    `with_roles` once role resolution has finished.
    """

    dn: str
    """Distinguished name of the user entry."""

    username: str
    """Username as supplied when authenticating."""

    attributes: dict[str, str] = field(default_factory=dict)
    """First value of each configured attribute present on the entry."""

    email: str = ""
    """Email address, or the empty string if none is known."""

    roles: frozenset[str] | None = None
    """Role tokens of the user, or `None` if not yet resolved."""

    def with_roles(self, roles: Iterable[str]) -> Self:
        """Return a copy of the user with roles attached.

        Parameters
        ----------
        roles
            Role tokens of the user.

        Returns
        -------
        LDAPUser
            New user object with ``roles`` set.
        """
        return replace(self, roles=frozenset(roles))
