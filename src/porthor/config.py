"""Configuration for Porthor.

Porthor is configured by a YAML file whose top-level keys are ``client``,
``user``, ``role``, and the logging settings.  The only setting that may
instead come from the environment is the password of the service identity,
read from ``PORTHOR_LDAP_PASSWORD``, which takes precedence over the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    UrlConstraints,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import Url
from pydantic_settings import BaseSettings, SettingsConfigDict
from safir.logging import LogLevel, Profile, configure_logging

from .constants import BIND_USERNAME_PLACEHOLDER
from .models.enums import UserIdField

LdapDsn = Annotated[
    Url, UrlConstraints(allowed_schemes=["ldap", "ldaps"], host_required=True)
]
"""DSN for connecting to an LDAP server."""

__all__ = [
    "ClientConfig",
    "Config",
    "LDAPSecrets",
    "LdapDsn",
    "RoleConfig",
    "UserConfig",
]


class LDAPSecrets(BaseSettings):
    """Secrets for the LDAP connection read from the environment.

    Only ``PORTHOR_LDAP_PASSWORD`` is consulted.  All other client settings
    come solely from the configuration file.
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTHOR_LDAP_", extra="ignore"
    )

    password: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description="Password for the service identity",
    )


class ClientConfig(BaseModel):
    """Configuration for the connection to the LDAP server."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    url: LdapDsn = Field(
        ...,
        title="LDAP server URL",
        description="URL of the LDAP server used for searches and binds",
    )

    bind_dn: str | None = Field(
        None,
        title="Simple bind DN for LDAP searches",
        description=(
            "DN of the service identity to bind as with simple bind when"
            " searching for users and roles. If neither this nor"
            " ``useKerberos`` are set, searches use an anonymous bind."
        ),
    )

    password: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description=(
            "Password for the service identity. Only used if ``bindDn`` is"
            " set. Overridden by the ``PORTHOR_LDAP_PASSWORD`` environment"
            " variable."
        ),
    )

    use_kerberos: bool = Field(
        False,
        title="Whether to bind with GSS-API",
        description=(
            "If set to true, searches authenticate to LDAP with Kerberos"
            " GSS-API. If both this and ``bindDn`` are set, simple binds take"
            " precedence."
        ),
    )

    skip_roles: bool = Field(
        False,
        title="Tolerate missing role configuration",
        description=(
            "If set to true, users authenticate with no roles when the"
            " ``role`` section is absent. Otherwise a missing ``role``"
            " section makes every authentication attempt fail."
        ),
    )

    bind_user_pattern: str | None = Field(
        None,
        title="Pattern for bind identities",
        description=(
            "Template used to build the bind identity from the username when"
            " authenticating without a prior search. The string"
            f" ``{BIND_USERNAME_PLACEHOLDER}`` is replaced with the username,"
            " for example ``uid=&username&,ou=people,dc=example,dc=com``. If"
            " not set, the raw username is used as the bind identity."
        ),
    )

    @model_validator(mode="before")
    @classmethod
    def _password_from_environment(cls, data: Any) -> Any:
        secrets = LDAPSecrets()
        if secrets.password and isinstance(data, dict):
            return {**data, "password": secrets.password}
        return data

    @model_validator(mode="after")
    def _validate_password(self) -> Self:
        if self.bind_dn and not self.password:
            raise ValueError("password required if bindDn is set")
        return self

    @model_validator(mode="after")
    def _validate_bind_user_pattern(self) -> Self:
        pattern = self.bind_user_pattern
        if pattern is not None and BIND_USERNAME_PLACEHOLDER not in pattern:
            msg = f"bindUserPattern must contain {BIND_USERNAME_PLACEHOLDER}"
            raise ValueError(msg)
        return self

    def bind_identity(self, username: str) -> str:
        """Construct the identity to bind as for a given username.

        Parameters
        ----------
        username
            Username as supplied by the user.

        Returns
        -------
        str
            The bind identity.  This is the username substituted into
            ``bind_user_pattern`` if set, otherwise the username unchanged.
        """
        if not self.bind_user_pattern:
            return username
        return self.bind_user_pattern.replace(
            BIND_USERNAME_PLACEHOLDER, username
        )


class UserConfig(BaseModel):
    """Configuration for searching for user entries."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    base_dn: str = Field(
        ...,
        title="Base DN for user searches",
        description="Base DN of the subtree containing user entries",
    )

    filter: str = Field(
        "",
        title="Additional user search filter",
        description=(
            "LDAP filter, including the surrounding parentheses, that is"
            " ANDed with the username match, such as"
            " ``(objectClass=inetOrgPerson)``"
        ),
    )

    name_attribute: str = Field(
        "uid",
        title="Username attribute",
        description="Attribute of user entries that holds the username",
    )

    attributes: list[str] = Field(
        [],
        title="Attributes to retrieve",
        description=(
            "Ordered list of attributes of the user entry to make available"
            " to callers. Only the first value of each attribute is kept."
        ),
    )

    email_attribute: str | None = Field(
        "mail",
        title="Email attribute",
        description=(
            "Attribute holding the user's email address, or null to not"
            " retrieve one"
        ),
    )


class RoleConfig(BaseModel):
    """Configuration for searching for the roles of a user."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    base_dn: str = Field(
        ...,
        title="Base DN for role searches",
        description="Base DN of the subtree containing group entries",
    )

    filter: str = Field(
        "",
        title="Additional role search filter",
        description=(
            "LDAP filter, including the surrounding parentheses, that is"
            " ANDed with the membership match, such as"
            " ``(objectClass=groupOfNames)``"
        ),
    )

    user_attribute: str = Field(
        "member",
        title="Membership attribute",
        description=(
            "Attribute of group entries that holds the identifying key of"
            " each member"
        ),
    )

    name_attribute: str = Field(
        "cn",
        title="Group name attribute",
        description="Attribute of group entries from which roles are named",
    )

    user_id_field: UserIdField = Field(
        UserIdField.dn,
        title="Member key",
        description=(
            "Which key of a member is stored in ``userAttribute``: ``dn``"
            " for the member's distinguished name or ``username`` for the"
            " bare username (or group name for nested groups)"
        ),
    )

    recursive_search: bool = Field(
        False,
        title="Resolve nested groups",
        description=(
            "Whether to also search for the groups of which each group is a"
            " member, granting their roles as well"
        ),
    )


class Config(BaseModel):
    """Configuration for Porthor."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    client: ClientConfig = Field(
        ...,
        title="LDAP client configuration",
        description="How to connect and authenticate to the LDAP server",
    )

    user: UserConfig = Field(
        ...,
        title="User search configuration",
        description="How to find the entry of a user",
    )

    role: RoleConfig | None = Field(
        None,
        title="Role search configuration",
        description=(
            "How to find the roles of a user. If not set, ``skipRoles`` must"
            " be enabled in the client configuration for authentication to"
            " succeed."
        ),
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Logging level",
        description="Python logging level",
    )

    log_profile: Profile = Field(
        Profile.production,
        title="Logging profile",
        description=(
            "Logging profile: ``production`` for JSON logs or ``development``"
            " for human-readable logs"
        ),
    )

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            return cls.model_validate(yaml.safe_load(f))

    def configure_logging(self) -> None:
        """Configure logging based on the Porthor configuration."""
        configure_logging(
            name="porthor", profile=self.log_profile, log_level=self.log_level
        )
