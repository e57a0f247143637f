"""Tests for resolving group memberships into roles."""

from __future__ import annotations

import pytest
from bonsai.utils import escape_filter_exp

from porthor.config import Config
from porthor.exceptions import (
    GroupRecursionError,
    PreconditionError,
    RoleConfigMissingError,
)
from porthor.factory import Factory
from porthor.models.auth import RoleResolution
from porthor.models.enums import RoleStatus
from porthor.models.ldap import LDAPUser
from porthor.services.role import slugify

from ..support.config import reconfigure
from ..support.ldap import MockLDAP

USER_DN = "cn=alice,ou=people,dc=example"
"""DN of the test user."""


def group_dn(name: str) -> str:
    return f"cn={name},ou=groups,dc=example"


@pytest.mark.parametrize(
    ("name", "slug"),
    [
        ("Site Admins!!", "SITE_ADMINS"),
        ("  multi   space ", "MULTI_SPACE"),
        ("ops-team", "OPS_TEAM"),
        ("already_SLUG", "ALREADY_SLUG"),
        ("__x__", "X"),
        ("Équipe", "QUIPE"),
        ("!!!", ""),
    ],
)
def test_slugify(name: str, slug: str) -> None:
    assert slugify(name) == slug
    assert slugify(slugify(name)) == slug


@pytest.mark.asyncio
async def test_resolve_roles(
    config: Config, factory: Factory, mock_ldap: MockLDAP
) -> None:
    mock_ldap.add_test_group_membership(
        config,
        USER_DN,
        {group_dn("ops"): "Ops Team", group_dn("admins"): "Site Admins!!"},
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("ops"), {group_dn("staff"): "Staff"}
    )
    role_resolver = factory.create_role_resolver()

    roles = await role_resolver.resolve_roles(USER_DN)
    assert roles == {"ROLE_OPS_TEAM", "ROLE_SITE_ADMINS"}
    escaped = escape_filter_exp(USER_DN)
    assert mock_ldap.searches == [
        f"(&(objectClass=groupOfNames)(member={escaped}))"
    ]

    assert await role_resolver.resolve_roles(group_dn("nothing")) == set()


@pytest.mark.asyncio
async def test_resolve_recursive(
    factory: Factory, mock_ldap: MockLDAP
) -> None:
    config = await reconfigure("recursive", factory)
    mock_ldap.add_test_group_membership(
        config,
        USER_DN,
        {group_dn("ops"): "Ops Team", group_dn("dev"): "Developers"},
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("ops"), {group_dn("staff"): "Staff"}
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("dev"), {group_dn("staff"): "Staff"}
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("staff"), {group_dn("everyone"): "Everyone"}
    )
    role_resolver = factory.create_role_resolver()

    roles = await role_resolver.resolve_roles(USER_DN)
    assert roles == {
        "ROLE_OPS_TEAM",
        "ROLE_DEVELOPERS",
        "ROLE_STAFF",
        "ROLE_EVERYONE",
    }


@pytest.mark.asyncio
async def test_resolve_deep_chain(
    factory: Factory, mock_ldap: MockLDAP
) -> None:
    config = await reconfigure("recursive", factory)
    member = USER_DN
    for i in range(9):
        mock_ldap.add_test_group_membership(
            config, member, {group_dn(f"level{i}"): f"Level {i}"}
        )
        member = group_dn(f"level{i}")
    role_resolver = factory.create_role_resolver()

    roles = await role_resolver.resolve_roles(USER_DN)
    assert roles == {f"ROLE_LEVEL_{i}" for i in range(9)}
    assert len(mock_ldap.searches) == 10

    # One more level exceeds the depth limit.
    mock_ldap.add_test_group_membership(
        config, member, {group_dn("level9"): "Level 9"}
    )
    with pytest.raises(GroupRecursionError):
        await role_resolver.resolve_roles(USER_DN)


@pytest.mark.asyncio
async def test_resolve_cycle(factory: Factory, mock_ldap: MockLDAP) -> None:
    config = await reconfigure("recursive", factory)
    mock_ldap.add_test_group_membership(
        config, USER_DN, {group_dn("a"): "A"}
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("a"), {group_dn("b"): "B"}
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("b"), {group_dn("a"): "A"}
    )
    role_resolver = factory.create_role_resolver()

    with pytest.raises(GroupRecursionError):
        await role_resolver.resolve_roles(USER_DN)

    # A self-referencing group is a cycle of length one.
    mock_ldap.add_test_group_membership(
        config, group_dn("c"), {group_dn("c"): "C"}
    )
    with pytest.raises(GroupRecursionError):
        await role_resolver.resolve_roles(group_dn("c"))


@pytest.mark.asyncio
async def test_resolve_by_username(
    factory: Factory, mock_ldap: MockLDAP
) -> None:
    config = await reconfigure("username", factory)
    mock_ldap.add_test_group_membership(
        config, "alice", {group_dn("ops"): "ops"}
    )
    mock_ldap.add_test_group_membership(
        config, "ops", {group_dn("staff"): "staff"}
    )
    role_resolver = factory.create_role_resolver()
    user = LDAPUser(dn=USER_DN, username="alice")

    resolution = await role_resolver.resolve_for_user(user)
    assert resolution == RoleResolution(
        status=RoleStatus.resolved,
        roles=frozenset({"ROLE_OPS", "ROLE_STAFF"}),
    )
    assert mock_ldap.searches == [
        "(&(objectClass=posixGroup)(memberUid=alice))",
        "(&(objectClass=posixGroup)(memberUid=ops))",
        "(&(objectClass=posixGroup)(memberUid=staff))",
    ]


@pytest.mark.asyncio
async def test_resolve_for_user(
    config: Config, factory: Factory, mock_ldap: MockLDAP
) -> None:
    mock_ldap.add_test_group_membership(
        config, USER_DN, {group_dn("ops"): "Ops Team"}
    )
    role_resolver = factory.create_role_resolver()
    user = LDAPUser(dn=USER_DN, username="alice")

    resolution = await role_resolver.resolve_for_user(user)
    assert resolution.status == RoleStatus.resolved
    assert resolution.roles == {"ROLE_OPS_TEAM"}

    with pytest.raises(PreconditionError):
        await role_resolver.resolve_for_user(None)


@pytest.mark.asyncio
async def test_nameless_group(factory: Factory, mock_ldap: MockLDAP) -> None:
    config = await reconfigure("recursive", factory)
    mock_ldap.add_entries_for_test(
        "ou=groups,dc=example",
        "member",
        USER_DN,
        [(group_dn("unnamed"), {}), (group_dn("bad"), {"cn": ["!!"]})],
    )
    mock_ldap.add_test_group_membership(
        config, group_dn("unnamed"), {group_dn("staff"): "Staff"}
    )
    role_resolver = factory.create_role_resolver()

    assert await role_resolver.resolve_roles(USER_DN) == {"ROLE_STAFF"}


@pytest.mark.asyncio
async def test_nameless_group_by_username(
    factory: Factory, mock_ldap: MockLDAP
) -> None:
    config = await reconfigure("username", factory)
    mock_ldap.add_entries_for_test(
        "ou=groups,dc=example",
        "memberUid",
        "alice",
        [(group_dn("unnamed"), {}), (group_dn("ops"), {"cn": ["ops"]})],
    )
    mock_ldap.add_test_group_membership(
        config, "ops", {group_dn("staff"): "staff"}
    )
    role_resolver = factory.create_role_resolver()

    # A group with no name has no key by which to find its parents.
    assert await role_resolver.resolve_roles("alice") == {
        "ROLE_OPS",
        "ROLE_STAFF",
    }
    assert mock_ldap.searches == [
        "(&(objectClass=posixGroup)(memberUid=alice))",
        "(&(objectClass=posixGroup)(memberUid=ops))",
        "(&(objectClass=posixGroup)(memberUid=staff))",
    ]


@pytest.mark.asyncio
async def test_missing_config(factory: Factory, mock_ldap: MockLDAP) -> None:
    await reconfigure("no-roles", factory)
    role_resolver = factory.create_role_resolver()
    user = LDAPUser(dn=USER_DN, username="alice")

    resolution = await role_resolver.resolve_for_user(user)
    assert resolution == RoleResolution(status=RoleStatus.missing_config)
    with pytest.raises(RoleConfigMissingError):
        await role_resolver.resolve_roles(USER_DN)

    await reconfigure("skip-roles", factory)
    role_resolver = factory.create_role_resolver()
    resolution = await role_resolver.resolve_for_user(user)
    assert resolution == RoleResolution(status=RoleStatus.skipped)
    assert mock_ldap.searches == []
