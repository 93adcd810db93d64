"""Fixtures for the pure engine tests: contexts are assembled in memory."""
from __future__ import annotations

import pytest

from tenant_rbac.rbac.context import OrganizationRef, RoleGrant, UserContext
from tenant_rbac.rbac.permissions import parse_permission_name


def org(organization_id: str, parent: str | None = None, is_active: bool = True) -> OrganizationRef:
    return OrganizationRef(
        organization_id=organization_id,
        name=organization_id.upper(),
        parent_organization_id=parent,
        is_active=is_active,
    )


def grant(
    role_name: str,
    permissions=(),
    organization_ids=None,
    organization_id: str | None = None,
    is_system_role: bool = False,
    role_id: str | None = None,
) -> RoleGrant:
    if organization_ids is not None and organization_id is None:
        organization_id = sorted(organization_ids)[0]
    return RoleGrant(
        role_id=role_id or f"role-{role_name}",
        role_name=role_name,
        permissions=frozenset(parse_permission_name(p) for p in permissions),
        is_system_role=is_system_role,
        organization_id=organization_id,
        organization_ids=frozenset(organization_ids) if organization_ids is not None else None,
    )


def context(
    user_id: str = "u1",
    grants=(),
    organizations=(),
    accessible=None,
    is_super_admin: bool = False,
    organization_admin_for=(),
    current_organization_id: str | None = None,
) -> UserContext:
    organizations = tuple(organizations)
    all_permissions = frozenset(p for g in grants for p in g.permissions)
    return UserContext(
        user_id=user_id,
        email=f"{user_id}@example.com",
        organizations=organizations,
        accessible_organizations=tuple(accessible) if accessible is not None else organizations,
        grants=tuple(grants),
        all_permissions=all_permissions,
        is_super_admin=is_super_admin,
        organization_admin_for=frozenset(organization_admin_for),
        current_organization_id=current_organization_id,
    )


@pytest.fixture
def make_context():
    return context


@pytest.fixture
def make_grant():
    return grant


@pytest.fixture
def make_org():
    return org
