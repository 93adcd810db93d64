"""
Tests for administrative writes and their cache invalidation.

Every write must be visible to the very next context build; nothing may be
served from a cache entry that predates the write.
"""
from __future__ import annotations

import pytest

from tenant_rbac.rbac.checker import check_permission
from tenant_rbac.rbac.errors import HierarchyCycleError, InactiveError, NotFoundError
from tenant_rbac.security.admin import RbacAdmin
from tenant_rbac.security.context_builder import UserContextBuilder


@pytest.fixture
def admin(db_session, role_cache, context_cache):
    return RbacAdmin(db_session, role_cache=role_cache, context_cache=context_cache)


@pytest.fixture
def builder(db_session, role_cache, context_cache):
    return UserContextBuilder(db_session, role_cache=role_cache, context_cache=context_cache)


def test_grant_permission_is_visible_immediately(db_session, factory, admin, builder, role_cache):
    user = factory.user()
    role = factory.role("editor", ["dashboards:read:own"])
    factory.grant(user, role)
    factory.permission("dashboards:update:own")
    db_session.commit()

    assert check_permission(builder.build(user.user_id), "dashboards:update:own").granted is False
    assert role_cache.get(role.role_id) is not None

    admin.grant_permission(role.role_id, "dashboards:update:own")

    assert role_cache.get(role.role_id) is None
    assert check_permission(builder.build(user.user_id), "dashboards:update:own").granted is True


def test_grant_unknown_or_inactive_permission(db_session, factory, admin):
    role = factory.role("editor")
    factory.permission("reports:read:all", is_active=False)
    db_session.commit()

    with pytest.raises(NotFoundError):
        admin.grant_permission(role.role_id, "dashboards:fly:own")
    with pytest.raises(InactiveError):
        admin.grant_permission(role.role_id, "reports:read:all")
    with pytest.raises(NotFoundError):
        admin.grant_permission("no-such-role", "reports:read:all")


def test_deactivating_and_deleting_roles_drop_access(db_session, factory, admin, builder):
    user = factory.user()
    editor = factory.role("editor", ["dashboards:update:own"])
    viewer = factory.role("viewer", ["dashboards:read:own"])
    factory.grant(user, editor)
    factory.grant(user, viewer)
    assert builder.build(user.user_id).role_names == {"editor", "viewer"}

    admin.set_role_active(editor.role_id, False)
    assert builder.build(user.user_id).role_names == {"viewer"}

    admin.set_role_active(editor.role_id, True)
    assert builder.build(user.user_id).role_names == {"editor", "viewer"}

    admin.delete_role(viewer.role_id)
    assert builder.build(user.user_id).role_names == {"editor"}


def test_assign_and_revoke_role(db_session, factory, admin, builder):
    user = factory.user()
    granter = factory.user()
    role = factory.role("editor", ["dashboards:update:own"])
    assert builder.build(user.user_id).all_permissions == frozenset()

    grant = admin.assign_role(user.user_id, role.role_id, granted_by=granter.user_id)
    assert grant.granted_by == granter.user_id
    assert builder.build(user.user_id).permission_names == {"dashboards:update:own"}

    assert admin.revoke_role(user.user_id, role.role_id) == 1
    assert builder.build(user.user_id).all_permissions == frozenset()
    assert admin.revoke_role(user.user_id, role.role_id) == 0


def test_assign_role_validates_references(factory, admin):
    user = factory.user()
    role = factory.role("editor")
    with pytest.raises(NotFoundError):
        admin.assign_role("ghost", role.role_id)
    with pytest.raises(NotFoundError):
        admin.assign_role(user.user_id, "ghost")
    with pytest.raises(NotFoundError):
        admin.assign_role(user.user_id, role.role_id, organization_id="ghost")


def test_membership_changes_invalidate_user_context(factory, admin, builder):
    org = factory.organization("Org")
    user = factory.user()
    assert builder.build(user.user_id).accessible_organization_ids == frozenset()

    admin.add_membership(user.user_id, org.organization_id)
    assert builder.build(user.user_id).accessible_organization_ids == {org.organization_id}

    admin.remove_membership(user.user_id, org.organization_id)
    assert builder.build(user.user_id).accessible_organization_ids == frozenset()

    # Re-adding reactivates the existing membership row.
    admin.add_membership(user.user_id, org.organization_id)
    assert builder.build(user.user_id).accessible_organization_ids == {org.organization_id}

    with pytest.raises(NotFoundError):
        admin.remove_membership(user.user_id, "ghost")


def test_reparenting_updates_accessible_sets(factory, admin, builder, context_cache):
    parent = factory.organization("Parent")
    orphan = factory.organization("Orphan")
    user = factory.user(organizations=[parent])
    assert orphan.organization_id not in builder.build(user.user_id).accessible_organization_ids

    admin.set_organization_parent(orphan.organization_id, parent.organization_id)

    assert len(context_cache) == 0
    assert orphan.organization_id in builder.build(user.user_id).accessible_organization_ids


def test_reparenting_rejects_cycles(factory, admin):
    parent = factory.organization("Parent")
    child = factory.organization("Child", parent=parent)

    with pytest.raises(HierarchyCycleError):
        admin.set_organization_parent(parent.organization_id, child.organization_id)
    with pytest.raises(HierarchyCycleError):
        admin.set_organization_parent(parent.organization_id, parent.organization_id)
    with pytest.raises(NotFoundError):
        admin.set_organization_parent(parent.organization_id, "ghost")
