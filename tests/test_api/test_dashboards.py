"""HTTP-level tests for scope-filtered dashboard reads and updates."""
from __future__ import annotations

import pytest


@pytest.fixture
def world(factory):
    x = factory.organization("X")
    x_child = factory.organization("X child", parent=x)
    y = factory.organization("Y")

    editor_role = factory.role("editor", ["dashboards:read:own", "dashboards:update:own"])
    reader_role = factory.role("org_reader", ["dashboards:read:organization"])
    admin_role = factory.role("org_admin", ["dashboards:read:organization", "dashboards:update:organization"])
    super_role = factory.role("super_admin", is_system_role=True)

    u1 = factory.user(organizations=[x])
    u2 = factory.user(organizations=[x])
    reader = factory.user(organizations=[x_child])
    x_admin = factory.user(organizations=[x, y])
    root = factory.user()

    factory.grant(u1, editor_role)
    factory.grant(u2, editor_role)
    factory.grant(reader, reader_role)
    factory.grant(x_admin, admin_role, organization=x)
    factory.grant(root, super_role)

    boards = {
        "u1-x": factory.dashboard("u1 in x", owner=u1, organization=x),
        "u2-x": factory.dashboard("u2 in x", owner=u2, organization=x),
        "u2-child": factory.dashboard("u2 in x child", owner=u2, organization=x_child),
        "u2-y": factory.dashboard("u2 in y", owner=u2, organization=y),
    }
    return {
        "x": x,
        "x_child": x_child,
        "y": y,
        "u1": u1,
        "u2": u2,
        "reader": reader,
        "x_admin": x_admin,
        "root": root,
        "editor_role": editor_role,
        "boards": boards,
    }


def _names(response):
    assert response.status_code == 200, response.text
    return sorted(d["dashboard_name"] for d in response.json())


def test_own_scope_lists_only_owned(client, auth_headers, world):
    response = client.get("/dashboards", headers=auth_headers(world["u1"].user_id))
    assert _names(response) == ["u1 in x"]


def test_organization_scope_lists_accessible_orgs(client, auth_headers, world):
    response = client.get("/dashboards", headers=auth_headers(world["x_admin"].user_id))
    # Grant is bound to X, so Y rows stay hidden even though x_admin is a member of Y.
    assert _names(response) == ["u1 in x", "u2 in x", "u2 in x child"]


def test_descendant_filter_is_included(client, auth_headers, world):
    response = client.get(
        "/dashboards",
        params={"organization_id": world["x_child"].organization_id},
        headers=auth_headers(world["x_admin"].user_id),
    )
    assert _names(response) == ["u2 in x child"]


def test_ancestor_filter_is_denied(client, auth_headers, world):
    response = client.get(
        "/dashboards",
        params={"organization_id": world["x"].organization_id},
        headers=auth_headers(world["reader"].user_id),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Permission denied"


def test_super_admin_lists_everything(client, auth_headers, world):
    response = client.get("/dashboards", headers=auth_headers(world["root"].user_id))
    assert len(_names(response)) == 4


def test_user_without_roles_is_forbidden(client, auth_headers, factory):
    nobody = factory.user()
    assert client.get("/dashboards", headers=auth_headers(nobody.user_id)).status_code == 403


def test_out_of_scope_dashboard_looks_missing(client, auth_headers, world):
    theirs = world["boards"]["u2-x"].dashboard_id
    response = client.get(f"/dashboards/{theirs}", headers=auth_headers(world["u1"].user_id))
    assert response.status_code == 404


def test_editor_updates_own_dashboard(client, auth_headers, world):
    mine = world["boards"]["u1-x"].dashboard_id
    response = client.patch(
        f"/dashboards/{mine}",
        json={"dashboard_name": "renamed"},
        headers=auth_headers(world["u1"].user_id),
    )
    assert response.status_code == 200, response.text
    assert response.json()["dashboard_name"] == "renamed"


def test_editor_cannot_update_someone_elses_dashboard(client, auth_headers, world):
    theirs = world["boards"]["u2-x"].dashboard_id
    response = client.patch(
        f"/dashboards/{theirs}",
        json={"dashboard_name": "hijacked"},
        headers=auth_headers(world["u1"].user_id),
    )
    assert response.status_code == 404


def test_org_admin_updates_inside_granted_org_only(client, auth_headers, world):
    in_x = world["boards"]["u2-x"].dashboard_id
    in_y = world["boards"]["u2-y"].dashboard_id
    headers = auth_headers(world["x_admin"].user_id)

    assert client.patch(f"/dashboards/{in_x}", json={"is_published": True}, headers=headers).status_code == 200
    assert client.patch(f"/dashboards/{in_y}", json={"is_published": True}, headers=headers).status_code == 404


def test_reader_without_update_permission_is_forbidden(client, auth_headers, world):
    board = world["boards"]["u2-child"].dashboard_id
    response = client.patch(f"/dashboards/{board}", json={"is_published": True}, headers=auth_headers(world["reader"].user_id))
    assert response.status_code == 403


def test_organization_header_narrows_grants(client, auth_headers, world):
    in_x = world["boards"]["u2-x"].dashboard_id
    headers = {**auth_headers(world["x_admin"].user_id), "X-Organization-Id": world["y"].organization_id}
    # Acting in Y, the X-bound admin grant does not apply.
    assert client.patch(f"/dashboards/{in_x}", json={"is_published": True}, headers=headers).status_code == 403


def test_revoked_permission_is_enforced_on_next_request(client, auth_headers, world):
    mine = world["boards"]["u1-x"].dashboard_id
    u1_headers = auth_headers(world["u1"].user_id)
    root_headers = auth_headers(world["root"].user_id)
    role_id = world["editor_role"].role_id

    assert client.patch(f"/dashboards/{mine}", json={"is_published": True}, headers=u1_headers).status_code == 200

    revoked = client.delete(f"/admin/roles/{role_id}/permissions/dashboards:update:own", headers=root_headers)
    assert revoked.status_code == 200, revoked.text
    assert "dashboards:update:own" not in revoked.json()["permissions"]

    assert client.patch(f"/dashboards/{mine}", json={"is_published": False}, headers=u1_headers).status_code == 403

    restored = client.post(
        f"/admin/roles/{role_id}/permissions",
        json={"permission": "dashboards:update:own"},
        headers=root_headers,
    )
    assert restored.status_code == 200
    assert client.patch(f"/dashboards/{mine}", json={"is_published": False}, headers=u1_headers).status_code == 200


def test_admin_endpoints_require_role_permissions(client, auth_headers, world):
    role_id = world["editor_role"].role_id
    response = client.get(f"/admin/roles/{role_id}", headers=auth_headers(world["u1"].user_id))
    assert response.status_code == 403

    response = client.get(f"/admin/roles/{role_id}", headers=auth_headers(world["root"].user_id))
    assert response.status_code == 200
    assert response.json()["permissions"] == ["dashboards:read:own", "dashboards:update:own"]


def test_admin_grant_unknown_permission_is_404(client, auth_headers, world):
    role_id = world["editor_role"].role_id
    response = client.post(
        f"/admin/roles/{role_id}/permissions",
        json={"permission": "dashboards:teleport:own"},
        headers=auth_headers(world["root"].user_id),
    )
    assert response.status_code == 404


def test_own_scope_list_is_filtered_per_request(client, auth_headers, world):
    u2_headers = auth_headers(world["u2"].user_id)
    assert _names(client.get("/dashboards", headers=u2_headers)) == ["u2 in x", "u2 in x child", "u2 in y"]
    assert _names(client.get("/dashboards", headers=auth_headers(world["u1"].user_id))) == ["u1 in x"]


def test_own_grant_reaches_dashboard_outside_organization_grant(client, auth_headers, world, factory):
    lead = factory.user(organizations=[world["x"]])
    factory.grant(lead, factory.role("x_lead", ["dashboards:update:organization"]), organization=world["x"])
    factory.grant(lead, factory.role("author", ["dashboards:update:own"]))
    personal = factory.dashboard("lead personal", owner=lead)
    someone_elses = factory.dashboard("u2 personal", owner=world["u2"])
    headers = auth_headers(lead.user_id)

    response = client.patch(f"/dashboards/{personal.dashboard_id}", json={"is_published": True}, headers=headers)
    assert response.status_code == 200, response.text
    assert response.json()["is_published"] is True

    in_x = world["boards"]["u2-x"].dashboard_id
    assert client.patch(f"/dashboards/{in_x}", json={"is_published": True}, headers=headers).status_code == 200
    assert (
        client.patch(f"/dashboards/{someone_elses.dashboard_id}", json={"is_published": True}, headers=headers).status_code
        == 404
    )
