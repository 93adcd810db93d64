"""
Tests for transparent row scoping on the SQLAlchemy session.

The session filter reads `Session.info["authz"]` and narrows every SELECT on
models that declare `__rbac_resource__`; the query code itself is unchanged.
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from tenant_rbac.db.filters import scope_statement, scoped_models
from tenant_rbac.models.resources import Dashboard
from tenant_rbac.models.security import Organization
from tenant_rbac.rbac.permissions import PermissionScope
from tenant_rbac.rbac.scope_filter import DENY_ALL, ScopePredicate, build_scope_predicate, combine_predicates
from tenant_rbac.security.context import RequestAuthz
from tenant_rbac.security.context_builder import build_user_context


@pytest.fixture
def world(factory):
    x = factory.organization("X")
    y = factory.organization("Y")
    alice = factory.user(organizations=[x])
    bob = factory.user(organizations=[y])
    boards = {
        "alice-x": factory.dashboard("alice x", owner=alice, organization=x),
        "bob-x": factory.dashboard("bob x", owner=bob, organization=x),
        "bob-y": factory.dashboard("bob y", owner=bob, organization=y),
        "alice-none": factory.dashboard("alice none", owner=alice),
    }
    return {"x": x, "y": y, "alice": alice, "bob": bob, "boards": boards}


def _names(db_session, predicate, context):
    db_session.info["authz"] = RequestAuthz(context=context, predicates={"dashboards": predicate})
    try:
        stmt = select(Dashboard).order_by(Dashboard.dashboard_name)
        return [d.dashboard_name for d in db_session.scalars(stmt).all()]
    finally:
        db_session.info.pop("authz")


def test_dashboard_is_a_scoped_model():
    assert Dashboard in scoped_models()
    assert Organization not in scoped_models()


def test_no_authz_means_no_filter(db_session, world):
    assert len(db_session.scalars(select(Dashboard)).all()) == 4


def test_own_scope_returns_only_owned_rows(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    predicate = build_scope_predicate(ctx, PermissionScope.OWN)
    assert _names(db_session, predicate, ctx) == ["alice none", "alice x"]


def test_organization_scope_returns_accessible_org_rows(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    predicate = build_scope_predicate(ctx, PermissionScope.ORGANIZATION)
    assert _names(db_session, predicate, ctx) == ["alice x", "bob x"]


def test_requested_org_cannot_widen_organization_scope(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    predicate = build_scope_predicate(
        ctx,
        PermissionScope.ORGANIZATION,
        requested_organization_ids=[world["y"].organization_id],
    )
    assert _names(db_session, predicate, ctx) == []


def test_all_scope_is_unfiltered_unless_org_requested(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    assert len(_names(db_session, build_scope_predicate(ctx, PermissionScope.ALL), ctx)) == 4

    narrowed = build_scope_predicate(ctx, PermissionScope.ALL, requested_organization_ids=[world["y"].organization_id])
    assert _names(db_session, narrowed, ctx) == ["bob y"]


def test_deny_all_returns_nothing(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    assert _names(db_session, DENY_ALL, ctx) == []


def test_predicate_for_other_resource_is_ignored(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    db_session.info["authz"] = RequestAuthz(context=ctx, predicates={"reports": DENY_ALL})
    try:
        assert len(db_session.scalars(select(Dashboard)).all()) == 4
    finally:
        db_session.info.pop("authz")


def test_scope_statement_without_session_filter(db_session, world):
    predicate = ScopePredicate(scope=PermissionScope.OWN, owner_user_id=world["bob"].user_id)
    stmt = scope_statement(select(Dashboard).order_by(Dashboard.dashboard_name), Dashboard, predicate)
    assert [d.dashboard_name for d in db_session.scalars(stmt).all()] == ["bob x", "bob y"]

    assert scope_statement(select(Dashboard), Dashboard, None) is not None
    empty = scope_statement(select(Dashboard), Dashboard, ScopePredicate(scope=None, organization_ids=frozenset()))
    assert db_session.scalars(empty).all() == []


def test_combined_scopes_return_rows_of_either(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    predicate = combine_predicates(
        [
            build_scope_predicate(ctx, PermissionScope.ORGANIZATION),
            build_scope_predicate(ctx, PermissionScope.OWN),
        ]
    )
    assert _names(db_session, predicate, ctx) == ["alice none", "alice x", "bob x"]


def test_session_opened_before_authorization_uses_request_state(db_session, world):
    ctx = build_user_context(db_session, world["alice"].user_id)
    request = SimpleNamespace(state=SimpleNamespace())
    db_session.info["request"] = request
    try:
        assert len(db_session.scalars(select(Dashboard)).all()) == 4

        request.state.authz = RequestAuthz(
            context=ctx,
            predicates={"dashboards": build_scope_predicate(ctx, PermissionScope.OWN)},
        )
        stmt = select(Dashboard).order_by(Dashboard.dashboard_name)
        assert [d.dashboard_name for d in db_session.scalars(stmt).all()] == ["alice none", "alice x"]
    finally:
        db_session.info.pop("request")
