"""
Translate a granted scope into a row predicate.

    own           -> rows owned by the caller
    organization  -> rows whose organization is in the caller's set
    all           -> no restriction

An explicit organization filter from the request is *intersected* with the
scope-derived set, never substituted for it. An organization-scoped caller
with nothing left after the intersection gets an empty result, not an error.

This module is pure; ``tenant_rbac.db.filters`` turns a ``ScopePredicate``
into SQLAlchemy criteria.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .checker import AccessScope, PermissionChecker, PermissionCheckResult
from .context import UserContext
from .permissions import PermissionScope


@dataclass(frozen=True)
class ScopePredicate:
    scope: PermissionScope | None
    owner_user_id: str | None = None
    organization_ids: frozenset[str] | None = None
    deny_all: bool = False

    @property
    def unrestricted(self) -> bool:
        return not self.deny_all and self.owner_user_id is None and self.organization_ids is None

    def allows(self, owner_user_id: str | None, organization_id: str | None) -> bool:
        """Evaluate the predicate against one row's owner and organization."""
        if self.deny_all:
            return False
        if self.owner_user_id is not None and owner_user_id != self.owner_user_id:
            return False
        if self.organization_ids is not None and organization_id not in self.organization_ids:
            return False
        return True


DENY_ALL = ScopePredicate(scope=None, deny_all=True)


@dataclass(frozen=True)
class AnyScopePredicate:
    """Rows allowed by at least one of several granted scopes."""

    predicates: tuple[ScopePredicate, ...]

    deny_all = False
    unrestricted = False

    def allows(self, owner_user_id: str | None, organization_id: str | None) -> bool:
        return any(p.allows(owner_user_id, organization_id) for p in self.predicates)


def combine_predicates(predicates: Iterable[ScopePredicate]) -> ScopePredicate | AnyScopePredicate:
    live: list[ScopePredicate] = []
    for predicate in predicates:
        if predicate.deny_all:
            continue
        if predicate.unrestricted:
            return predicate
        if predicate not in live:
            live.append(predicate)
    if not live:
        return DENY_ALL
    if len(live) == 1:
        return live[0]
    return AnyScopePredicate(predicates=tuple(live))


def build_scope_predicate(
    context: UserContext,
    scope: PermissionScope | None,
    *,
    organization_ids: Iterable[str] | None = None,
    requested_organization_ids: Iterable[str] | None = None,
) -> ScopePredicate:
    """
    Build the predicate for ``scope``.

    ``organization_ids`` narrows the organization scope below the caller's
    full accessible set (e.g. to the subtree of an organization-bound grant).
    """

    if scope is None:
        return DENY_ALL

    requested = frozenset(requested_organization_ids) if requested_organization_ids is not None else None

    if scope is PermissionScope.ALL:
        return ScopePredicate(scope=scope, organization_ids=requested)

    if scope is PermissionScope.ORGANIZATION:
        allowed = frozenset(organization_ids) if organization_ids is not None else context.accessible_organization_ids
        allowed &= context.accessible_organization_ids
        if requested is not None:
            allowed &= requested
        if not allowed:
            return ScopePredicate(scope=scope, organization_ids=frozenset(), deny_all=True)
        return ScopePredicate(scope=scope, organization_ids=allowed)

    return ScopePredicate(scope=scope, owner_user_id=context.user_id, organization_ids=requested)


def predicate_for_result(
    context: UserContext,
    result: PermissionCheckResult,
    requested_organization_ids: Iterable[str] | None = None,
) -> ScopePredicate:
    if not result.granted:
        return DENY_ALL
    organization_ids = result.applicable_organizations if result.scope is PermissionScope.ORGANIZATION else None
    return build_scope_predicate(
        context,
        result.scope,
        organization_ids=organization_ids,
        requested_organization_ids=requested_organization_ids,
    )


def predicate_for_candidates(
    context: UserContext,
    permission_names: Iterable[str],
    organization_id: str | None = None,
) -> ScopePredicate | AnyScopePredicate:
    """
    Union of the predicates of every candidate the caller holds.

    A single-resource lookup must not be narrowed to the first granted
    scope: a row outside ``update:organization`` may still be reachable
    through ``update:own``. The per-resource check decides afterwards.
    """

    checker = PermissionChecker(context)
    requested = [organization_id] if organization_id else None
    return combine_predicates(
        predicate_for_result(context, checker.check(name, organization_id=organization_id), requested)
        for name in permission_names
    )


def predicate_for_access_scope(
    context: UserContext,
    access: AccessScope | None,
    requested_organization_ids: Iterable[str] | None = None,
) -> ScopePredicate:
    if access is None:
        return DENY_ALL
    return build_scope_predicate(
        context,
        access.scope,
        organization_ids=access.organization_ids,
        requested_organization_ids=requested_organization_ids,
    )
