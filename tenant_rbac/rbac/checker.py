"""
Permission checker: the in-memory decision function.

Given a built ``UserContext`` and one or more candidate permission names,
decide granted/denied and report which scope justified the grant.

Algorithm (per candidate, in order; first grant wins):
1. Super admins are granted at scope ``all`` without consulting the catalog.
2. ``all``: granted iff the exact ``all``-scoped permission is held.
3. ``organization``: granted iff held at ``organization`` scope and the
   requested organization (if any) is accessible. Grants scoped to an
   organization only justify decisions inside that organization's subtree.
4. ``own``: granted iff held at ``own`` scope and the concrete resource (if
   any) is owned by the caller. Ownership lookup is supplied by the resource
   service through ``owner_of``; without one, only the caller's own user id
   counts as owned.

Scopes never imply each other. Denials are ordinary results, not exceptions,
and their reason is generic.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
import logging

from .context import OrganizationRef, UserContext
from .errors import PermissionDeniedError
from .permissions import SCOPE_PRECEDENCE, ParsedPermission, PermissionScope, parse_permission_name

logger = logging.getLogger(__name__)

PERMISSION_DENIED = "PermissionDenied"

OwnershipResolver = Callable[[str], "str | None"]
"""Maps a resource id to the id of the user who owns it (None if unknown)."""


@dataclass(frozen=True)
class PermissionCheckResult:
    granted: bool
    scope: PermissionScope | None = None
    permission: str | None = None
    reason: str | None = None
    applicable_organizations: frozenset[str] | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "granted": self.granted,
            "scope": self.scope.value if self.scope else None,
            "permission": self.permission,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AccessScope:
    """Pre-resolved scope for building a list query."""

    scope: PermissionScope
    user_id: str | None = None
    organization_ids: frozenset[str] | None = None


_DENIED = PermissionCheckResult(granted=False, reason=PERMISSION_DENIED)


def as_candidates(permission_names: str | Iterable[str]) -> Sequence[str]:
    if isinstance(permission_names, str):
        return (permission_names,)
    return tuple(permission_names)


class PermissionChecker:
    """
    Stateless evaluator bound to one context.

    Usage:
        checker = PermissionChecker(ctx)
        result = checker.check(["dashboards:read:all", "dashboards:read:organization"])
    """

    def __init__(self, context: UserContext) -> None:
        self._ctx = context

    @property
    def context(self) -> UserContext:
        return self._ctx

    # ---- Main decision API ----------------------------------------------------------

    def check(
        self,
        permission_names: str | Iterable[str],
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> PermissionCheckResult:
        candidates = as_candidates(permission_names)
        if not candidates:
            return _DENIED

        if self._ctx.is_super_admin:
            return PermissionCheckResult(
                granted=True,
                scope=PermissionScope.ALL,
                permission=candidates[0],
                applicable_organizations=self._ctx.accessible_organization_ids,
            )

        for name in candidates:
            parsed = parse_permission_name(name)
            result = self._check_one(parsed, resource_id, organization_id, owner_of)
            if result.granted:
                logger.debug(
                    "RBAC: allowed user=%s permission=%s resource=%s org=%s",
                    self._ctx.user_id,
                    parsed.name,
                    resource_id,
                    organization_id,
                )
                return result

        logger.debug(
            "RBAC: denied user=%s candidates=%s resource=%s org=%s",
            self._ctx.user_id,
            list(candidates),
            resource_id,
            organization_id,
        )
        return _DENIED

    def _check_one(
        self,
        parsed: ParsedPermission,
        resource_id: str | None,
        organization_id: str | None,
        owner_of: OwnershipResolver | None,
    ) -> PermissionCheckResult:
        if parsed not in self._ctx.all_permissions:
            return _DENIED

        if parsed.scope is PermissionScope.ALL:
            return PermissionCheckResult(granted=True, scope=PermissionScope.ALL, permission=parsed.name)

        if parsed.scope is PermissionScope.ORGANIZATION:
            return self._check_organization(parsed, organization_id)

        return self._check_own(parsed, resource_id, owner_of)

    def _check_organization(self, parsed: ParsedPermission, organization_id: str | None) -> PermissionCheckResult:
        applicable = self._applicable_organizations(parsed)

        if organization_id is not None:
            if organization_id not in applicable:
                logger.debug(
                    "RBAC: organization outside grant user=%s permission=%s org=%s",
                    self._ctx.user_id,
                    parsed.name,
                    organization_id,
                )
                return _DENIED
            applicable = frozenset({organization_id})

        return PermissionCheckResult(
            granted=True,
            scope=PermissionScope.ORGANIZATION,
            permission=parsed.name,
            applicable_organizations=applicable,
        )

    def _check_own(
        self,
        parsed: ParsedPermission,
        resource_id: str | None,
        owner_of: OwnershipResolver | None,
    ) -> PermissionCheckResult:
        if resource_id is not None:
            owner = owner_of(resource_id) if owner_of is not None else resource_id
            if owner != self._ctx.user_id:
                logger.debug(
                    "RBAC: ownership mismatch user=%s permission=%s resource=%s",
                    self._ctx.user_id,
                    parsed.name,
                    resource_id,
                )
                return _DENIED

        return PermissionCheckResult(granted=True, scope=PermissionScope.OWN, permission=parsed.name)

    def _applicable_organizations(self, parsed: ParsedPermission) -> frozenset[str]:
        """Accessible organizations in which ``parsed`` may be exercised."""
        accessible = self._ctx.accessible_organization_ids
        holders = self._ctx.grants_holding(parsed)
        if not holders or any(grant.is_global for grant in holders):
            return accessible

        scoped: set[str] = set()
        for grant in holders:
            scoped.update(grant.organization_ids or ())
        return accessible & scoped

    # ---- Convenience ----------------------------------------------------------------

    def has_permission(
        self,
        permission_name: str,
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> bool:
        return self.check(permission_name, resource_id, organization_id, owner_of).granted

    def has_any_permission(
        self,
        permission_names: Iterable[str],
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> bool:
        return self.check(permission_names, resource_id, organization_id, owner_of).granted

    def has_all_permissions(
        self,
        permission_names: Iterable[str],
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> bool:
        names = as_candidates(permission_names)
        return bool(names) and all(self.has_permission(n, resource_id, organization_id, owner_of) for n in names)

    def require_permission(
        self,
        permission_names: str | Iterable[str],
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> PermissionCheckResult:
        result = self.check(permission_names, resource_id, organization_id, owner_of)
        if not result.granted:
            raise PermissionDeniedError()
        return result

    def get_access_scope(self, resource: str, action: str) -> AccessScope | None:
        """Broadest scope the caller holds for ``resource:action``, or None."""
        if self._ctx.is_super_admin:
            return AccessScope(scope=PermissionScope.ALL)

        held = self._ctx.permissions_at(resource, action)
        for scope in SCOPE_PRECEDENCE:
            if scope not in held:
                continue
            if scope is PermissionScope.ALL:
                return AccessScope(scope=scope)
            if scope is PermissionScope.ORGANIZATION:
                parsed = ParsedPermission(resource, action, scope)
                return AccessScope(scope=scope, organization_ids=self._applicable_organizations(parsed))
            return AccessScope(scope=scope, user_id=self._ctx.user_id)
        return None

    def can_access_organization(self, organization_id: str) -> bool:
        return organization_id in self._ctx.accessible_organization_ids

    def is_super_admin(self) -> bool:
        return self._ctx.is_super_admin

    def is_organization_admin(self, organization_id: str | None = None) -> bool:
        target = organization_id or self._ctx.current_organization_id
        if not target:
            return False
        return target in self._ctx.organization_admin_for

    def current_organization(self) -> OrganizationRef | None:
        current = self._ctx.current_organization_id
        if current is None:
            return None
        for org in self._ctx.accessible_organizations:
            if org.organization_id == current:
                return org
        return None


def check_permission(
    context: UserContext,
    permission_names: str | Iterable[str],
    resource_id: str | None = None,
    organization_id: str | None = None,
    owner_of: OwnershipResolver | None = None,
) -> PermissionCheckResult:
    return PermissionChecker(context).check(permission_names, resource_id, organization_id, owner_of)


def get_access_scope(context: UserContext, resource: str, action: str) -> AccessScope | None:
    return PermissionChecker(context).get_access_scope(resource, action)
