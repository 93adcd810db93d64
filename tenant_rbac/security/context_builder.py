"""
User-context builder.

Assembles the ``UserContext`` for one user from the authoritative store:

1. active organization memberships
2. active, non-expired role grants (joined to active roles)
3. each distinct role's permission set, read through the role cache
4. ``all_permissions``: the union of those sets, deduplicated by name
5. ``accessible_organizations``: memberships and grant organizations plus
   their full descendant subtrees (a cycle aborts the build)
6. ``is_super_admin``: a system role with the reserved name is held
7. ``organization_admin_for``: organizations where an admin role is held
   (a role whose underscore-separated name contains the admin marker)

The build is all-or-nothing. A missing user raises NotFoundError, a
deactivated one InactiveError, and running past the deadline raises
ContextBuildTimeoutError; no partially built context ever escapes.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
import time

from sqlalchemy.orm import Session

from tenant_rbac.db.base import utcnow
from tenant_rbac.models.security import Role, UserRole
from tenant_rbac.rbac.cache import PermissionSet, RolePermissionCache, UserContextCache
from tenant_rbac.rbac.context import OrganizationRef, RoleGrant, UserContext
from tenant_rbac.rbac.errors import CacheUnavailableError, ContextBuildTimeoutError, InactiveError, NotFoundError
from tenant_rbac.security.hierarchy import OrganizationHierarchy
from tenant_rbac.security.store import RbacStore

logger = logging.getLogger(__name__)

DEFAULT_SUPER_ADMIN_ROLE = "super_admin"
DEFAULT_ADMIN_ROLE_MARKER = "admin"


class UserContextBuilder:
    def __init__(
        self,
        db: Session,
        role_cache: RolePermissionCache | None = None,
        context_cache: UserContextCache | None = None,
        *,
        super_admin_role_name: str = DEFAULT_SUPER_ADMIN_ROLE,
        admin_role_marker: str = DEFAULT_ADMIN_ROLE_MARKER,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = RbacStore(db)
        self._role_cache = role_cache
        self._context_cache = context_cache
        self._super_admin_role_name = super_admin_role_name
        self._admin_role_marker = admin_role_marker
        self._timeout = timeout_seconds
        self._clock = clock
        self._now = now

    # ---- Public API -----------------------------------------------------------------

    def build(
        self,
        user_id: str,
        current_organization_id: str | None = None,
        *,
        deadline: float | None = None,
    ) -> UserContext:
        if deadline is None and self._timeout is not None:
            deadline = self._clock() + self._timeout

        key = (user_id, current_organization_id)
        cached, generation = self._cached_context(key)
        if cached is not None:
            return cached

        started = self._clock()
        context = self._build_uncached(user_id, current_organization_id, deadline)

        ttl = self._context_ttl(context)
        if self._context_cache is not None and ttl > 0:
            try:
                self._context_cache.set(key, context, ttl=ttl, generation=generation)
            except CacheUnavailableError:
                logger.warning("User context cache unavailable on write user=%s", user_id)

        logger.info(
            "User context built user=%s orgs=%d accessible=%d roles=%d permissions=%d elapsed_ms=%.1f",
            user_id,
            len(context.organizations),
            len(context.accessible_organizations),
            len(context.grants),
            len(context.all_permissions),
            (self._clock() - started) * 1000,
        )
        return context

    # ---- Steps ----------------------------------------------------------------------

    def _build_uncached(self, user_id: str, current_organization_id: str | None, deadline: float | None) -> UserContext:
        user = self.store.get_user(user_id)
        if user is None:
            logger.info("User context: user not found user=%s", user_id)
            raise NotFoundError()
        if not user.is_active:
            logger.info("User context: user inactive user=%s", user_id)
            raise InactiveError()

        memberships = self.store.active_memberships(user_id)
        self._check_deadline(deadline, "memberships")

        grants = self.store.active_grants(user_id, now=self._now())
        self._check_deadline(deadline, "grants")

        role_permissions: dict[str, PermissionSet] = {}
        for grant in grants:
            if grant.role_id not in role_permissions:
                role_permissions[grant.role_id] = self._role_permissions(grant.role)
        self._check_deadline(deadline, "role permissions")

        hierarchy = self.store.organization_hierarchy()
        membership_org_ids = [m.organization_id for m in memberships]
        role_grants = [self._to_role_grant(g, role_permissions[g.role_id], hierarchy) for g in grants]

        roots = list(membership_org_ids)
        roots.extend(g.organization_id for g in role_grants if g.organization_id is not None)
        accessible_ids = hierarchy.accessible_from(roots)
        self._check_deadline(deadline, "hierarchy")

        if current_organization_id is not None:
            # Organization-bound grants only count inside their own subtree.
            role_grants = [g for g in role_grants if g.applies_to(current_organization_id)]

        all_permissions: set = set()
        for role_grant in role_grants:
            all_permissions.update(role_grant.permissions)

        is_super_admin = any(
            g.is_system_role and g.role_name == self._super_admin_role_name for g in role_grants
        )
        organization_admin_for = frozenset(
            g.organization_id
            for g in role_grants
            if g.organization_id is not None
            and g.role_name != self._super_admin_role_name
            and self._admin_role_marker in g.role_name.split("_")
        )

        organizations = tuple(_org_ref(m.organization) for m in memberships)
        accessible = tuple(_org_ref(org) for org in self.store.organizations(accessible_ids))
        self._check_deadline(deadline, "organizations")

        return UserContext(
            user_id=user.user_id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            email_verified=user.email_verified,
            organizations=organizations,
            accessible_organizations=accessible,
            grants=tuple(role_grants),
            all_permissions=frozenset(all_permissions),
            is_super_admin=is_super_admin,
            organization_admin_for=organization_admin_for,
            current_organization_id=current_organization_id or (membership_org_ids[0] if membership_org_ids else None),
        )

    def _role_permissions(self, role: Role) -> PermissionSet:
        """Read-through lookup; a failing cache falls back to the store, never to a grant."""
        generation = None
        if self._role_cache is not None:
            try:
                cached = self._role_cache.get(role.role_id)
                if cached is not None:
                    return cached
                generation = self._role_cache.generation(role.role_id)
            except CacheUnavailableError:
                logger.warning("Role permission cache unavailable; reading store role=%s", role.role_id)

        logger.debug("Role permissions cache miss role=%s name=%s", role.role_id, role.name)
        permissions = self.store.role_permissions(role.role_id)

        if self._role_cache is not None:
            try:
                self._role_cache.set(role.role_id, permissions, generation=generation)
            except CacheUnavailableError:
                logger.warning("Role permission cache unavailable on write role=%s", role.role_id)
        return permissions

    def _to_role_grant(self, grant: UserRole, permissions: PermissionSet, hierarchy: OrganizationHierarchy) -> RoleGrant:
        role = grant.role
        organization_id = grant.organization_id or role.organization_id
        return RoleGrant(
            role_id=role.role_id,
            role_name=role.name,
            permissions=permissions,
            is_system_role=role.is_system_role,
            organization_id=organization_id,
            organization_ids=hierarchy.subtree(organization_id) if organization_id is not None else None,
            expires_at=grant.expires_at,
        )

    def _cached_context(self, key: tuple[str, str | None]) -> tuple[UserContext | None, tuple | None]:
        if self._context_cache is None:
            return None, None
        try:
            cached = self._context_cache.get(key)
            if cached is not None:
                if not _has_expired_grant(cached, self._now()):
                    return cached, None
                logger.info("Cached user context holds an expired grant; rebuilding user=%s", key[0])
                self._context_cache.invalidate(key)
            return None, self._context_cache.generation(key)
        except CacheUnavailableError:
            logger.warning("User context cache unavailable; building from store user=%s", key[0])
            return None, None

    def _context_ttl(self, context: UserContext) -> float:
        """Cache lifetime, cut short by the earliest grant expiry."""
        ttl = self._context_cache.ttl_seconds if self._context_cache is not None else 0.0
        expiries = [g.expires_at for g in context.grants if g.expires_at is not None]
        if expiries:
            ttl = min(ttl, (min(expiries) - self._now()).total_seconds())
        return ttl

    def _check_deadline(self, deadline: float | None, stage: str) -> None:
        if deadline is not None and self._clock() > deadline:
            logger.warning("User context build exceeded deadline at stage=%s", stage)
            raise ContextBuildTimeoutError()


def _has_expired_grant(context: UserContext, now: datetime) -> bool:
    return any(g.expires_at is not None and g.expires_at <= now for g in context.grants)


def _org_ref(org) -> OrganizationRef:
    return OrganizationRef(
        organization_id=org.organization_id,
        name=org.name,
        parent_organization_id=org.parent_organization_id,
        is_active=org.is_active,
    )


def build_user_context(
    db: Session,
    user_id: str,
    organization_id: str | None = None,
    **kwargs,
) -> UserContext:
    """Convenience wrapper: ``UserContextBuilder(db, **kwargs).build(user_id, organization_id)``."""
    return UserContextBuilder(db, **kwargs).build(user_id, organization_id)
