"""
Administrative writes to roles, grants and memberships.

Every method commits and then invalidates the affected cache entries before
returning, so once a call completes no later authorization can be served
from a stale entry (e.g. a revoked permission honored from cache).
"""

from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_rbac.db.base import utcnow
from tenant_rbac.models.security import Role, UserOrganization, UserRole
from tenant_rbac.rbac.cache import RolePermissionCache, UserContextCache
from tenant_rbac.rbac.errors import InactiveError, NotFoundError
from tenant_rbac.security.store import RbacStore

logger = logging.getLogger(__name__)


class RbacAdmin:
    def __init__(
        self,
        db: Session,
        role_cache: RolePermissionCache | None = None,
        context_cache: UserContextCache | None = None,
    ) -> None:
        self.db = db
        self.store = RbacStore(db)
        self._role_cache = role_cache
        self._context_cache = context_cache

    # ---- Role permissions -----------------------------------------------------------

    def grant_permission(self, role_id: str, permission_name: str) -> Role:
        role = self._require_role(role_id)
        permission = self.store.get_permission_by_name(permission_name)
        if permission is None:
            raise NotFoundError(f"Unknown permission: {permission_name}")
        if not permission.is_active:
            raise InactiveError(f"Permission is inactive: {permission_name}")

        if permission not in role.permissions:
            role.permissions.append(permission)
        self.db.commit()
        self._invalidate_role(role_id)
        logger.info("Granted permission role=%s permission=%s", role_id, permission_name)
        return role

    def revoke_permission(self, role_id: str, permission_name: str) -> Role:
        role = self._require_role(role_id)
        for permission in [p for p in role.permissions if p.name == permission_name]:
            role.permissions.remove(permission)
        self.db.commit()
        self._invalidate_role(role_id)
        logger.info("Revoked permission role=%s permission=%s", role_id, permission_name)
        return role

    def set_role_active(self, role_id: str, active: bool) -> Role:
        role = self._require_role(role_id)
        role.is_active = active
        self.db.commit()
        self._invalidate_role(role_id)
        if active and self._context_cache is not None:
            # Cached contexts of holders were built without the inactive role.
            self._context_cache.invalidate_all()
        logger.info("Role %s role=%s", "activated" if active else "deactivated", role_id)
        return role

    def delete_role(self, role_id: str) -> None:
        role = self._require_role(role_id)
        role.is_active = False
        role.deleted_at = utcnow()
        self.db.commit()
        self._invalidate_role(role_id)
        logger.info("Deleted role role=%s", role_id)

    # ---- User grants ----------------------------------------------------------------

    def assign_role(
        self,
        user_id: str,
        role_id: str,
        organization_id: str | None = None,
        granted_by: str | None = None,
        expires_at: datetime | None = None,
    ) -> UserRole:
        self._require_user(user_id)
        self._require_role(role_id)
        if organization_id is not None:
            self._require_organization(organization_id)

        grant = UserRole(
            user_id=user_id,
            role_id=role_id,
            organization_id=organization_id,
            granted_by=granted_by,
            expires_at=expires_at,
            is_active=True,
        )
        self.db.add(grant)
        self.db.commit()
        self._invalidate_user(user_id)
        logger.info("Assigned role user=%s role=%s org=%s", user_id, role_id, organization_id)
        return grant

    def revoke_role(self, user_id: str, role_id: str, organization_id: str | None = None) -> int:
        stmt = select(UserRole).where(
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
            UserRole.is_active.is_(True),
        )
        if organization_id is not None:
            stmt = stmt.where(UserRole.organization_id == organization_id)
        grants = list(self.db.scalars(stmt).all())
        for grant in grants:
            grant.is_active = False
        self.db.commit()
        self._invalidate_user(user_id)
        logger.info("Revoked role user=%s role=%s org=%s grants=%d", user_id, role_id, organization_id, len(grants))
        return len(grants)

    # ---- Memberships and hierarchy --------------------------------------------------

    def add_membership(self, user_id: str, organization_id: str) -> UserOrganization:
        self._require_user(user_id)
        self._require_organization(organization_id)

        membership = self.db.scalars(
            select(UserOrganization).where(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
        ).first()
        if membership is None:
            membership = UserOrganization(user_id=user_id, organization_id=organization_id)
            self.db.add(membership)
        membership.is_active = True
        self.db.commit()
        self._invalidate_user(user_id)
        return membership

    def remove_membership(self, user_id: str, organization_id: str) -> None:
        membership = self.db.scalars(
            select(UserOrganization).where(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
        ).first()
        if membership is None:
            raise NotFoundError("Membership not found")
        membership.is_active = False
        self.db.commit()
        self._invalidate_user(user_id)

    def set_organization_parent(self, organization_id: str, parent_organization_id: str | None) -> None:
        org = self._require_organization(organization_id)
        self.store.organization_hierarchy().validate_parent_change(organization_id, parent_organization_id)
        org.parent_organization_id = parent_organization_id
        self.db.commit()
        # Accessible sets of arbitrary users change with the tree.
        if self._context_cache is not None:
            self._context_cache.invalidate_all()
        logger.info("Re-parented organization org=%s parent=%s", organization_id, parent_organization_id)

    # ---- Helpers --------------------------------------------------------------------

    def _invalidate_role(self, role_id: str) -> None:
        if self._role_cache is not None:
            self._role_cache.invalidate(role_id)
        if self._context_cache is not None:
            self._context_cache.invalidate_role(role_id)

    def _invalidate_user(self, user_id: str) -> None:
        if self._context_cache is not None:
            self._context_cache.invalidate_user(user_id)

    def _require_role(self, role_id: str) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    def _require_user(self, user_id: str) -> None:
        if self.store.get_user(user_id) is None:
            raise NotFoundError("User not found")

    def _require_organization(self, organization_id: str):
        org = self.store.get_organization(organization_id)
        if org is None or org.deleted_at is not None:
            raise NotFoundError("Organization not found")
        return org
