from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from tenant_rbac.db.base import utcnow
from tenant_rbac.models.security import Organization, Permission, Role, User, UserOrganization, UserRole, role_permissions
from tenant_rbac.rbac.permissions import ParsedPermission, parse_permission_name
from tenant_rbac.security.hierarchy import OrganizationHierarchy


class RbacStore:
    """
    Read-only access to the authoritative RBAC tables.

    All queries filter on the active flags so callers never see deactivated
    memberships, roles, grants or permissions.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def active_memberships(self, user_id: str) -> list[UserOrganization]:
        stmt = (
            select(UserOrganization)
            .join(Organization, UserOrganization.organization_id == Organization.organization_id)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.is_active.is_(True),
                Organization.is_active.is_(True),
                Organization.deleted_at.is_(None),
            )
            .options(selectinload(UserOrganization.organization))
            .order_by(UserOrganization.joined_at, UserOrganization.organization_id)
        )
        return list(self.db.scalars(stmt).all())

    def active_grants(self, user_id: str, now: datetime | None = None) -> list[UserRole]:
        """Active, non-expired grants joined to active, non-deleted roles."""
        now = now or utcnow()
        stmt = (
            select(UserRole)
            .join(Role, UserRole.role_id == Role.role_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
                Role.is_active.is_(True),
                Role.deleted_at.is_(None),
            )
            .options(selectinload(UserRole.role))
            .order_by(UserRole.granted_at, UserRole.user_role_id)
        )
        return list(self.db.scalars(stmt).all())

    def role_permissions(self, role_id: str) -> frozenset[ParsedPermission]:
        stmt = (
            select(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.permission_id)
            .where(role_permissions.c.role_id == role_id, Permission.is_active.is_(True))
        )
        return frozenset(parse_permission_name(name) for name in self.db.scalars(stmt).all())

    def organization_hierarchy(self) -> OrganizationHierarchy:
        stmt = select(Organization.organization_id, Organization.parent_organization_id).where(
            Organization.is_active.is_(True),
            Organization.deleted_at.is_(None),
        )
        return OrganizationHierarchy({org_id: parent_id for org_id, parent_id in self.db.execute(stmt).all()})

    def organizations(self, organization_ids: frozenset[str] | set[str]) -> list[Organization]:
        if not organization_ids:
            return []
        stmt = (
            select(Organization)
            .where(Organization.organization_id.in_(organization_ids))
            .order_by(Organization.name, Organization.organization_id)
        )
        return list(self.db.scalars(stmt).all())

    def get_role(self, role_id: str) -> Role | None:
        return self.db.get(Role, role_id)

    def get_permission_by_name(self, name: str) -> Permission | None:
        return self.db.scalars(select(Permission).where(Permission.name == name)).first()

    def get_organization(self, organization_id: str) -> Organization | None:
        return self.db.get(Organization, organization_id)
