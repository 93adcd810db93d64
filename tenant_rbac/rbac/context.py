"""Per-request authorization snapshot produced by the user-context builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property

from .permissions import ParsedPermission, PermissionScope


@dataclass(frozen=True)
class OrganizationRef:
    organization_id: str
    name: str
    parent_organization_id: str | None = None
    is_active: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "organization_id": self.organization_id,
            "name": self.name,
            "parent_organization_id": self.parent_organization_id,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class RoleGrant:
    """
    One active role held by the user.

    ``organization_id`` is the organization the grant was scoped to (None for
    a global grant); ``organization_ids`` is that organization's resolved
    subtree, i.e. where an organization-scoped permission from this grant
    may be exercised.
    """

    role_id: str
    role_name: str
    permissions: frozenset[ParsedPermission]
    is_system_role: bool = False
    organization_id: str | None = None
    organization_ids: frozenset[str] | None = None
    expires_at: datetime | None = None

    @property
    def is_global(self) -> bool:
        return self.organization_id is None

    def applies_to(self, organization_id: str) -> bool:
        if self.organization_ids is None:
            return True
        return organization_id in self.organization_ids


@dataclass(frozen=True)
class UserContext:
    """
    Immutable view of everything needed to authorize one user.

    Either fully built or not built at all; never mutated after
    construction and never shared across requests.
    """

    user_id: str
    email: str
    organizations: tuple[OrganizationRef, ...] = ()
    accessible_organizations: tuple[OrganizationRef, ...] = ()
    grants: tuple[RoleGrant, ...] = ()
    all_permissions: frozenset[ParsedPermission] = field(default_factory=frozenset)
    is_super_admin: bool = False
    organization_admin_for: frozenset[str] = field(default_factory=frozenset)
    current_organization_id: str | None = None

    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    email_verified: bool = False

    @cached_property
    def accessible_organization_ids(self) -> frozenset[str]:
        return frozenset(org.organization_id for org in self.accessible_organizations if org.is_active)

    @cached_property
    def permission_names(self) -> frozenset[str]:
        return frozenset(p.name for p in self.all_permissions)

    @property
    def role_ids(self) -> frozenset[str]:
        return frozenset(grant.role_id for grant in self.grants)

    @property
    def role_names(self) -> frozenset[str]:
        return frozenset(grant.role_name for grant in self.grants)

    def grants_holding(self, permission: ParsedPermission) -> tuple[RoleGrant, ...]:
        return tuple(grant for grant in self.grants if permission in grant.permissions)

    def permissions_at(self, resource: str, action: str) -> frozenset[PermissionScope]:
        return frozenset(p.scope for p in self.all_permissions if p.resource == resource and p.action == action)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "current_organization_id": self.current_organization_id,
            "organizations": [org.to_dict() for org in self.organizations],
            "accessible_organizations": [org.to_dict() for org in self.accessible_organizations],
            "roles": [
                {
                    "role_id": grant.role_id,
                    "name": grant.role_name,
                    "organization_id": grant.organization_id,
                    "is_system_role": grant.is_system_role,
                }
                for grant in self.grants
            ],
            "all_permissions": sorted(self.permission_names),
            "is_super_admin": self.is_super_admin,
            "organization_admin_for": sorted(self.organization_admin_for),
        }
