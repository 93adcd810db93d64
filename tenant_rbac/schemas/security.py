from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenant_rbac.rbac.permissions import parse_permission_name


class OrganizationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    organization_id: str
    name: str
    parent_organization_id: str | None
    is_active: bool


class RoleGrantOut(BaseModel):
    role_id: str
    name: str
    organization_id: str | None
    is_system_role: bool


class UserContextOut(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    email_verified: bool
    current_organization_id: str | None
    organizations: list[OrganizationOut]
    accessible_organizations: list[OrganizationOut]
    roles: list[RoleGrantOut]
    all_permissions: list[str]
    is_super_admin: bool
    organization_admin_for: list[str]


class PermissionCheckIn(BaseModel):
    """Ordered candidates; the first one granted wins."""

    permissions: list[str] = Field(min_length=1)
    resource_id: str | None = None
    organization_id: str | None = None

    @field_validator("permissions")
    @classmethod
    def check_names(cls, names: list[str]) -> list[str]:
        for name in names:
            parse_permission_name(name)
        return names


class PermissionCheckOut(BaseModel):
    granted: bool
    scope: str | None
    permission: str | None
    reason: str | None


class CacheStatsOut(BaseModel):
    name: str
    hits: int
    misses: int
    hit_rate: float
    size: int
    healthy: bool
    low_hit_rate: bool
    oversized: bool


class AuditStatusOut(BaseModel):
    enabled: bool
    degraded: bool
    failures: int


class RolePermissionChangeIn(BaseModel):
    permission: str

    @field_validator("permission")
    @classmethod
    def check_name(cls, name: str) -> str:
        return parse_permission_name(name).name


class RoleOut(BaseModel):
    role_id: str
    name: str
    organization_id: str | None
    is_system_role: bool
    is_active: bool
    permissions: list[str]
