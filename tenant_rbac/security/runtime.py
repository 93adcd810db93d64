from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from tenant_rbac.rbac.audit import AuditSink
from tenant_rbac.rbac.authorizer import Authorizer
from tenant_rbac.rbac.cache import CacheHealth, RolePermissionCache, UserContextCache
from tenant_rbac.rbac.catalog import PermissionCatalog
from tenant_rbac.security.admin import RbacAdmin
from tenant_rbac.security.context_builder import UserContextBuilder
from tenant_rbac.settings import Settings


@dataclass
class RbacRuntime:
    """
    Process-wide authorization components.

    Constructed once at startup (see ``tenant_rbac.main``) and handed to
    request handlers through ``app.state``; tests build a fresh one instead
    of sharing hidden globals.
    """

    settings: Settings
    role_cache: RolePermissionCache
    context_cache: UserContextCache
    authorizer: Authorizer
    catalog: PermissionCatalog | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        audit_sink: AuditSink | None = None,
        catalog: PermissionCatalog | None = None,
    ) -> RbacRuntime:
        cache_kwargs = {"max_entries": settings.cache_max_entries, "low_hit_rate": settings.cache_low_hit_rate}
        return cls(
            settings=settings,
            role_cache=RolePermissionCache(ttl_seconds=settings.role_cache_ttl_seconds, **cache_kwargs),
            context_cache=UserContextCache(ttl_seconds=settings.user_context_cache_ttl_seconds, **cache_kwargs),
            authorizer=Authorizer(audit_sink if settings.audit_enabled else None),
            catalog=catalog,
        )

    def context_builder(self, db: Session) -> UserContextBuilder:
        return UserContextBuilder(
            db,
            role_cache=self.role_cache,
            context_cache=self.context_cache,
            super_admin_role_name=self.settings.super_admin_role_name,
            admin_role_marker=self.settings.admin_role_marker,
            timeout_seconds=self.settings.context_build_timeout_seconds,
        )

    def admin(self, db: Session) -> RbacAdmin:
        return RbacAdmin(db, role_cache=self.role_cache, context_cache=self.context_cache)

    def report_cache_health(self) -> list[CacheHealth]:
        return [self.role_cache.report_health(), self.context_cache.report_health()]
