"""
Authorization engine core.

This package is pure Python and performs no I/O: it consumes an already
built ``UserContext`` and answers permission questions about it. Loading
contexts from the database lives in ``tenant_rbac.security``.
"""

from .audit import AuditRecord, AuditSink, BestEffortAuditSink, InMemoryAuditSink, LoggingAuditSink
from .authorizer import Authorizer
from .cache import CacheHealth, CacheStats, RolePermissionCache, UserContextCache
from .catalog import CatalogConfigError, PermissionCatalog, load_permission_catalog
from .checker import (
    PERMISSION_DENIED,
    AccessScope,
    PermissionCheckResult,
    PermissionChecker,
    check_permission,
    get_access_scope,
)
from .context import OrganizationRef, RoleGrant, UserContext
from .errors import (
    CacheUnavailableError,
    ContextBuildTimeoutError,
    HierarchyCycleError,
    InactiveError,
    InvalidScopeError,
    NotFoundError,
    PermissionDeniedError,
    RbacError,
)
from .permissions import ParsedPermission, PermissionScope, parse_permission_name
from .scope_filter import (
    AnyScopePredicate,
    ScopePredicate,
    build_scope_predicate,
    combine_predicates,
    predicate_for_access_scope,
    predicate_for_candidates,
    predicate_for_result,
)

__all__ = [
    "AccessScope",
    "AnyScopePredicate",
    "AuditRecord",
    "AuditSink",
    "Authorizer",
    "BestEffortAuditSink",
    "CacheHealth",
    "CacheStats",
    "CacheUnavailableError",
    "CatalogConfigError",
    "ContextBuildTimeoutError",
    "HierarchyCycleError",
    "InMemoryAuditSink",
    "InactiveError",
    "InvalidScopeError",
    "LoggingAuditSink",
    "NotFoundError",
    "OrganizationRef",
    "PERMISSION_DENIED",
    "ParsedPermission",
    "PermissionCatalog",
    "PermissionCheckResult",
    "PermissionChecker",
    "PermissionDeniedError",
    "PermissionScope",
    "RbacError",
    "RoleGrant",
    "RolePermissionCache",
    "ScopePredicate",
    "UserContext",
    "UserContextCache",
    "build_scope_predicate",
    "check_permission",
    "combine_predicates",
    "get_access_scope",
    "load_permission_catalog",
    "parse_permission_name",
    "predicate_for_access_scope",
    "predicate_for_candidates",
    "predicate_for_result",
]
