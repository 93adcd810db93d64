"""
Error taxonomy for the authorization engine.

Every error carries a short machine ``code`` and the HTTP status the API
boundary should map it to. Messages are generic: callers must
not be able to tell *which* sub-check failed.
"""

from __future__ import annotations


class RbacError(Exception):
    """Base class for authorization failures."""

    code = "RBAC_ERROR"
    status_code = 403
    default_message = "Access denied"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotFoundError(RbacError):
    """User, role or organization does not exist."""

    code = "NOT_FOUND"
    status_code = 401
    default_message = "Invalid or inactive user"


class InactiveError(RbacError):
    """Entity exists but has been deactivated."""

    code = "INACTIVE"
    status_code = 403
    default_message = "Invalid or inactive user"


class PermissionDeniedError(RbacError):
    """No grant matches the requested permission."""

    code = "PERMISSION_DENIED"
    status_code = 403
    default_message = "Permission denied"


class InvalidScopeError(RbacError, ValueError):
    """Malformed permission name or unknown scope literal."""

    code = "INVALID_SCOPE"
    status_code = 400
    default_message = "Invalid permission name"


class CacheUnavailableError(RbacError):
    """Cache backend failed; callers fall back to the authoritative store."""

    code = "CACHE_UNAVAILABLE"
    status_code = 503
    default_message = "Permission cache unavailable"


class HierarchyCycleError(RbacError):
    """The organization tree contains a cycle (data-integrity violation)."""

    code = "HIERARCHY_CYCLE"
    status_code = 500
    default_message = "Organization hierarchy is inconsistent"


class ContextBuildTimeoutError(RbacError):
    """User context could not be built before the request deadline."""

    code = "CONTEXT_TIMEOUT"
    status_code = 503
    default_message = "Authorization unavailable"
