from __future__ import annotations

from collections.abc import Callable


def require_permission(*permission_names: str) -> Callable:
    """
    Decorator-style API, alternative to route rules in security_config.yaml.

    Implementation detail:
    - This decorator does NOT perform the check itself.
    - It attaches an ordered candidate list that the global security
      dependency reads *after* routing (during dependency resolution).
    - Candidates from the decorator are tried before the route rule's.
    """

    def decorator(fn: Callable) -> Callable:
        existing = tuple(getattr(fn, "__rbac_permissions__", ()))
        setattr(fn, "__rbac_permissions__", tuple(permission_names) + existing)
        return fn

    return decorator
