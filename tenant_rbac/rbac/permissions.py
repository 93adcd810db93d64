"""
Permission names and scopes.

Wire format is ``"{resource}:{action}:{scope}"`` (case-sensitive, lower-case
by convention). Names are parsed once into a ``ParsedPermission`` and the
triple, not the string, is compared everywhere else.

Compound actions are allowed: ``practices:staff:manage:own`` parses to
resource ``practices``, action ``staff:manage``, scope ``own``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from .errors import InvalidScopeError


class PermissionScope(str, Enum):
    OWN = "own"
    ORGANIZATION = "organization"
    ALL = "all"


# Broadest first; used when a caller asks "which scope do I qualify for".
SCOPE_PRECEDENCE: tuple[PermissionScope, ...] = (
    PermissionScope.ALL,
    PermissionScope.ORGANIZATION,
    PermissionScope.OWN,
)


@dataclass(frozen=True)
class ParsedPermission:
    """Typed ``(resource, action, scope)`` triple."""

    resource: str
    action: str
    scope: PermissionScope

    @property
    def name(self) -> str:
        return f"{self.resource}:{self.action}:{self.scope.value}"

    def with_scope(self, scope: PermissionScope) -> ParsedPermission:
        return ParsedPermission(self.resource, self.action, scope)

    def __str__(self) -> str:
        return self.name


def parse_scope(raw: str) -> PermissionScope:
    try:
        return PermissionScope(raw)
    except ValueError as exc:
        raise InvalidScopeError(f"Unknown scope literal: {raw!r}") from exc


@lru_cache(maxsize=4096)
def parse_permission_name(name: str) -> ParsedPermission:
    """
    Parse ``resource:action:scope``.

    Raises InvalidScopeError for anything that is not at least three
    non-empty, whitespace-free segments ending in a known scope.
    """

    if not isinstance(name, str):
        raise InvalidScopeError("Permission name must be a string")

    parts = name.split(":")
    if len(parts) < 3 or any(not part or part != part.strip() for part in parts):
        raise InvalidScopeError(f"Invalid permission format: {name!r}. Expected resource:action:scope")

    resource = parts[0]
    action = ":".join(parts[1:-1])
    scope = parse_scope(parts[-1])
    return ParsedPermission(resource=resource, action=action, scope=scope)


def build_permission_name(resource: str, action: str, scope: PermissionScope | str) -> str:
    scope_value = scope.value if isinstance(scope, PermissionScope) else parse_scope(scope).value
    return parse_permission_name(f"{resource}:{action}:{scope_value}").name
