"""
Permission catalog and YAML loader.

The catalog is the fixed set of valid ``resource:action:scope`` triples plus
the seeded system roles that bundle them. It is loaded once at startup and
written to the database by ``tenant_rbac.db.init_db``; it is never mutated
at runtime.

Expected shape:

    permissions:
      "dashboards:read:organization":
        description: Read dashboards in organization
      "dashboards:update:own":
        description: Update own dashboards
        active: true

    roles:
      super_admin:
        description: Full system access
        is_system_role: true
        permissions: ALL
      user:
        is_system_role: true
        permissions: ["dashboards:read:organization", ...]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path

import yaml

from .errors import InvalidScopeError
from .permissions import SCOPE_PRECEDENCE, ParsedPermission, parse_permission_name

logger = logging.getLogger(__name__)

ALL_PERMISSIONS_MARKER = "ALL"


class CatalogConfigError(ValueError):
    """Raised when the catalog YAML is invalid."""


@dataclass(frozen=True)
class PermissionDef:
    parsed: ParsedPermission
    description: str | None = None
    is_active: bool = True

    @property
    def name(self) -> str:
        return self.parsed.name


@dataclass(frozen=True)
class RoleDef:
    name: str
    permissions: frozenset[str]
    grants_all: bool = False
    is_system_role: bool = False
    description: str | None = None


@dataclass(frozen=True)
class PermissionCatalog:
    permissions: Mapping[str, PermissionDef]
    roles: Mapping[str, RoleDef]

    def role_permission_names(self, role_name: str) -> frozenset[str]:
        """Effective permission names for a seeded role (``ALL`` expanded)."""
        role = self.roles[role_name]
        if role.grants_all:
            return frozenset(name for name, perm in self.permissions.items() if perm.is_active)
        return role.permissions

    def candidate_permissions(self, resource: str, action: str) -> tuple[str, ...]:
        """Catalog names for ``resource:action``, broadest scope first."""
        names: list[str] = []
        for scope in SCOPE_PRECEDENCE:
            name = ParsedPermission(resource, action, scope).name
            if name in self.permissions:
                names.append(name)
        return tuple(names)

    @property
    def resources(self) -> frozenset[str]:
        return frozenset(p.parsed.resource for p in self.permissions.values())


def _parse_name(name: object, where: str) -> ParsedPermission:
    try:
        return parse_permission_name(str(name))
    except InvalidScopeError as exc:
        raise CatalogConfigError(f"{where}: {exc}") from exc


def load_permission_catalog(path: Path) -> PermissionCatalog:
    """Load and validate the catalog YAML from disk."""

    raw_text = path.read_text(encoding="utf-8")
    raw = yaml.safe_load(raw_text) or {}
    if not isinstance(raw, dict):
        raise CatalogConfigError("catalog root must be a mapping")

    perms_raw = raw.get("permissions") or {}
    roles_raw = raw.get("roles") or {}

    if not isinstance(perms_raw, dict):
        raise CatalogConfigError("permissions must be a mapping")
    if not isinstance(roles_raw, dict):
        raise CatalogConfigError("roles must be a mapping")

    # Parse permissions
    permissions: dict[str, PermissionDef] = {}
    for perm_name, perm_val in perms_raw.items():
        perm_val = perm_val or {}
        if not isinstance(perm_val, dict):
            raise CatalogConfigError(f"permission {perm_name!r} must be a mapping")
        parsed = _parse_name(perm_name, f"permission {perm_name!r}")
        if parsed.name != perm_name:
            raise CatalogConfigError(f"permission {perm_name!r} is not in canonical form")
        description = perm_val.get("description")
        permissions[parsed.name] = PermissionDef(
            parsed=parsed,
            description=str(description) if description is not None else None,
            is_active=bool(perm_val.get("active", True)),
        )

    # Parse roles
    roles: dict[str, RoleDef] = {}
    for role_name, role_val in roles_raw.items():
        role_val = role_val or {}
        if not isinstance(role_val, dict):
            raise CatalogConfigError(f"role {role_name!r} must be a mapping")

        perms_list = role_val.get("permissions") or []
        grants_all = perms_list == ALL_PERMISSIONS_MARKER
        if grants_all:
            perms_list = []
        if not isinstance(perms_list, list):
            raise CatalogConfigError(f"role {role_name!r}.permissions must be a list or {ALL_PERMISSIONS_MARKER!r}")

        perms = frozenset(_parse_name(p, f"role {role_name!r}").name for p in perms_list)
        unknown = perms.difference(permissions.keys())
        if unknown:
            raise CatalogConfigError(f"role {role_name!r} references unknown permissions: {sorted(unknown)}")

        description = role_val.get("description")
        roles[str(role_name)] = RoleDef(
            name=str(role_name),
            permissions=perms,
            grants_all=grants_all,
            is_system_role=bool(role_val.get("is_system_role", False)),
            description=str(description) if description is not None else None,
        )

    logger.debug("Loaded permission catalog permissions=%d roles=%d", len(permissions), len(roles))
    return PermissionCatalog(permissions=permissions, roles=roles)
