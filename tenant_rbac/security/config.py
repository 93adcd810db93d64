from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from tenant_rbac.rbac.permissions import parse_permission_name


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    organization_header: str = "X-Organization-Id"


def _validate_names(names: list[str]) -> list[str]:
    # Parse once at load time so a typo fails startup, not a request.
    return [parse_permission_name(name).name for name in names]


class DefaultRule(BaseModel):
    auth_required: bool = True
    permissions: list[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, names: list[str]) -> list[str]:
        return _validate_names(names)


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    # Ordered candidates; the first one granted decides the scope.
    permissions: list[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, names: list[str]) -> list[str]:
        return _validate_names(names)

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    permissions: tuple[str, ...]


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # Convert "/dashboards/{id}" -> r"^/dashboards/[^/]+$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        compiled: list[tuple[str, re.Pattern[str], RouteRule]] = []
        for rule in self.model.routes:
            compiled.append((rule.path, _path_template_to_regex(rule.path), rule))

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = compiled

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for _template, regex, candidate in self._compiled_rules:
            if method not in candidate.normalized_methods():
                continue
            if regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(auth_required=default.auth_required, permissions=tuple(default.permissions))


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A rule that names permissions always requires auth, even if the
    # global default is "public".
    inferred_auth_required = default.auth_required or bool(rule.permissions)

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        permissions=tuple(rule.permissions or default.permissions),
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
