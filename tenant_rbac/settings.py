from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite next to the repo, YAML under config/).
    - Every field can be overridden via `RBAC_*` env vars.
    """

    model_config = SettingsConfigDict(env_prefix="RBAC_", extra="ignore")

    db_url: str | None = None
    catalog_path: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"

    # Caches
    role_cache_ttl_seconds: float = 300
    user_context_cache_ttl_seconds: float = 60
    cache_low_hit_rate: float = 0.5
    cache_max_entries: int = 10_000

    # Context building
    context_build_timeout_seconds: float = 5.0
    super_admin_role_name: str = "super_admin"
    admin_role_marker: str = "admin"

    # Audit
    audit_enabled: bool = True

    # Identity tokens (validated only; issuance lives elsewhere)
    token_secret: str = "change-me"
    token_algorithm: str = "HS256"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "rbac.db"
        return f"sqlite:///{db_path}"

    def resolved_catalog_path(self) -> Path:
        if self.catalog_path:
            return Path(self.catalog_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "rbac_catalog.yaml"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
