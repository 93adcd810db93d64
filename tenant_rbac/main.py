from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI

from tenant_rbac.db import filters as _filters  # noqa: F401  (register SQLAlchemy filters)
from tenant_rbac.db.init_db import init_db
from tenant_rbac.db.session import SessionLocal
from tenant_rbac.logging_config import configure_app_logging
from tenant_rbac.rbac.catalog import load_permission_catalog
from tenant_rbac.routers import admin, dashboards, health, me
from tenant_rbac.security.audit_store import SqlAuditSink
from tenant_rbac.security.config import load_security_config
from tenant_rbac.security.dependencies import enforce_security
from tenant_rbac.security.runtime import RbacRuntime
from tenant_rbac.settings import get_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())

        catalog = load_permission_catalog(settings.resolved_catalog_path())
        logger.info("Loaded permission catalog: %s", settings.resolved_catalog_path())

        runtime = RbacRuntime.from_settings(settings, audit_sink=SqlAuditSink(SessionLocal), catalog=catalog)
        init_db(catalog, role_cache=runtime.role_cache)
        logger.info("Database initialized (tables ensured + catalog seeded)")
        app.state.rbac = runtime

        yield

        runtime.report_cache_health()

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(dependencies=[Depends(enforce_security)], lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(dashboards.router)
    app.include_router(admin.router)

    return app


app = create_app()
