"""
API fixtures: the real app with test state instead of the startup lifespan.

Each request gets its own session on the test connection, so the rows a test
arranged through `factory` are visible and everything is rolled back after.
"""
from __future__ import annotations

from pathlib import Path

import jwt
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from tenant_rbac.db.session import get_db
from tenant_rbac.main import create_app
from tenant_rbac.rbac.audit import InMemoryAuditSink
from tenant_rbac.security.config import load_security_config
from tenant_rbac.security.runtime import RbacRuntime
from tenant_rbac.settings import Settings

SECURITY_CONFIG = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"
TOKEN_SECRET = "test-secret-for-signing-identity-tokens"


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def runtime(audit_sink):
    settings = Settings(token_secret=TOKEN_SECRET, audit_enabled=True)
    return RbacRuntime.from_settings(settings, audit_sink=audit_sink)


@pytest.fixture
def client(session_factory, runtime):
    app = create_app()
    app.state.security_config = load_security_config(SECURITY_CONFIG)
    app.state.rbac = runtime

    def _get_db(request: Request):
        db = session_factory()
        db.info["request"] = request
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    return TestClient(app)


def bearer(user_id: str, organization_id: str | None = None, secret: str = TOKEN_SECRET) -> dict[str, str]:
    claims = {"sub": user_id}
    if organization_id is not None:
        claims["org"] = organization_id
    return {"Authorization": f"Bearer {jwt.encode(claims, secret, algorithm='HS256')}"}


@pytest.fixture
def auth_headers():
    return bearer
