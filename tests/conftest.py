"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. API tests bind extra
sessions to the same connection so requests see the rows a test arranged.
"""
from __future__ import annotations

from datetime import datetime
from itertools import count

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from tenant_rbac.rbac.cache import RolePermissionCache, UserContextCache


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from tenant_rbac.db import filters  # noqa: F401  (register SQLAlchemy filters)
    from tenant_rbac.db.base import Base
    from tenant_rbac.models import resources, security  # noqa: F401  (register models)

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def connection(tables):
    connection = tables.connect()
    transaction = connection.begin()
    yield connection
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(connection):
    """Sessions sharing the test transaction (commits stay inside it)."""
    return sessionmaker(bind=connection, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db_session(session_factory):
    """
    Provide a Session bound to the test DB; roll back after each test.

    Use this in tests that need a database (e.g. data layer tests). The
    transaction is rolled back so the next test gets a clean state.
    """
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def role_cache():
    return RolePermissionCache(ttl_seconds=300)


@pytest.fixture
def context_cache():
    return UserContextCache(ttl_seconds=60)


class RbacFactory:
    """Small builders for organizations, users, roles and grants."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._seq = count(1)

    def organization(self, name: str, parent=None, is_active: bool = True):
        from tenant_rbac.models.security import Organization

        n = next(self._seq)
        org = Organization(
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{n}",
            parent_organization_id=parent.organization_id if parent is not None else None,
            is_active=is_active,
        )
        self.db.add(org)
        self.db.commit()
        return org

    def user(self, email: str | None = None, is_active: bool = True, organizations=()):
        from tenant_rbac.models.security import User, UserOrganization

        n = next(self._seq)
        user = User(
            email=email or f"user{n}@example.com",
            first_name=f"First{n}",
            last_name=f"Last{n}",
            is_active=is_active,
        )
        self.db.add(user)
        self.db.flush()
        for org in organizations:
            self.db.add(UserOrganization(user_id=user.user_id, organization_id=org.organization_id))
        self.db.commit()
        return user

    def permission(self, name: str, is_active: bool = True):
        from tenant_rbac.models.security import Permission
        from tenant_rbac.rbac.permissions import parse_permission_name

        permission = self.db.scalars(select(Permission).where(Permission.name == name)).first()
        if permission is None:
            parsed = parse_permission_name(name)
            permission = Permission(
                name=parsed.name,
                resource=parsed.resource,
                action=parsed.action,
                scope=parsed.scope.value,
                is_active=is_active,
            )
            self.db.add(permission)
            self.db.flush()
        return permission

    def role(self, name: str, permissions=(), is_system_role: bool = False, organization=None):
        from tenant_rbac.models.security import Role

        role = Role(
            name=name,
            is_system_role=is_system_role,
            organization_id=organization.organization_id if organization is not None else None,
        )
        role.permissions = [self.permission(p) for p in permissions]
        self.db.add(role)
        self.db.commit()
        return role

    def grant(self, user, role, organization=None, expires_at: datetime | None = None, is_active: bool = True):
        from tenant_rbac.models.security import UserRole

        grant = UserRole(
            user_id=user.user_id,
            role_id=role.role_id,
            organization_id=organization.organization_id if organization is not None else None,
            expires_at=expires_at,
            is_active=is_active,
        )
        self.db.add(grant)
        self.db.commit()
        return grant

    def dashboard(self, name: str, owner, organization=None):
        from tenant_rbac.models.resources import Dashboard

        dashboard = Dashboard(
            dashboard_name=name,
            created_by=owner.user_id,
            organization_id=organization.organization_id if organization is not None else None,
        )
        self.db.add(dashboard)
        self.db.commit()
        return dashboard


@pytest.fixture
def factory(db_session):
    return RbacFactory(db_session)
