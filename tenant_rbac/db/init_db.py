from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, sessionmaker

from tenant_rbac.db.base import Base
from tenant_rbac.models.resources import Dashboard
from tenant_rbac.models.security import Organization, Permission, Role, User, UserOrganization, UserRole
from tenant_rbac.rbac.cache import RolePermissionCache
from tenant_rbac.rbac.catalog import PermissionCatalog
from tenant_rbac.security.store import RbacStore

logger = logging.getLogger(__name__)


def init_db(
    catalog: PermissionCatalog,
    *,
    engine: Engine | None = None,
    session_factory: sessionmaker | None = None,
    role_cache: RolePermissionCache | None = None,
    seed_demo: bool = True,
) -> None:
    """
    Create tables, write the permission catalog, seed demo data.

    Seeding is idempotent: permissions and system roles are upserted from the
    catalog on every startup; demo organizations/users are only created once.
    """

    if engine is None or session_factory is None:
        from tenant_rbac.db.session import SessionLocal
        from tenant_rbac.db.session import engine as default_engine

        engine = engine or default_engine
        session_factory = session_factory or SessionLocal

    Base.metadata.create_all(bind=engine)

    with session_factory() as db:
        seed_catalog(db, catalog, role_cache=role_cache)
        if seed_demo and not _has_demo_data(db):
            _seed_demo(db)

        hierarchy = RbacStore(db).organization_hierarchy()
        hierarchy.validate()
        logger.info("Organization hierarchy checked organizations=%d", len(hierarchy.organization_ids))


def seed_catalog(db: Session, catalog: PermissionCatalog, role_cache: RolePermissionCache | None = None) -> int:
    """
    Upsert catalog permissions and system roles. Returns the number of roles written.

    Role permission sets may change wholesale here, so the role cache is
    flushed entirely afterwards.
    """

    by_name = {p.name: p for p in db.scalars(select(Permission)).all()}
    for name, definition in catalog.permissions.items():
        permission = by_name.get(name)
        if permission is None:
            permission = Permission(
                name=name,
                resource=definition.parsed.resource,
                action=definition.parsed.action,
                scope=definition.parsed.scope.value,
            )
            db.add(permission)
            by_name[name] = permission
        permission.description = definition.description
        permission.is_active = definition.is_active
    db.flush()

    for role_name, role_def in catalog.roles.items():
        role = db.scalars(select(Role).where(Role.name == role_name, Role.organization_id.is_(None))).first()
        if role is None:
            role = Role(name=role_name, organization_id=None)
            db.add(role)
        role.description = role_def.description
        role.is_system_role = role_def.is_system_role
        role.permissions = [by_name[name] for name in sorted(catalog.role_permission_names(role_name))]

    db.commit()

    if role_cache is not None:
        role_cache.invalidate_all()

    logger.info("Seeded permission catalog permissions=%d roles=%d", len(catalog.permissions), len(catalog.roles))
    return len(catalog.roles)


def _has_demo_data(db: Session) -> bool:
    return db.execute(select(Organization.organization_id).limit(1)).first() is not None


def _system_role(db: Session, name: str) -> Role | None:
    return db.scalars(select(Role).where(Role.name == name, Role.organization_id.is_(None))).first()


def _seed_demo(db: Session) -> None:
    # Organizations: one practice group with two clinics, one unrelated tenant
    acme = Organization(name="Acme Health", slug="acme-health")
    db.add(acme)
    db.flush()
    north = Organization(name="Acme North Clinic", slug="acme-north", parent_organization_id=acme.organization_id)
    south = Organization(name="Acme South Clinic", slug="acme-south", parent_organization_id=acme.organization_id)
    other = Organization(name="Globex Dental", slug="globex-dental")
    db.add_all([north, south, other])
    db.flush()

    # Users
    root = User(email="root@example.com", first_name="Rae", last_name="Root", email_verified=True)
    manager = User(email="manager@acme.example.com", first_name="Morgan", last_name="Lee", email_verified=True)
    analyst = User(email="analyst@acme.example.com", first_name="Ari", last_name="Shah", email_verified=True)
    outsider = User(email="staff@globex.example.com", first_name="Sam", last_name="Diaz", email_verified=True)
    db.add_all([root, manager, analyst, outsider])
    db.flush()

    db.add_all(
        [
            UserOrganization(user_id=manager.user_id, organization_id=acme.organization_id),
            UserOrganization(user_id=analyst.user_id, organization_id=north.organization_id),
            UserOrganization(user_id=outsider.user_id, organization_id=other.organization_id),
        ]
    )

    grants = [
        ("super_admin", root, None),
        ("practice_admin", manager, acme.organization_id),
        ("user", analyst, None),
        ("user", outsider, None),
    ]
    for role_name, user, org_id in grants:
        role = _system_role(db, role_name)
        if role is None:
            logger.warning("Demo seed skipped grant: role %r not in catalog", role_name)
            continue
        db.add(UserRole(user_id=user.user_id, role_id=role.role_id, organization_id=org_id))

    db.add_all(
        [
            Dashboard(
                dashboard_name="Acme revenue",
                organization_id=acme.organization_id,
                created_by=manager.user_id,
                is_published=True,
            ),
            Dashboard(
                dashboard_name="North clinic schedule",
                organization_id=north.organization_id,
                created_by=analyst.user_id,
            ),
            Dashboard(
                dashboard_name="Globex claims",
                organization_id=other.organization_id,
                created_by=outsider.user_id,
            ),
        ]
    )

    db.commit()
