from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tenant_rbac.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency.

    Handlers query resources the usual way (`db.scalars(select(Dashboard))`)
    and still get organization/ownership-scoped rows: `tenant_rbac.db.filters`
    reads the request's scope predicates through `Session.info["request"]`
    when each statement executes, whichever dependency ran first.
    """

    db = SessionLocal()
    db.info["request"] = request
    try:
        yield db
    finally:
        db.close()
