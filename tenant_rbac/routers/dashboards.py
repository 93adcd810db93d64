from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_rbac.db.session import get_db
from tenant_rbac.models.resources import Dashboard
from tenant_rbac.rbac.context import UserContext
from tenant_rbac.schemas.resources import DashboardOut, DashboardUpdate
from tenant_rbac.security.decorators import require_permission
from tenant_rbac.security.dependencies import get_runtime, get_user_context
from tenant_rbac.security.runtime import RbacRuntime

router = APIRouter(prefix="/dashboards", tags=["dashboards"])

UPDATE_CANDIDATES = ("dashboards:update:all", "dashboards:update:organization", "dashboards:update:own")


def _get_visible(db: Session, dashboard_id: str) -> Dashboard:
    dashboard = db.scalars(select(Dashboard).where(Dashboard.dashboard_id == dashboard_id)).first()
    if dashboard is None:
        # Rows outside the caller's scope are filtered out and look like "not found".
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dashboard not found")
    return dashboard


@router.get("", response_model=list[DashboardOut])
def list_dashboards(organization_id: str | None = None, db: Session = Depends(get_db)) -> list[Dashboard]:
    # Scope filters (own/organization/all, plus ?organization_id=) come from tenant_rbac/db/filters.py.
    stmt = select(Dashboard).where(Dashboard.is_active.is_(True)).order_by(Dashboard.dashboard_name)
    return list(db.scalars(stmt).all())


@router.get("/{dashboard_id}", response_model=DashboardOut)
def get_dashboard(dashboard_id: str, db: Session = Depends(get_db)) -> Dashboard:
    return _get_visible(db, dashboard_id)


@router.patch("/{dashboard_id}", response_model=DashboardOut)
@require_permission(*UPDATE_CANDIDATES)
def update_dashboard(
    dashboard_id: str,
    body: DashboardUpdate,
    db: Session = Depends(get_db),
    ctx: UserContext = Depends(get_user_context),
    runtime: RbacRuntime = Depends(get_runtime),
) -> Dashboard:
    dashboard = _get_visible(db, dashboard_id)

    decision = runtime.authorizer.authorize(
        ctx,
        UPDATE_CANDIDATES,
        resource_id=dashboard.dashboard_id,
        organization_id=dashboard.organization_id,
        owner_of=lambda _rid: dashboard.created_by,
    )
    if not decision.granted:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(dashboard, field, value)
    db.commit()
    db.refresh(dashboard)
    return dashboard
