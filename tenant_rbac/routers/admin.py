from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from tenant_rbac.db.session import get_db
from tenant_rbac.models.security import Role
from tenant_rbac.rbac.errors import InactiveError, NotFoundError
from tenant_rbac.schemas.security import RoleOut, RolePermissionChangeIn
from tenant_rbac.security.dependencies import get_runtime
from tenant_rbac.security.runtime import RbacRuntime

router = APIRouter(prefix="/admin", tags=["admin"])


def _role_out(role: Role) -> RoleOut:
    return RoleOut(
        role_id=role.role_id,
        name=role.name,
        organization_id=role.organization_id,
        is_system_role=role.is_system_role,
        is_active=role.is_active,
        permissions=sorted(p.name for p in role.permissions),
    )


@router.get("/roles/{role_id}", response_model=RoleOut)
def get_role(role_id: str, db: Session = Depends(get_db)) -> RoleOut:
    role = db.get(Role, role_id)
    if role is None or role.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return _role_out(role)


@router.post("/roles/{role_id}/permissions", response_model=RoleOut)
def grant_role_permission(
    role_id: str,
    body: RolePermissionChangeIn,
    db: Session = Depends(get_db),
    runtime: RbacRuntime = Depends(get_runtime),
) -> RoleOut:
    try:
        role = runtime.admin(db).grant_permission(role_id, body.permission)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InactiveError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _role_out(role)


@router.delete("/roles/{role_id}/permissions/{permission_name}", response_model=RoleOut)
def revoke_role_permission(
    role_id: str,
    permission_name: str,
    db: Session = Depends(get_db),
    runtime: RbacRuntime = Depends(get_runtime),
) -> RoleOut:
    try:
        role = runtime.admin(db).revoke_permission(role_id, permission_name)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _role_out(role)
