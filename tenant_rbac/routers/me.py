from __future__ import annotations

from fastapi import APIRouter, Depends

from tenant_rbac.rbac.context import UserContext
from tenant_rbac.schemas.security import PermissionCheckIn, PermissionCheckOut, UserContextOut
from tenant_rbac.security.dependencies import get_runtime, get_user_context
from tenant_rbac.security.runtime import RbacRuntime

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/context", response_model=UserContextOut)
def my_context(ctx: UserContext = Depends(get_user_context)) -> UserContextOut:
    return UserContextOut.model_validate(ctx.to_dict())


@router.post("/permissions/check", response_model=PermissionCheckOut)
def check_my_permission(
    body: PermissionCheckIn,
    ctx: UserContext = Depends(get_user_context),
    runtime: RbacRuntime = Depends(get_runtime),
) -> PermissionCheckOut:
    # A denial is an answer here, not an error.
    result = runtime.authorizer.authorize(
        ctx,
        body.permissions,
        resource_id=body.resource_id,
        organization_id=body.organization_id,
    )
    return PermissionCheckOut.model_validate(result.to_dict())
