from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tenant_rbac.db.session import get_db
from tenant_rbac.rbac.context import UserContext
from tenant_rbac.rbac.errors import RbacError
from tenant_rbac.rbac.permissions import parse_permission_name
from tenant_rbac.rbac.scope_filter import predicate_for_candidates, predicate_for_result
from tenant_rbac.security.auth import extract_identity
from tenant_rbac.security.config import SecurityConfig
from tenant_rbac.security.context import RequestAuthz
from tenant_rbac.security.runtime import RbacRuntime

logger = logging.getLogger(__name__)

ORGANIZATION_QUERY_PARAM = "organization_id"


def rbac_http_error(exc: RbacError) -> HTTPException:
    """Map an engine error to a client-visible error with a generic message."""
    return HTTPException(status_code=exc.status_code, detail=type(exc).default_message)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_runtime(request: Request) -> RbacRuntime:
    runtime = getattr(request.app.state, "rbac", None)
    if runtime is None:
        raise RuntimeError("RBAC runtime not initialised. Did app startup run?")
    return runtime


def get_authz(request: Request) -> RequestAuthz:
    authz = getattr(request.state, "authz", None)
    if authz is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return authz


def get_user_context(authz: RequestAuthz = Depends(get_authz)) -> UserContext:
    return authz.context


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    runtime: RbacRuntime = Depends(get_runtime),
    db: Session = Depends(get_db, use_cache=False),
) -> None:
    """
    Global security dependency.

    Runs after routing so it can read `@require_permission` metadata; still
    requires no changes to route handlers when added globally.

    Flow: identity -> user context -> candidate permissions -> scope
    predicate on request.state (and from there on the request's DB session).
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorator_permissions = tuple(getattr(endpoint, "__rbac_permissions__", ())) if endpoint else ()
    candidates = decorator_permissions + tuple(p for p in rule.permissions if p not in decorator_permissions)

    auth_required = rule.auth_required or bool(candidates)
    if not auth_required:
        return

    identity = extract_identity(request, config, runtime.settings.token_secret, runtime.settings.token_algorithm)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    try:
        context = runtime.context_builder(db).build(identity.user_id, identity.organization_id)
    except RbacError as exc:
        logger.info("Context build rejected user=%s code=%s path=%s", identity.user_id, exc.code, path)
        raise rbac_http_error(exc) from exc

    if not candidates:
        request.state.authz = db.info["authz"] = RequestAuthz(context=context)
        return

    requested_org = request.query_params.get(ORGANIZATION_QUERY_PARAM)
    try:
        decision = runtime.authorizer.authorize(context, candidates, organization_id=requested_org)
    except RbacError as exc:
        raise rbac_http_error(exc) from exc

    if not decision.granted:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")

    resource = parse_permission_name(decision.permission or candidates[0]).resource
    if request.path_params:
        # Item routes: any held candidate may reach the row; the handler decides on the row itself.
        same_resource = [c for c in candidates if parse_permission_name(c).resource == resource]
        predicate = predicate_for_candidates(context, same_resource, organization_id=requested_org)
    else:
        predicate = predicate_for_result(
            context,
            decision,
            requested_organization_ids=[requested_org] if requested_org else None,
        )
    authz = RequestAuthz(context=context, decision=decision, predicates={resource: predicate})
    request.state.authz = authz
    db.info["authz"] = authz
