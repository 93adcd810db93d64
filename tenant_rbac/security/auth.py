from __future__ import annotations

from dataclasses import dataclass
import logging

import jwt
from fastapi import HTTPException, Request, status

from tenant_rbac.security.config import SecurityConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as supplied by the identity layer."""

    user_id: str
    organization_id: str | None = None


def decode_identity_token(token: str, secret: str, algorithm: str = "HS256") -> Identity:
    """
    Validate a signed bearer token and read the caller identity.

    Claims: ``sub`` (user id, required), ``org`` (current organization, optional).
    Issuing tokens is the session service's job; this only verifies them.
    """

    payload = jwt.decode(token, secret, algorithms=[algorithm], options={"require": ["sub"]})
    org = payload.get("org")
    return Identity(user_id=str(payload["sub"]), organization_id=str(org) if org else None)


def extract_identity(request: Request, config: SecurityConfig, secret: str, algorithm: str) -> Identity | None:
    """
    Extract the caller from `Authorization: Bearer <jwt>`.

    Returns None when the header is absent; raises 400/401 when it is present
    but malformed or fails validation. An `X-Organization-Id` header overrides
    the token's organization claim.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )

    try:
        identity = decode_identity_token(token, secret, algorithm)
    except jwt.PyJWTError as exc:
        # Never log the token itself.
        logger.warning("Bearer token rejected path=%s method=%s error=%s", request.url.path, request.method, type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token") from exc

    org_override = request.headers.get(config.auth.organization_header)
    if org_override:
        identity = Identity(user_id=identity.user_id, organization_id=org_override.strip())
    return identity
