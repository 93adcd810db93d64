from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from tenant_rbac.models.security import PermissionAuditEntry
from tenant_rbac.rbac.audit import AuditRecord


class SqlAuditSink:
    """
    Appends decisions to ``permission_audit_log``.

    Uses its own short-lived session so an audit write never joins (or rolls
    back) the request's business transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(self, entry: AuditRecord) -> None:
        with self._session_factory() as db:
            db.add(
                PermissionAuditEntry(
                    user_id=entry.user_id,
                    permission_name=entry.permission_name,
                    resource_type=entry.resource_type,
                    resource_id=entry.resource_id,
                    organization_id=entry.organization_id,
                    granted=entry.granted,
                    scope=entry.scope,
                    reason=entry.reason,
                    recorded_at=entry.timestamp.replace(tzinfo=None),
                )
            )
            db.commit()
