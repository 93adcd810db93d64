from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone

from .audit import AuditRecord, AuditSink, BestEffortAuditSink
from .checker import OwnershipResolver, PermissionCheckResult, PermissionChecker, as_candidates
from .context import UserContext
from .permissions import parse_permission_name


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Authorizer:
    """Runs the checker and appends one audit record per decision."""

    def __init__(self, audit_sink: AuditSink | None = None, clock: Callable[[], datetime] = _utcnow) -> None:
        if audit_sink is not None and not isinstance(audit_sink, BestEffortAuditSink):
            audit_sink = BestEffortAuditSink(audit_sink)
        self._audit = audit_sink
        self._clock = clock

    @property
    def audit_sink(self) -> AuditSink | None:
        return self._audit

    def authorize(
        self,
        context: UserContext,
        permission_names: str | Iterable[str],
        resource_id: str | None = None,
        organization_id: str | None = None,
        owner_of: OwnershipResolver | None = None,
    ) -> PermissionCheckResult:
        candidates = as_candidates(permission_names)
        result = PermissionChecker(context).check(candidates, resource_id, organization_id, owner_of)
        if self._audit is not None and candidates:
            self._audit.record(self._to_record(context, candidates, result, resource_id, organization_id))
        return result

    def _to_record(
        self,
        context: UserContext,
        candidates: Sequence[str],
        result: PermissionCheckResult,
        resource_id: str | None,
        organization_id: str | None,
    ) -> AuditRecord:
        permission_name = result.permission or candidates[0]
        try:
            resource_type = parse_permission_name(permission_name).resource
        except ValueError:
            resource_type = None
        return AuditRecord(
            user_id=context.user_id,
            permission_name=permission_name,
            granted=result.granted,
            timestamp=self._clock(),
            resource_type=resource_type,
            resource_id=resource_id,
            organization_id=organization_id,
            scope=result.scope.value if result.scope else None,
            reason=result.reason,
        )
