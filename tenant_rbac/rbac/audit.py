"""
Audit sinks for permission decisions.

Every decision (granted or denied) is appended to a sink. Audit is
best-effort: ``BestEffortAuditSink`` keeps a failing sink from blocking the
request, but logs a WARNING and flips ``degraded`` so the failure is visible
to operations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    user_id: str
    permission_name: str
    granted: bool
    timestamp: datetime
    resource_type: str | None = None
    resource_id: str | None = None
    organization_id: str | None = None
    scope: str | None = None
    reason: str | None = None


class AuditSink(Protocol):
    def record(self, entry: AuditRecord) -> None: ...


class InMemoryAuditSink:
    """Append-only list; handy for tests and local runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[AuditRecord] = []

    def record(self, entry: AuditRecord) -> None:
        with self._lock:
            self._records.append(entry)

    @property
    def records(self) -> tuple[AuditRecord, ...]:
        with self._lock:
            return tuple(self._records)


class LoggingAuditSink:
    def __init__(self, logger_name: str = "tenant_rbac.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def record(self, entry: AuditRecord) -> None:
        self._logger.info(
            "permission_decision user=%s permission=%s granted=%s scope=%s resource=%s org=%s reason=%s",
            entry.user_id,
            entry.permission_name,
            entry.granted,
            entry.scope,
            entry.resource_id,
            entry.organization_id,
            entry.reason,
        )


class BestEffortAuditSink:
    """Wraps a sink; write failures become an operational signal, not an error."""

    def __init__(self, inner: AuditSink) -> None:
        self._inner = inner
        self._lock = threading.Lock()
        self._failures = 0

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    @property
    def degraded(self) -> bool:
        return self.failures > 0

    def record(self, entry: AuditRecord) -> None:
        try:
            self._inner.record(entry)
        except Exception:
            with self._lock:
                self._failures += 1
                failures = self._failures
            logger.warning(
                "Audit sink degraded: failed to record decision user=%s permission=%s failures=%d",
                entry.user_id,
                entry.permission_name,
                failures,
                exc_info=True,
            )
