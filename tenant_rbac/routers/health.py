from __future__ import annotations

from fastapi import APIRouter, Depends

from tenant_rbac.rbac.audit import BestEffortAuditSink
from tenant_rbac.schemas.security import AuditStatusOut, CacheStatsOut
from tenant_rbac.security.dependencies import get_runtime
from tenant_rbac.security.runtime import RbacRuntime

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/cache", response_model=list[CacheStatsOut])
def cache_health(runtime: RbacRuntime = Depends(get_runtime)) -> list[CacheStatsOut]:
    # report_cache_health() also logs low hit rates / oversized caches.
    return [
        CacheStatsOut(
            name=h.name,
            hits=h.stats.hits,
            misses=h.stats.misses,
            hit_rate=h.stats.hit_rate,
            size=h.stats.size,
            healthy=h.healthy,
            low_hit_rate=h.low_hit_rate,
            oversized=h.oversized,
        )
        for h in runtime.report_cache_health()
    ]


@router.get("/audit", response_model=AuditStatusOut)
def audit_health(runtime: RbacRuntime = Depends(get_runtime)) -> AuditStatusOut:
    sink = runtime.authorizer.audit_sink
    if isinstance(sink, BestEffortAuditSink):
        return AuditStatusOut(enabled=True, degraded=sink.degraded, failures=sink.failures)
    return AuditStatusOut(enabled=sink is not None, degraded=False, failures=0)
