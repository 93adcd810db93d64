from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from tenant_rbac.rbac.checker import PermissionCheckResult
from tenant_rbac.rbac.context import UserContext
from tenant_rbac.rbac.scope_filter import AnyScopePredicate, ScopePredicate


@dataclass(frozen=True)
class RequestAuthz:
    """
    Per-request authorization state.

    Attached to:
    - request.state (FastAPI request lifetime)
    - Session.info (SQLAlchemy session lifetime), where the row filters read
      ``predicates`` keyed by resource name.
    """

    context: UserContext
    decision: PermissionCheckResult | None = None
    predicates: Mapping[str, ScopePredicate | AnyScopePredicate] = field(default_factory=dict)

    def predicate_for(self, resource: str) -> ScopePredicate | AnyScopePredicate | None:
        return self.predicates.get(resource)
