"""
Organization hierarchy resolved from a parent map.

The store loads ``{organization_id: parent_organization_id}`` for active
organizations once; everything else (subtrees, ancestors, depth, cycle
checks) is answered from that snapshot. The permission checker never walks
parent pointers itself, it only sees the resolved accessible set.

A cycle is a data-integrity violation: any traversal that meets one raises
``HierarchyCycleError`` instead of silently truncating.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from tenant_rbac.rbac.errors import HierarchyCycleError, NotFoundError


class OrganizationHierarchy:
    def __init__(self, parents: Mapping[str, str | None]) -> None:
        self._parents = dict(parents)
        children: dict[str, list[str]] = {}
        for org_id, parent_id in self._parents.items():
            if parent_id is not None:
                children.setdefault(parent_id, []).append(org_id)
        self._children = children

    def __contains__(self, organization_id: object) -> bool:
        return organization_id in self._parents

    @property
    def organization_ids(self) -> frozenset[str]:
        return frozenset(self._parents)

    def parent_of(self, organization_id: str) -> str | None:
        return self._parents.get(organization_id)

    def children_of(self, organization_id: str) -> tuple[str, ...]:
        return tuple(self._children.get(organization_id, ()))

    def subtree(self, organization_id: str) -> frozenset[str]:
        """The organization itself plus all descendants. Empty if unknown/inactive."""
        if organization_id not in self._parents:
            return frozenset()

        seen: set[str] = {organization_id}
        queue = deque([organization_id])
        while queue:
            current = queue.popleft()
            for child in self._children.get(current, ()):
                # Every node has one parent, so meeting a node twice means a loop.
                if child in seen:
                    raise HierarchyCycleError(f"cycle detected in organization hierarchy at {child!r}")
                seen.add(child)
                queue.append(child)
        return frozenset(seen)

    def descendants(self, organization_id: str) -> frozenset[str]:
        return self.subtree(organization_id) - {organization_id}

    def accessible_from(self, roots: Iterable[str]) -> frozenset[str]:
        accessible: set[str] = set()
        for root in roots:
            if root not in accessible:
                accessible.update(self.subtree(root))
        return frozenset(accessible)

    def ancestors(self, organization_id: str) -> tuple[str, ...]:
        """Parent chain from the organization up to its root (organization first)."""
        if organization_id not in self._parents:
            return ()

        chain: list[str] = []
        seen: set[str] = set()
        current: str | None = organization_id
        while current is not None and current in self._parents:
            if current in seen:
                raise HierarchyCycleError(f"cycle detected in organization hierarchy at {current!r}")
            seen.add(current)
            chain.append(current)
            current = self._parents[current]
        return tuple(chain)

    def depth(self, organization_id: str) -> int:
        """Root organizations have depth 0."""
        return max(len(self.ancestors(organization_id)) - 1, 0)

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        return candidate_id != ancestor_id and ancestor_id in self.ancestors(candidate_id)

    def roots(self) -> tuple[str, ...]:
        return tuple(org_id for org_id, parent in self._parents.items() if parent is None or parent not in self._parents)

    def validate(self) -> None:
        """Raise HierarchyCycleError if any organization sits on a loop."""
        for org_id in self._parents:
            self.ancestors(org_id)

    def validate_parent_change(self, organization_id: str, new_parent_id: str | None) -> None:
        """Reject a re-parenting that would create a cycle or point at nothing."""
        if new_parent_id is None:
            return
        if organization_id == new_parent_id:
            raise HierarchyCycleError("Organization cannot be its own parent")
        if new_parent_id not in self._parents:
            raise NotFoundError("Parent organization not found or inactive")
        if organization_id in self.ancestors(new_parent_id):
            raise HierarchyCycleError("Cannot set descendant organization as parent")
