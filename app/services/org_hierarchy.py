from __future__ import annotations

from collections import deque

from app.domain.models import Account, Organization, OrganizationalUnit
from app.services.org_store import OrgDataStore


class OrgHierarchy:
    """Read-only traversal over the OU/account tree of an organization."""

    def __init__(self, store: OrgDataStore) -> None:
        self._store = store

    def child_ous(self, parent_id: str) -> list[OrganizationalUnit]:
        return self._store.child_ous(parent_id)

    def accounts_under_ou(self, ou_id: str) -> list[Account]:
        return self._store.accounts_under_ou(ou_id)

    def accounts_for_organization(self, organization_id: str) -> list[Account]:
        return self._store.accounts_for_organization(organization_id)

    def all_ous_for_organization(self, organization: Organization) -> list[OrganizationalUnit]:
        """Every OU below the organization's root(s), breadth first.

        Membership is decided by walking parent links down from the root, so an
        OU is included only if its parent chain actually ends at this
        organization's root.
        """
        collected: list[OrganizationalUnit] = []
        seen: set[str] = set()
        pending: deque[str] = deque(root.id for root in self._store.roots_for_organization(organization.id))
        while pending:
            parent_id = pending.popleft()
            if parent_id in seen:
                continue
            seen.add(parent_id)
            for unit in self._store.child_ous(parent_id):
                if unit.id in seen:
                    continue
                collected.append(unit)
                pending.append(unit.id)
        return collected
