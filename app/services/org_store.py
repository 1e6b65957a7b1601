from __future__ import annotations

from typing import Protocol

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from app.domain.models import (
    Account,
    AccountMember,
    Organization,
    OrganizationalUnit,
    OrganizationRoot,
)
from app.infra.db import open_session


class OrgDataStore(Protocol):
    """Read-only source of organization directory records."""

    def accounts_for_principal(self, principal_id: str) -> list[Account]: ...

    def organization_by_id(self, organization_id: str) -> Organization | None: ...

    def account_by_id(self, account_id: str) -> Account | None: ...

    def membership(self, principal_id: str, account_id: str) -> AccountMember | None: ...

    def default_account(self, principal_id: str) -> Account | None: ...

    def child_ous(self, parent_id: str) -> list[OrganizationalUnit]: ...

    def accounts_under_ou(self, ou_id: str) -> list[Account]: ...

    def roots_for_organization(self, organization_id: str) -> list[OrganizationRoot]: ...

    def accounts_for_organization(self, organization_id: str) -> list[Account]: ...


class SqlOrgDataStore:
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine

    def _session(self) -> Session:
        return open_session(self._engine)

    def _memberships(self, session: Session, principal_id: str) -> list[AccountMember]:
        statement = (
            select(AccountMember)
            .where(AccountMember.principal_id == principal_id)
            .order_by(col(AccountMember.added_at), col(AccountMember.id))
        )
        return list(session.exec(statement).all())

    def accounts_for_principal(self, principal_id: str) -> list[Account]:
        with self._session() as session:
            memberships = self._memberships(session, principal_id)
            if not memberships:
                return []
            account_ids = [item.account_id for item in memberships]
            rows = session.exec(select(Account).where(col(Account.id).in_(account_ids))).all()
            by_id = {item.id: item for item in rows}
            return [by_id[account_id] for account_id in account_ids if account_id in by_id]

    def organization_by_id(self, organization_id: str) -> Organization | None:
        with self._session() as session:
            return session.get(Organization, organization_id)

    def account_by_id(self, account_id: str) -> Account | None:
        with self._session() as session:
            return session.get(Account, account_id)

    def membership(self, principal_id: str, account_id: str) -> AccountMember | None:
        with self._session() as session:
            statement = (
                select(AccountMember)
                .where(AccountMember.principal_id == principal_id)
                .where(AccountMember.account_id == account_id)
            )
            return session.exec(statement).first()

    def default_account(self, principal_id: str) -> Account | None:
        with self._session() as session:
            memberships = self._memberships(session, principal_id)
            if not memberships:
                return None
            chosen = next((item for item in memberships if item.is_default), memberships[0])
            return session.get(Account, chosen.account_id)

    def child_ous(self, parent_id: str) -> list[OrganizationalUnit]:
        with self._session() as session:
            statement = select(OrganizationalUnit).where(OrganizationalUnit.parent_id == parent_id)
            return list(session.exec(statement).all())

    def accounts_under_ou(self, ou_id: str) -> list[Account]:
        with self._session() as session:
            return list(session.exec(select(Account).where(Account.parent_id == ou_id)).all())

    def roots_for_organization(self, organization_id: str) -> list[OrganizationRoot]:
        with self._session() as session:
            statement = select(OrganizationRoot).where(OrganizationRoot.organization_id == organization_id)
            return list(session.exec(statement).all())

    def accounts_for_organization(self, organization_id: str) -> list[Account]:
        with self._session() as session:
            statement = select(Account).where(Account.organization_id == organization_id)
            return list(session.exec(statement).all())
