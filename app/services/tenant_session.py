from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from enum import StrEnum

from app.domain.models import (
    Account,
    AccountMember,
    AccountRole,
    Organization,
    OrganizationalUnit,
    PermissionStatement,
    PolicyDecision,
)
from app.domain.permissions import PolicyEvaluator, parse_statements, policy_evaluator
from app.domain.state_machine import SessionState, can_session_transition
from app.infra import redis_state
from app.infra.events import (
    EVENT_ACCOUNT_SWITCHED,
    EVENT_ORGANIZATION_CHANGED,
    EVENT_SIGNED_OUT,
    EventBus,
    event_bus,
)
from app.services.org_hierarchy import OrgHierarchy
from app.services.org_store import OrgDataStore, SqlOrgDataStore
from app.services.session_persistence import SessionPersistence

logger = logging.getLogger(__name__)


class TenantErrorKind(StrEnum):
    UNKNOWN_REFERENCE = "UNKNOWN_REFERENCE"
    UNAUTHORIZED_REFERENCE = "UNAUTHORIZED_REFERENCE"
    NO_ACCESSIBLE_ACCOUNT = "NO_ACCESSIBLE_ACCOUNT"
    INVALID_STATE = "INVALID_STATE"


class TenantSessionError(Exception):
    kind: TenantErrorKind = TenantErrorKind.INVALID_STATE

    def __init__(self, message: str, *, reference: str | None = None) -> None:
        super().__init__(message)
        self.reference = reference


class UnknownAccountError(TenantSessionError):
    kind = TenantErrorKind.UNKNOWN_REFERENCE


class UnknownOrganizationError(TenantSessionError):
    kind = TenantErrorKind.UNKNOWN_REFERENCE


class UnauthorizedAccountError(TenantSessionError):
    kind = TenantErrorKind.UNAUTHORIZED_REFERENCE


class UnauthorizedOrganizationError(TenantSessionError):
    kind = TenantErrorKind.UNAUTHORIZED_REFERENCE


class NoAccessibleAccountError(TenantSessionError):
    kind = TenantErrorKind.NO_ACCESSIBLE_ACCOUNT


class SessionStateError(TenantSessionError):
    kind = TenantErrorKind.INVALID_STATE


class BootstrapSource(StrEnum):
    PERSISTED = "PERSISTED"
    DEFAULT = "DEFAULT"
    NONE = "NONE"


def select_bootstrap_account(
    persisted_account_id: str | None,
    accessible_accounts: Sequence[Account],
    default_account: Account | None,
) -> tuple[Account | None, BootstrapSource]:
    """Pick the account a freshly signed-in session starts on.

    A persisted id is honoured only while it is still among the accessible
    accounts; otherwise the principal's default account is used. With no
    accessible accounts there is nothing to select.
    """
    if not accessible_accounts:
        return None, BootstrapSource.NONE
    if persisted_account_id is not None:
        for account in accessible_accounts:
            if account.id == persisted_account_id:
                return account, BootstrapSource.PERSISTED
    if default_account is not None:
        return default_account, BootstrapSource.DEFAULT
    return None, BootstrapSource.NONE


class TenantSession:
    """Active organization, account and membership of one signed-in principal.

    Switch operations validate against the directory before touching any
    state: a failed switch is logged, raises a ``TenantSessionError`` subclass
    and leaves the session exactly as it was.
    """

    def __init__(
        self,
        store: OrgDataStore,
        persistence: SessionPersistence,
        *,
        evaluator: PolicyEvaluator | None = None,
        hierarchy: OrgHierarchy | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._evaluator = evaluator or policy_evaluator
        self._hierarchy = hierarchy or OrgHierarchy(store)
        self._events = events
        self._state = SessionState.UNINITIALIZED
        self._principal_id: str | None = None
        self._active_organization: Organization | None = None
        self._active_account: Account | None = None
        self._active_membership: AccountMember | None = None
        self._statements: list[PermissionStatement] = []
        self._accessible_accounts: list[Account] = []
        self._accessible_organizations: list[Organization] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def principal_id(self) -> str | None:
        return self._principal_id

    @property
    def active_organization(self) -> Organization | None:
        return self._active_organization

    @property
    def active_account(self) -> Account | None:
        return self._active_account

    @property
    def active_membership(self) -> AccountMember | None:
        return self._active_membership

    @property
    def active_role(self) -> AccountRole | None:
        if self._active_membership is None:
            return None
        return AccountRole(self._active_membership.role)

    @property
    def permissions(self) -> list[PermissionStatement]:
        return list(self._statements)

    @property
    def accessible_accounts(self) -> list[Account]:
        return list(self._accessible_accounts)

    @property
    def accessible_organizations(self) -> list[Organization]:
        return list(self._accessible_organizations)

    def _transition(self, target: SessionState) -> None:
        if not can_session_transition(self._state, target):
            raise SessionStateError(f"tenant session cannot move from {self._state} to {target}")
        self._state = target

    def _clear_active(self) -> None:
        self._active_organization = None
        self._active_account = None
        self._active_membership = None
        self._statements = []

    def _require_principal(self) -> str:
        if self._principal_id is None or self._state in {
            SessionState.UNINITIALIZED,
            SessionState.SIGNED_OUT,
        }:
            raise SessionStateError(f"tenant session is {self._state}")
        return self._principal_id

    def _organizations_for(self, accounts: Sequence[Account]) -> list[Organization]:
        organizations: list[Organization] = []
        seen: set[str] = set()
        for account in accounts:
            if account.organization_id in seen:
                continue
            seen.add(account.organization_id)
            organization = self._store.organization_by_id(account.organization_id)
            if organization is not None:
                organizations.append(organization)
        return organizations

    def _lookup_organization(self, organization_id: str) -> Organization | None:
        current = self._active_organization
        if current is not None and current.id == organization_id:
            return current
        return self._store.organization_by_id(organization_id)

    def _publish(
        self,
        event_type: str,
        organization_id: str,
        payload: dict[str, str | None],
        *,
        actor_id: str | None = None,
    ) -> None:
        if self._events is None:
            return
        self._events.publish_dict(
            event_type,
            organization_id,
            payload,
            actor_id=actor_id if actor_id is not None else self._principal_id,
        )

    def initialize(self, principal_id: str) -> SessionState:
        self._transition(SessionState.LOADING)
        self._clear_active()
        self._principal_id = principal_id

        accounts = self._store.accounts_for_principal(principal_id)
        self._accessible_accounts = list(accounts)
        self._accessible_organizations = self._organizations_for(accounts)
        if not accounts:
            logger.info("principal %s has no accessible accounts", principal_id)
            self._transition(SessionState.EMPTY)
            return self._state

        persisted_id = self._persistence.load()
        account, source = select_bootstrap_account(
            persisted_id,
            accounts,
            self._store.default_account(principal_id),
        )
        if account is None:
            logger.info("principal %s has no selectable account", principal_id)
            self._transition(SessionState.EMPTY)
            return self._state
        if persisted_id is not None and source != BootstrapSource.PERSISTED:
            logger.info(
                "persisted account %s is no longer accessible to %s, using %s",
                persisted_id,
                principal_id,
                account.id,
            )

        membership = self._store.membership(principal_id, account.id)
        organization = self._store.organization_by_id(account.organization_id)
        if membership is None or organization is None:
            logger.warning(
                "account %s for principal %s is missing its membership or organization",
                account.id,
                principal_id,
            )
            self._transition(SessionState.EMPTY)
            return self._state

        self._active_account = account
        self._active_membership = membership
        self._statements = parse_statements(membership.permissions)
        self._active_organization = organization
        self._persistence.save(account.id)
        self._transition(SessionState.READY)
        return self._state

    def switch_account(self, account_id: str) -> Account:
        principal_id = self._require_principal()
        current = self._active_account
        if current is not None and current.id == account_id:
            return current

        account = self._store.account_by_id(account_id)
        if account is None:
            logger.warning("account %s not found", account_id)
            raise UnknownAccountError(f"account {account_id} not found", reference=account_id)

        membership = self._store.membership(principal_id, account_id)
        if membership is None:
            logger.warning("principal %s does not have access to account %s", principal_id, account_id)
            raise UnauthorizedAccountError(
                f"no access to account {account_id}",
                reference=account_id,
            )

        organization = self._lookup_organization(account.organization_id)
        if organization is None:
            logger.warning("organization %s of account %s not found", account.organization_id, account_id)
            raise UnknownOrganizationError(
                f"organization {account.organization_id} not found",
                reference=account.organization_id,
            )
        statements = parse_statements(membership.permissions)

        self._transition(SessionState.READY)
        previous_organization = self._active_organization
        self._active_account = account
        self._active_membership = membership
        self._statements = statements
        self._active_organization = organization
        self._persistence.save(account.id)

        # Session is consistent before any subscriber runs.
        self._publish(
            EVENT_ACCOUNT_SWITCHED,
            organization.id,
            {
                "account_id": account.id,
                "previous_account_id": current.id if current is not None else None,
            },
        )
        if previous_organization is None or previous_organization.id != organization.id:
            self._publish(
                EVENT_ORGANIZATION_CHANGED,
                organization.id,
                {
                    "organization_id": organization.id,
                    "previous_organization_id": (
                        previous_organization.id if previous_organization is not None else None
                    ),
                },
            )
        return account

    def switch_organization(self, organization_id: str) -> Account:
        principal_id = self._require_principal()
        organization = self._store.organization_by_id(organization_id)
        if organization is None:
            logger.warning("organization %s not found", organization_id)
            raise UnknownOrganizationError(
                f"organization {organization_id} not found",
                reference=organization_id,
            )
        if not self._accessible_accounts:
            logger.warning("principal %s has no accessible accounts", principal_id)
            raise NoAccessibleAccountError(
                f"principal {principal_id} has no accessible accounts",
                reference=organization_id,
            )

        candidates = [item for item in self._accessible_accounts if item.organization_id == organization_id]
        if not candidates:
            logger.warning(
                "principal %s has no accessible account in organization %s",
                principal_id,
                organization_id,
            )
            raise UnauthorizedOrganizationError(
                f"no accessible account in organization {organization_id}",
                reference=organization_id,
            )

        target = next(
            (item for item in candidates if item.id == organization.master_account_id),
            candidates[0],
        )
        return self.switch_account(target.id)

    def evaluate_permission(self, action: str, resource: str | None = None) -> PolicyDecision:
        if self._active_membership is None:
            return PolicyDecision.NO_MATCH
        return self._evaluator.evaluate(self._statements, action, resource)

    def has_permission(self, action: str, resource: str | None = None) -> bool:
        return self.evaluate_permission(action, resource) == PolicyDecision.ALLOW

    def has_role(self, *roles: AccountRole) -> bool:
        role = self.active_role
        return role is not None and role in roles

    def can_manage_organization(self) -> bool:
        return self.has_role(AccountRole.ORGANIZATION_ADMIN)

    def can_switch_accounts(self) -> bool:
        return len(self._accessible_accounts) > 1

    def accounts_under_ou(self, ou_id: str) -> list[Account]:
        accessible_ids = {item.id for item in self._accessible_accounts}
        return [item for item in self._hierarchy.accounts_under_ou(ou_id) if item.id in accessible_ids]

    def child_ous(self, parent_id: str) -> list[OrganizationalUnit]:
        return self._hierarchy.child_ous(parent_id)

    def all_ous(self) -> list[OrganizationalUnit]:
        if self._active_organization is None:
            return []
        return self._hierarchy.all_ous_for_organization(self._active_organization)

    def organization_accounts(self) -> list[Account]:
        if self._active_organization is None:
            return []
        return self._hierarchy.accounts_for_organization(self._active_organization.id)

    def sign_out(self) -> None:
        if self._state == SessionState.SIGNED_OUT:
            return
        organization_id = self._active_organization.id if self._active_organization is not None else None
        principal_id = self._principal_id
        self._persistence.clear()
        self._transition(SessionState.SIGNED_OUT)
        self._clear_active()
        self._accessible_accounts = []
        self._accessible_organizations = []
        self._principal_id = None
        if organization_id is not None:
            self._publish(
                EVENT_SIGNED_OUT,
                organization_id,
                {"organization_id": organization_id},
                actor_id=principal_id,
            )


SessionFactory = Callable[[str], TenantSession]


def build_tenant_session(principal_id: str) -> TenantSession:
    store = SqlOrgDataStore()
    persistence = SessionPersistence(redis_state.get_session_store(), scope=principal_id)
    return TenantSession(store, persistence, events=event_bus)


class TenantSessionRegistry:
    """One explicit ``TenantSession`` per signed-in principal."""

    def __init__(self, factory: SessionFactory | None = None) -> None:
        self._factory = factory or build_tenant_session
        self._sessions: dict[str, TenantSession] = {}

    def sign_in(self, principal_id: str) -> TenantSession:
        session = self._factory(principal_id)
        session.initialize(principal_id)
        self._sessions[principal_id] = session
        return session

    def get(self, principal_id: str) -> TenantSession | None:
        return self._sessions.get(principal_id)

    def sign_out(self, principal_id: str) -> bool:
        session = self._sessions.pop(principal_id, None)
        if session is None:
            return False
        session.sign_out()
        return True


session_registry = TenantSessionRegistry()
