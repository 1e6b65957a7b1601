from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.api.deps import (
    get_principal_id,
    get_session_registry,
    get_tenant_session,
    require_action,
    require_organization_admin,
)
from app.domain.models import (
    AccountMemberRead,
    AccountRead,
    OrganizationalUnitRead,
    OrganizationRead,
    PermissionCheckRead,
    PermissionCheckRequest,
    PolicyDecision,
    SwitchAccountRequest,
    SwitchOrganizationRequest,
    TenantSessionRead,
)
from app.domain.permissions import (
    ACTION_LIST_ACCOUNTS_FOR_PARENT,
    ACTION_LIST_ORGANIZATIONAL_UNITS,
    ACTION_LIST_OUS_FOR_PARENT,
)
from app.infra.audit import set_audit_context
from app.services.tenant_session import (
    NoAccessibleAccountError,
    SessionStateError,
    TenantSession,
    TenantSessionError,
    TenantSessionRegistry,
    UnauthorizedAccountError,
    UnauthorizedOrganizationError,
    UnknownAccountError,
    UnknownOrganizationError,
)

router = APIRouter()

PrincipalId = Annotated[str, Depends(get_principal_id)]
Registry = Annotated[TenantSessionRegistry, Depends(get_session_registry)]
ActiveSession = Annotated[TenantSession, Depends(get_tenant_session)]


def _handle_tenant_error(exc: TenantSessionError) -> None:
    if isinstance(exc, (UnknownAccountError, UnknownOrganizationError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (UnauthorizedAccountError, UnauthorizedOrganizationError, NoAccessibleAccountError)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, SessionStateError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc


def _session_view(session: TenantSession) -> TenantSessionRead:
    organization = session.active_organization
    account = session.active_account
    membership = session.active_membership
    return TenantSessionRead(
        state=session.state.value,
        principal_id=session.principal_id,
        active_organization=OrganizationRead.model_validate(organization) if organization is not None else None,
        active_account=AccountRead.model_validate(account) if account is not None else None,
        active_membership=AccountMemberRead.model_validate(membership) if membership is not None else None,
        active_role=session.active_role,
        permissions=session.permissions,
        accessible_organizations=[OrganizationRead.model_validate(item) for item in session.accessible_organizations],
        accessible_accounts=[AccountRead.model_validate(item) for item in session.accessible_accounts],
        can_switch_accounts=session.can_switch_accounts(),
        can_manage_organization=session.can_manage_organization(),
    )


@router.post("/session", response_model=TenantSessionRead)
def sign_in(request: Request, principal_id: PrincipalId, registry: Registry) -> TenantSessionRead:
    session = registry.sign_in(principal_id)
    organization = session.active_organization
    set_audit_context(
        request,
        action="tenancy.sign_in",
        resource="tenant_session",
        organization_id=organization.id if organization is not None else None,
        detail={"result": {"session_state": str(session.state)}},
    )
    return _session_view(session)


@router.get("/session", response_model=TenantSessionRead)
def get_session(session: ActiveSession) -> TenantSessionRead:
    return _session_view(session)


@router.post("/session/account", response_model=TenantSessionRead)
def switch_account(
    payload: SwitchAccountRequest,
    request: Request,
    session: ActiveSession,
) -> TenantSessionRead:
    set_audit_context(
        request,
        action="tenancy.switch_account",
        resource=f"account:{payload.account_id}",
    )
    try:
        session.switch_account(payload.account_id)
    except TenantSessionError as exc:
        _handle_tenant_error(exc)
        raise
    if session.active_organization is not None:
        set_audit_context(request, organization_id=session.active_organization.id)
    return _session_view(session)


@router.post("/session/organization", response_model=TenantSessionRead)
def switch_organization(
    payload: SwitchOrganizationRequest,
    request: Request,
    session: ActiveSession,
) -> TenantSessionRead:
    set_audit_context(
        request,
        action="tenancy.switch_organization",
        resource=f"organization:{payload.organization_id}",
    )
    try:
        session.switch_organization(payload.organization_id)
    except TenantSessionError as exc:
        _handle_tenant_error(exc)
        raise
    if session.active_organization is not None:
        set_audit_context(request, organization_id=session.active_organization.id)
    return _session_view(session)


@router.post("/session/permission-check", response_model=PermissionCheckRead)
def check_permission(payload: PermissionCheckRequest, session: ActiveSession) -> PermissionCheckRead:
    decision = session.evaluate_permission(payload.action, payload.resource)
    return PermissionCheckRead(
        action=payload.action,
        resource=payload.resource,
        decision=decision,
        allowed=decision == PolicyDecision.ALLOW,
    )


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(request: Request, principal_id: PrincipalId, registry: Registry) -> Response:
    existing = registry.get(principal_id)
    organization = existing.active_organization if existing is not None else None
    set_audit_context(
        request,
        action="tenancy.sign_out",
        resource="tenant_session",
        organization_id=organization.id if organization is not None else None,
    )
    if not registry.sign_out(principal_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="tenant session not initialized",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/org-units", response_model=list[OrganizationalUnitRead])
def list_org_units(
    session: Annotated[TenantSession, Depends(require_action(ACTION_LIST_ORGANIZATIONAL_UNITS))],
) -> list[OrganizationalUnitRead]:
    return [OrganizationalUnitRead.model_validate(item) for item in session.all_ous()]


@router.get("/org-units/{parent_id}/children", response_model=list[OrganizationalUnitRead])
def list_child_org_units(
    parent_id: str,
    session: Annotated[TenantSession, Depends(require_action(ACTION_LIST_OUS_FOR_PARENT))],
) -> list[OrganizationalUnitRead]:
    return [OrganizationalUnitRead.model_validate(item) for item in session.child_ous(parent_id)]


@router.get("/org-units/{ou_id}/accounts", response_model=list[AccountRead])
def list_org_unit_accounts(
    ou_id: str,
    session: Annotated[TenantSession, Depends(require_action(ACTION_LIST_ACCOUNTS_FOR_PARENT))],
) -> list[AccountRead]:
    return [AccountRead.model_validate(item) for item in session.accounts_under_ou(ou_id)]


@router.get("/organization/accounts", response_model=list[AccountRead])
def list_organization_accounts(
    session: Annotated[TenantSession, Depends(require_organization_admin)],
) -> list[AccountRead]:
    return [AccountRead.model_validate(item) for item in session.organization_accounts()]
