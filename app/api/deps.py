from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from app.domain.models import AccountRole
from app.infra.audit import set_audit_context
from app.infra.auth import decode_access_token
from app.services.tenant_session import TenantSession, TenantSessionRegistry, session_registry

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/tenancy/session")


def get_current_claims(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> dict[str, Any]:
    try:
        claims = decode_access_token(token)
    except (jwt.PyJWTError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc
    request.state.claims = claims
    return claims


def get_principal_id(
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> str:
    return str(claims["sub"])


def get_session_registry() -> TenantSessionRegistry:
    return session_registry


def get_tenant_session(
    request: Request,
    principal_id: Annotated[str, Depends(get_principal_id)],
    registry: Annotated[TenantSessionRegistry, Depends(get_session_registry)],
) -> TenantSession:
    session = registry.get(principal_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="tenant session not initialized",
        )
    if session.active_organization is not None:
        set_audit_context(request, organization_id=session.active_organization.id)
    return session


def require_action(action: str, resource: str | None = None) -> Callable[[TenantSession], TenantSession]:
    def _checker(
        session: Annotated[TenantSession, Depends(get_tenant_session)],
    ) -> TenantSession:
        if not session.has_permission(action, resource):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not authorized to perform: {action}",
            )
        return session

    return _checker


def require_role(*roles: AccountRole) -> Callable[[TenantSession], TenantSession]:
    allowed = ", ".join(str(role) for role in roles)

    def _checker(
        session: Annotated[TenantSession, Depends(get_tenant_session)],
    ) -> TenantSession:
        if not session.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role required: {allowed}",
            )
        return session

    return _checker


require_organization_admin = require_role(AccountRole.ORGANIZATION_ADMIN)
