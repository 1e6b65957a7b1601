from __future__ import annotations

import logging
from typing import Any

from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.domain.models import AuditLog, now_utc
from app.infra.db import engine

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
AUDIT_CONTEXT_STATE_KEY = "_audit_context"
SYSTEM_ORGANIZATION_ID = "system"
UNAUDITED_PATHS = {"/healthz", "/readyz"}


def write_audit_log(
    *,
    organization_id: str,
    actor_id: str | None,
    action: str,
    resource: str,
    method: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> None:
    with Session(engine) as session:
        session.add(
            AuditLog(
                organization_id=organization_id,
                actor_id=actor_id,
                action=action,
                resource=resource,
                method=method,
                status_code=status_code,
                detail=detail or {},
            )
        )
        session.commit()


def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        merged[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def _outcome(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code in {401, 403, 404}:
        return "denied"
    if status_code >= 400:
        return "rejected"
    return "success"


def _context(request: Request) -> dict[str, Any]:
    raw = getattr(request.state, AUDIT_CONTEXT_STATE_KEY, None)
    return dict(raw) if isinstance(raw, dict) else {}


def set_audit_context(
    request: Request,
    *,
    action: str | None = None,
    resource: str | None = None,
    organization_id: str | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    """Attach audit fields to the current request; later calls override earlier ones."""
    context = _context(request)
    for key, value in (("action", action), ("resource", resource), ("organization_id", organization_id)):
        if value is not None:
            context[key] = value
    if detail:
        previous = context.get("detail")
        context["detail"] = _merge(previous, detail) if isinstance(previous, dict) else detail
    setattr(request.state, AUDIT_CONTEXT_STATE_KEY, context)


def _request_detail(
    request: Request,
    response: Response,
    *,
    principal_id: str | None,
    organization_id: str,
    action: str,
    resource: str,
) -> dict[str, Any]:
    route = request.scope.get("route")
    return {
        "principal": {"id": principal_id, "organization_id": organization_id},
        "request": {
            "ts": now_utc().isoformat(),
            "method": request.method,
            "path": request.url.path,
            "route": getattr(route, "path", request.url.path),
            "client_ip": request.client.host if request.client is not None else None,
        },
        "operation": {"action": action, "resource": resource},
        "result": {"status_code": response.status_code, "outcome": _outcome(response.status_code)},
    }


class AuditMiddleware(BaseHTTPMiddleware):
    """Records write requests, and reads that set an explicit audit action."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        path = request.url.path
        method = request.method
        if path in UNAUDITED_PATHS:
            return response
        context = _context(request)
        if method not in WRITE_METHODS and not any(key in context for key in ("action", "resource", "detail")):
            return response

        claims = getattr(request.state, "claims", {})
        principal_id = claims.get("sub")
        organization_id = context.get("organization_id") or SYSTEM_ORGANIZATION_ID
        action = context.get("action") or f"{method}:{path}"
        resource = context.get("resource") or path
        detail = _request_detail(
            request,
            response,
            principal_id=principal_id,
            organization_id=organization_id,
            action=action,
            resource=resource,
        )
        extra = context.get("detail")
        if isinstance(extra, dict):
            detail = _merge(detail, extra)

        try:
            write_audit_log(
                organization_id=organization_id,
                actor_id=principal_id,
                action=action,
                resource=resource,
                method=method,
                status_code=response.status_code,
                detail=detail,
            )
        except Exception:
            logger.exception("failed to write audit log for %s %s", method, path)
        return response
