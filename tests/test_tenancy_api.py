from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select

from app import main as app_main
from app.api.deps import get_session_registry, require_role
from app.domain.models import AccountRole, AuditLog, EventRecord
from app.infra import audit, db, events, redis_state
from app.infra.auth import create_access_token
from app.infra.events import EVENT_ACCOUNT_SWITCHED
from app.infra.seed import (
    BHOOMI_MASTER_ACCOUNT_ID,
    BHOOMI_ORG_ID,
    DEVELOPER_PRINCIPAL_ID,
    ORG_ADMIN_PRINCIPAL_ID,
    seed_demo_directory,
)
from app.services.session_persistence import SESSION_STORAGE_KEY
from app.services.tenant_session import TenantSessionRegistry


class FakeRedis:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def set(self, key: str, value: str) -> bool:
        self._store[key] = value
        return True

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._store.pop(key, None) is not None)

    def ping(self) -> bool:
        return True


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def tenancy_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    fake_redis: FakeRedis,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "tenancy_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(test_engine)
    with Session(test_engine) as session:
        seed_demo_directory(session)

    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)
    monkeypatch.setattr(events, "engine", test_engine)
    monkeypatch.setattr(redis_state, "get_redis", lambda: fake_redis)

    registry = TenantSessionRegistry()
    app_main.app.dependency_overrides[get_session_registry] = lambda: registry
    client = TestClient(app_main.app)
    yield client
    client.close()
    app_main.app.dependency_overrides.pop(get_session_registry, None)


def _auth_header(principal_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(principal_id=principal_id)}"}


def _sign_in(client: TestClient, principal_id: str) -> dict[str, object]:
    response = client.post("/api/tenancy/session", headers=_auth_header(principal_id))
    assert response.status_code == 200
    return response.json()


def test_requests_without_valid_token_are_rejected(tenancy_client: TestClient) -> None:
    assert tenancy_client.get("/api/tenancy/session").status_code == 401
    response = tenancy_client.get("/api/tenancy/session", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_session_must_be_signed_in_first(tenancy_client: TestClient) -> None:
    response = tenancy_client.get("/api/tenancy/session", headers=_auth_header(DEVELOPER_PRINCIPAL_ID))

    assert response.status_code == 404
    assert response.json()["detail"] == "tenant session not initialized"


def test_sign_in_selects_default_account(tenancy_client: TestClient, fake_redis: FakeRedis) -> None:
    body = _sign_in(tenancy_client, ORG_ADMIN_PRINCIPAL_ID)

    assert body["state"] == "READY"
    assert body["principal_id"] == ORG_ADMIN_PRINCIPAL_ID
    assert body["active_account"]["id"] == BHOOMI_MASTER_ACCOUNT_ID  # type: ignore[index]
    assert body["active_organization"]["id"] == BHOOMI_ORG_ID  # type: ignore[index]
    assert body["active_role"] == "ORGANIZATION_ADMIN"
    assert body["can_manage_organization"] is True
    assert body["can_switch_accounts"] is True
    assert len(body["accessible_accounts"]) == 4  # type: ignore[arg-type]
    assert fake_redis.get(f"{SESSION_STORAGE_KEY}:{ORG_ADMIN_PRINCIPAL_ID}") == BHOOMI_MASTER_ACCOUNT_ID

    fetched = tenancy_client.get("/api/tenancy/session", headers=_auth_header(ORG_ADMIN_PRINCIPAL_ID))
    assert fetched.status_code == 200
    assert fetched.json()["active_account"]["id"] == BHOOMI_MASTER_ACCOUNT_ID


def test_sign_in_without_memberships_is_empty(tenancy_client: TestClient) -> None:
    body = _sign_in(tenancy_client, "user-nobody")

    assert body["state"] == "EMPTY"
    assert body["active_account"] is None
    assert body["accessible_accounts"] == []
    assert body["can_switch_accounts"] is False


def test_switch_account_errors_map_to_status_codes(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)
    headers = _auth_header(DEVELOPER_PRINCIPAL_ID)

    unknown = tenancy_client.post("/api/tenancy/session/account", json={"account_id": "000000000000"}, headers=headers)
    forbidden = tenancy_client.post(
        "/api/tenancy/session/account",
        json={"account_id": "234567890123"},
        headers=headers,
    )
    foreign_org = tenancy_client.post(
        "/api/tenancy/session/organization",
        json={"organization_id": "o-partner001"},
        headers=headers,
    )

    assert unknown.status_code == 404
    assert forbidden.status_code == 403
    assert foreign_org.status_code == 403
    current = tenancy_client.get("/api/tenancy/session", headers=headers).json()
    assert current["active_account"]["id"] == "345678901234"


def test_switch_account_is_audited_and_published(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)

    response = tenancy_client.post(
        "/api/tenancy/session/account",
        json={"account_id": "456789012345"},
        headers=_auth_header(DEVELOPER_PRINCIPAL_ID),
    )

    assert response.status_code == 200
    assert response.json()["active_role"] == "POWER_USER"
    with Session(db.get_engine()) as session:
        audit_rows = list(
            session.exec(select(AuditLog).where(AuditLog.action == "tenancy.switch_account")).all()
        )
        event_rows = list(
            session.exec(select(EventRecord).where(EventRecord.event_type == EVENT_ACCOUNT_SWITCHED)).all()
        )
    assert len(audit_rows) == 1
    assert audit_rows[0].organization_id == BHOOMI_ORG_ID
    assert audit_rows[0].actor_id == DEVELOPER_PRINCIPAL_ID
    assert audit_rows[0].resource == "account:456789012345"
    assert audit_rows[0].status_code == 200
    assert len(event_rows) == 1
    assert event_rows[0].payload["account_id"] == "456789012345"


def test_permission_check(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)
    headers = _auth_header(DEVELOPER_PRINCIPAL_ID)

    allowed = tenancy_client.post(
        "/api/tenancy/session/permission-check",
        json={"action": "ec2:DescribeInstances"},
        headers=headers,
    )
    denied = tenancy_client.post(
        "/api/tenancy/session/permission-check",
        json={"action": "iam:CreateUser", "resource": "*"},
        headers=headers,
    )

    assert allowed.status_code == 200
    assert allowed.json() == {
        "action": "ec2:DescribeInstances",
        "resource": None,
        "decision": "ALLOW",
        "allowed": True,
    }
    assert denied.json()["decision"] == "NO_MATCH"
    assert denied.json()["allowed"] is False


def test_org_unit_listing_is_permission_gated(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, ORG_ADMIN_PRINCIPAL_ID)
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)
    admin_headers = _auth_header(ORG_ADMIN_PRINCIPAL_ID)
    developer_headers = _auth_header(DEVELOPER_PRINCIPAL_ID)

    listed = tenancy_client.get("/api/tenancy/org-units", headers=admin_headers)
    children = tenancy_client.get("/api/tenancy/org-units/ou-bhoomi-dev/children", headers=admin_headers)
    accounts = tenancy_client.get("/api/tenancy/org-units/ou-bhoomi-prod/accounts", headers=admin_headers)

    assert listed.status_code == 200
    assert {item["id"] for item in listed.json()} == {"ou-bhoomi-prod", "ou-bhoomi-dev", "ou-bhoomi-sandbox"}
    assert [item["id"] for item in children.json()] == ["ou-bhoomi-sandbox"]
    assert [item["id"] for item in accounts.json()] == ["234567890123"]

    assert tenancy_client.get("/api/tenancy/org-units", headers=developer_headers).status_code == 403
    assert (
        tenancy_client.get("/api/tenancy/org-units/ou-bhoomi-dev/accounts", headers=developer_headers).status_code
        == 403
    )


def test_organization_accounts_require_organization_admin(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, ORG_ADMIN_PRINCIPAL_ID)
    headers = _auth_header(ORG_ADMIN_PRINCIPAL_ID)

    listed = tenancy_client.get("/api/tenancy/organization/accounts", headers=headers)
    assert listed.status_code == 200
    assert len(listed.json()) == 4

    switched = tenancy_client.post("/api/tenancy/session/account", json={"account_id": "234567890123"}, headers=headers)
    assert switched.status_code == 200
    assert switched.json()["can_manage_organization"] is False
    assert tenancy_client.get("/api/tenancy/organization/accounts", headers=headers).status_code == 403


def test_sign_out(tenancy_client: TestClient, fake_redis: FakeRedis) -> None:
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)
    headers = _auth_header(DEVELOPER_PRINCIPAL_ID)

    assert tenancy_client.delete("/api/tenancy/session", headers=headers).status_code == 204
    assert tenancy_client.delete("/api/tenancy/session", headers=headers).status_code == 404
    assert tenancy_client.get("/api/tenancy/session", headers=headers).status_code == 404
    assert fake_redis.get(f"{SESSION_STORAGE_KEY}:{DEVELOPER_PRINCIPAL_ID}") is None


def test_permission_check_with_empty_resource_ignores_resource_patterns(tenancy_client: TestClient) -> None:
    _sign_in(tenancy_client, DEVELOPER_PRINCIPAL_ID)

    response = tenancy_client.post(
        "/api/tenancy/session/permission-check",
        json={"action": "s3:GetObject", "resource": ""},
        headers=_auth_header(DEVELOPER_PRINCIPAL_ID),
    )

    assert response.status_code == 200
    assert response.json()["decision"] == "ALLOW"


def test_require_role_accepts_any_listed_role(tenancy_client: TestClient) -> None:
    registry = app_main.app.dependency_overrides[get_session_registry]()
    admin = registry.sign_in(ORG_ADMIN_PRINCIPAL_ID)
    developer = registry.sign_in(DEVELOPER_PRINCIPAL_ID)
    nobody = registry.sign_in("user-nobody")
    checker = require_role(AccountRole.ORGANIZATION_ADMIN, AccountRole.DEVELOPER)

    assert checker(admin) is admin
    assert checker(developer) is developer
    with pytest.raises(HTTPException) as denied:
        checker(nobody)
    assert denied.value.status_code == 403

    admin_only = require_role(AccountRole.ORGANIZATION_ADMIN)
    with pytest.raises(HTTPException):
        admin_only(developer)
