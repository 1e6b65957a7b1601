"""Demo organization directory.

Two organizations ("o-bhoomi001" with a nested OU tree and four accounts,
"o-partner001" with one OU and two accounts) and two principals:

- ``user-001``: organization admin on the Bhoomi master account (default) and
  account admin on the other three Bhoomi accounts.
- ``user-002``: developer on Development (default) and power user on Sandbox.

Run ``python -m app.infra.seed`` against ``DATABASE_URL`` to load it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlmodel import Session

from app.domain.models import (
    Account,
    AccountJoinMethod,
    AccountMember,
    AccountRole,
    Organization,
    OrganizationalUnit,
    OrganizationFeatureSet,
    OrganizationRoot,
)
from app.domain.permissions import default_permissions_for
from app.infra.db import create_schema, get_engine

logger = logging.getLogger(__name__)

BHOOMI_ORG_ID = "o-bhoomi001"
PARTNER_ORG_ID = "o-partner001"
BHOOMI_MASTER_ACCOUNT_ID = "123456789012"
PARTNER_MASTER_ACCOUNT_ID = "999888777666"
ORG_ADMIN_PRINCIPAL_ID = "user-001"
DEVELOPER_PRINCIPAL_ID = "user-002"

_ENABLED_POLICY_TYPES = [
    {"type": "SERVICE_CONTROL_POLICY", "status": "ENABLED"},
    {"type": "TAG_POLICY", "status": "ENABLED"},
]


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _org_arn(master_id: str, kind: str, org_id: str, item_id: str | None = None) -> str:
    suffix = f"{org_id}/{item_id}" if item_id is not None else org_id
    return f"arn:bhoomi:organizations::{master_id}:{kind}/{suffix}"


def _organizations() -> list[Organization]:
    return [
        Organization(
            id=BHOOMI_ORG_ID,
            arn=_org_arn(BHOOMI_MASTER_ACCOUNT_ID, "organization", BHOOMI_ORG_ID),
            master_account_id=BHOOMI_MASTER_ACCOUNT_ID,
            master_account_arn=_org_arn(BHOOMI_MASTER_ACCOUNT_ID, "account", BHOOMI_ORG_ID, BHOOMI_MASTER_ACCOUNT_ID),
            master_account_email="master@bhoomi.cloud",
            feature_set=OrganizationFeatureSet.ALL,
            available_policy_types=list(_ENABLED_POLICY_TYPES),
            created_at=_ts("2023-01-01T00:00:00Z"),
        ),
        Organization(
            id=PARTNER_ORG_ID,
            arn=_org_arn(PARTNER_MASTER_ACCOUNT_ID, "organization", PARTNER_ORG_ID),
            master_account_id=PARTNER_MASTER_ACCOUNT_ID,
            master_account_arn=_org_arn(
                PARTNER_MASTER_ACCOUNT_ID, "account", PARTNER_ORG_ID, PARTNER_MASTER_ACCOUNT_ID
            ),
            master_account_email="admin@partner.example.com",
            feature_set=OrganizationFeatureSet.CONSOLIDATED_BILLING,
            available_policy_types=[],
            created_at=_ts("2024-01-15T00:00:00Z"),
        ),
    ]


def _roots() -> list[OrganizationRoot]:
    return [
        OrganizationRoot(
            id="r-bhoomi",
            arn=_org_arn(BHOOMI_MASTER_ACCOUNT_ID, "root", BHOOMI_ORG_ID, "r-bhoomi"),
            organization_id=BHOOMI_ORG_ID,
            policy_types=list(_ENABLED_POLICY_TYPES),
        ),
        OrganizationRoot(
            id="r-partner",
            arn=_org_arn(PARTNER_MASTER_ACCOUNT_ID, "root", PARTNER_ORG_ID, "r-partner"),
            organization_id=PARTNER_ORG_ID,
            policy_types=[],
        ),
    ]


def _org_units() -> list[OrganizationalUnit]:
    rows: list[tuple[str, str, str, str, str, str]] = [
        (BHOOMI_MASTER_ACCOUNT_ID, BHOOMI_ORG_ID, "ou-bhoomi-prod", "Production", "r-bhoomi", "2023-01-15T00:00:00Z"),
        (BHOOMI_MASTER_ACCOUNT_ID, BHOOMI_ORG_ID, "ou-bhoomi-dev", "Development", "r-bhoomi", "2023-01-15T00:00:00Z"),
        (
            BHOOMI_MASTER_ACCOUNT_ID,
            BHOOMI_ORG_ID,
            "ou-bhoomi-sandbox",
            "Sandbox",
            "ou-bhoomi-dev",
            "2023-06-01T00:00:00Z",
        ),
        (
            PARTNER_MASTER_ACCOUNT_ID,
            PARTNER_ORG_ID,
            "ou-partner-workloads",
            "Workloads",
            "r-partner",
            "2024-02-01T00:00:00Z",
        ),
    ]
    return [
        OrganizationalUnit(
            id=ou_id,
            arn=_org_arn(master_id, "ou", org_id, ou_id),
            name=name,
            parent_id=parent_id,
            created_at=_ts(created_at),
        )
        for master_id, org_id, ou_id, name, parent_id, created_at in rows
    ]


def _accounts() -> list[Account]:
    rows: list[dict[str, Any]] = [
        {
            "id": BHOOMI_MASTER_ACCOUNT_ID,
            "name": "Bhoomi Master Account",
            "email": "master@bhoomi.cloud",
            "joined": "2023-01-01T00:00:00Z",
            "org": BHOOMI_ORG_ID,
            "parent": "r-bhoomi",
            "tags": {"Environment": "management", "CostCenter": "CC-MGMT"},
        },
        {
            "id": "234567890123",
            "name": "Production Workloads",
            "email": "prod@bhoomi.cloud",
            "joined": "2023-02-01T00:00:00Z",
            "org": BHOOMI_ORG_ID,
            "parent": "ou-bhoomi-prod",
            "tags": {"Environment": "production", "CostCenter": "CC-PROD"},
        },
        {
            "id": "345678901234",
            "name": "Development",
            "email": "dev@bhoomi.cloud",
            "joined": "2023-02-15T00:00:00Z",
            "org": BHOOMI_ORG_ID,
            "parent": "ou-bhoomi-dev",
            "tags": {"Environment": "development", "CostCenter": "CC-DEV"},
        },
        {
            "id": "456789012345",
            "name": "Sandbox",
            "email": "sandbox@bhoomi.cloud",
            "joined": "2023-06-15T00:00:00Z",
            "joined_method": AccountJoinMethod.INVITED,
            "org": BHOOMI_ORG_ID,
            "parent": "ou-bhoomi-sandbox",
            "tags": {"Environment": "sandbox", "CostCenter": "CC-DEV"},
        },
        {
            "id": PARTNER_MASTER_ACCOUNT_ID,
            "name": "Partner Master",
            "email": "admin@partner.example.com",
            "joined": "2024-01-15T00:00:00Z",
            "org": PARTNER_ORG_ID,
            "parent": "r-partner",
            "tags": {"Environment": "management"},
        },
        {
            "id": "888777666555",
            "name": "Partner Workloads",
            "email": "workloads@partner.example.com",
            "joined": "2024-02-01T00:00:00Z",
            "org": PARTNER_ORG_ID,
            "parent": "ou-partner-workloads",
            "tags": {"Environment": "production"},
        },
    ]
    master_by_org = {BHOOMI_ORG_ID: BHOOMI_MASTER_ACCOUNT_ID, PARTNER_ORG_ID: PARTNER_MASTER_ACCOUNT_ID}
    return [
        Account(
            id=row["id"],
            arn=_org_arn(master_by_org[row["org"]], "account", row["org"], row["id"]),
            name=row["name"],
            email=row["email"],
            joined_method=row.get("joined_method", AccountJoinMethod.CREATED),
            joined_at=_ts(row["joined"]),
            organization_id=row["org"],
            parent_id=row["parent"],
            tags=row["tags"],
        )
        for row in rows
    ]


def _members() -> list[AccountMember]:
    admin, developer = ORG_ADMIN_PRINCIPAL_ID, DEVELOPER_PRINCIPAL_ID
    rows: list[tuple[str, str, str, AccountRole, bool, str, str]] = [
        ("member-001", admin, BHOOMI_MASTER_ACCOUNT_ID, AccountRole.ORGANIZATION_ADMIN, True, "2023-01-01", "system"),
        ("member-002", admin, "234567890123", AccountRole.ACCOUNT_ADMIN, False, "2023-02-01", "system"),
        ("member-003", admin, "345678901234", AccountRole.ACCOUNT_ADMIN, False, "2023-02-15", "system"),
        ("member-004", admin, "456789012345", AccountRole.ACCOUNT_ADMIN, False, "2023-06-15", "system"),
        ("member-005", developer, "345678901234", AccountRole.DEVELOPER, True, "2023-03-01", admin),
        ("member-006", developer, "456789012345", AccountRole.POWER_USER, False, "2023-06-20", admin),
    ]
    return [
        AccountMember(
            id=member_id,
            principal_id=principal_id,
            account_id=account_id,
            role=role,
            permissions=default_permissions_for(role),
            is_default=is_default,
            added_at=_ts(f"{added_at}T00:00:00Z"),
            added_by=added_by,
        )
        for member_id, principal_id, account_id, role, is_default, added_at, added_by in rows
    ]


def seed_demo_directory(session: Session) -> int:
    """Insert the demo directory, skipping rows that already exist. Returns rows added."""
    added = 0
    for group in (_organizations(), _roots(), _org_units(), _accounts(), _members()):
        for item in group:
            if session.get(type(item), item.id) is not None:
                continue
            session.add(item)
            added += 1
        session.commit()
    return added


def main() -> None:
    engine = get_engine()
    create_schema(engine)
    with Session(engine) as session:
        added = seed_demo_directory(session)
    logger.info("seeded %d directory rows", added)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
