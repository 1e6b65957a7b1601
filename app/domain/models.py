from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel


def now_utc() -> datetime:
    return datetime.now(UTC)


class OrganizationFeatureSet(StrEnum):
    ALL = "ALL"
    CONSOLIDATED_BILLING = "CONSOLIDATED_BILLING"


class OrganizationStatus(StrEnum):
    ACTIVE = "ACTIVE"
    PENDING_DELETION = "PENDING_DELETION"


class OUStatus(StrEnum):
    ACTIVE = "ACTIVE"
    PENDING_DELETION = "PENDING_DELETION"


class AccountStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_CLOSURE = "PENDING_CLOSURE"


class AccountJoinMethod(StrEnum):
    CREATED = "CREATED"
    INVITED = "INVITED"


class AccountRole(StrEnum):
    ORGANIZATION_ADMIN = "ORGANIZATION_ADMIN"
    ACCOUNT_ADMIN = "ACCOUNT_ADMIN"
    POWER_USER = "POWER_USER"
    DEVELOPER = "DEVELOPER"
    READ_ONLY = "READ_ONLY"
    BILLING_ADMIN = "BILLING_ADMIN"


class Effect(StrEnum):
    ALLOW = "Allow"
    DENY = "Deny"


class PolicyDecision(StrEnum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    NO_MATCH = "NO_MATCH"


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    organization_id: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    actor_id: str | None = Field(default=None, index=True)
    correlation_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    organization_id: str = Field(index=True)
    actor_id: str | None = Field(default=None, index=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(primary_key=True)
    arn: str
    master_account_id: str = Field(index=True)
    master_account_arn: str
    master_account_email: str
    feature_set: OrganizationFeatureSet = Field(default=OrganizationFeatureSet.ALL)
    available_policy_types: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    status: OrganizationStatus = Field(default=OrganizationStatus.ACTIVE)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class OrganizationRoot(SQLModel, table=True):
    __tablename__ = "organization_roots"

    id: str = Field(primary_key=True)
    arn: str
    name: str = "Root"
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    policy_types: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )


class OrganizationalUnit(SQLModel, table=True):
    __tablename__ = "organizational_units"

    id: str = Field(primary_key=True)
    arn: str
    name: str = Field(index=True)
    # Either an organization root id or another OU id.
    parent_id: str = Field(index=True)
    status: OUStatus = Field(default=OUStatus.ACTIVE)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(primary_key=True)
    arn: str
    name: str = Field(index=True)
    email: str
    status: AccountStatus = Field(default=AccountStatus.ACTIVE)
    joined_method: AccountJoinMethod = Field(default=AccountJoinMethod.CREATED)
    joined_at: datetime = Field(default_factory=now_utc)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    parent_id: str = Field(index=True)
    tags: dict[str, str] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AccountMember(SQLModel, table=True):
    __tablename__ = "account_members"
    __table_args__ = (
        Index("ix_account_members_principal_account", "principal_id", "account_id", unique=True),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    principal_id: str = Field(index=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    role: AccountRole
    # Ordered statement list; evaluation is first-match so order is preserved as stored.
    permissions: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    is_default: bool = Field(default=False)
    added_at: datetime = Field(default_factory=now_utc, index=True)
    added_by: str = "system"


class PermissionStatement(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str | None = None
    description: str | None = None
    actions: list[str] = PydanticField(default_factory=list)
    resources: list[str] = PydanticField(default_factory=list)
    effect: Effect


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    organization_id: str
    ts: datetime = PydanticField(default_factory=now_utc)
    actor_id: str | None = None
    correlation_id: str | None = None
    payload: dict[str, Any]


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrganizationRead(ORMReadModel):
    id: str
    arn: str
    master_account_id: str
    master_account_email: str
    feature_set: OrganizationFeatureSet
    available_policy_types: list[dict[str, Any]]
    status: OrganizationStatus
    created_at: datetime


class OrganizationalUnitRead(ORMReadModel):
    id: str
    arn: str
    name: str
    parent_id: str
    status: OUStatus
    created_at: datetime


class AccountRead(ORMReadModel):
    id: str
    arn: str
    name: str
    email: str
    status: AccountStatus
    joined_method: AccountJoinMethod
    joined_at: datetime
    organization_id: str
    parent_id: str
    tags: dict[str, str]


class AccountMemberRead(ORMReadModel):
    id: str
    principal_id: str
    account_id: str
    role: AccountRole
    permissions: list[PermissionStatement]
    is_default: bool
    added_at: datetime
    added_by: str


class TenantSessionRead(BaseModel):
    state: str
    principal_id: str | None = None
    active_organization: OrganizationRead | None = None
    active_account: AccountRead | None = None
    active_membership: AccountMemberRead | None = None
    active_role: AccountRole | None = None
    permissions: list[PermissionStatement] = PydanticField(default_factory=list)
    accessible_organizations: list[OrganizationRead] = PydanticField(default_factory=list)
    accessible_accounts: list[AccountRead] = PydanticField(default_factory=list)
    can_switch_accounts: bool = False
    can_manage_organization: bool = False


class SwitchAccountRequest(BaseModel):
    account_id: str


class SwitchOrganizationRequest(BaseModel):
    organization_id: str


class PermissionCheckRequest(BaseModel):
    action: str
    resource: str | None = None


class PermissionCheckRead(BaseModel):
    action: str
    resource: str | None = None
    decision: PolicyDecision
    allowed: bool
