"""organization directory tables

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610190002"
down_revision = "202610190001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("arn", sa.String(), nullable=False),
        sa.Column("master_account_id", sa.String(), nullable=False),
        sa.Column("master_account_arn", sa.String(), nullable=False),
        sa.Column("master_account_email", sa.String(), nullable=False),
        sa.Column("feature_set", sa.String(), nullable=False),
        sa.Column("available_policy_types", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organizations_master_account_id", "organizations", ["master_account_id"])
    op.create_index("ix_organizations_created_at", "organizations", ["created_at"])

    op.create_table(
        "organization_roots",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("arn", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("policy_types", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organization_roots_organization_id", "organization_roots", ["organization_id"])

    op.create_table(
        "organizational_units",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("arn", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("parent_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organizational_units_name", "organizational_units", ["name"])
    op.create_index("ix_organizational_units_parent_id", "organizational_units", ["parent_id"])
    op.create_index("ix_organizational_units_created_at", "organizational_units", ["created_at"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("arn", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("joined_method", sa.String(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("parent_id", sa.String(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_name", "accounts", ["name"])
    op.create_index("ix_accounts_organization_id", "accounts", ["organization_id"])
    op.create_index("ix_accounts_parent_id", "accounts", ["parent_id"])

    op.create_table(
        "account_members",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("principal_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("added_by", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_account_members_principal_id", "account_members", ["principal_id"])
    op.create_index("ix_account_members_account_id", "account_members", ["account_id"])
    op.create_index("ix_account_members_added_at", "account_members", ["added_at"])
    op.create_index(
        "ix_account_members_principal_account",
        "account_members",
        ["principal_id", "account_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_account_members_principal_account", table_name="account_members")
    op.drop_index("ix_account_members_added_at", table_name="account_members")
    op.drop_index("ix_account_members_account_id", table_name="account_members")
    op.drop_index("ix_account_members_principal_id", table_name="account_members")
    op.drop_table("account_members")

    op.drop_index("ix_accounts_parent_id", table_name="accounts")
    op.drop_index("ix_accounts_organization_id", table_name="accounts")
    op.drop_index("ix_accounts_name", table_name="accounts")
    op.drop_table("accounts")

    op.drop_index("ix_organizational_units_created_at", table_name="organizational_units")
    op.drop_index("ix_organizational_units_parent_id", table_name="organizational_units")
    op.drop_index("ix_organizational_units_name", table_name="organizational_units")
    op.drop_table("organizational_units")

    op.drop_index("ix_organization_roots_organization_id", table_name="organization_roots")
    op.drop_table("organization_roots")

    op.drop_index("ix_organizations_created_at", table_name="organizations")
    op.drop_index("ix_organizations_master_account_id", table_name="organizations")
    op.drop_table("organizations")
