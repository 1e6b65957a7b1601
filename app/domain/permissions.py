from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import Any

from app.domain.models import AccountRole, Effect, PermissionStatement, PolicyDecision

PATTERN_WILDCARD = "*"

ACTION_LIST_ORGANIZATIONAL_UNITS = "organizations:ListOrganizationalUnits"
ACTION_LIST_OUS_FOR_PARENT = "organizations:ListOrganizationalUnitsForParent"
ACTION_LIST_ACCOUNTS_FOR_PARENT = "organizations:ListAccountsForParent"


def _allow(statement_id: str, name: str, description: str, actions: list[str]) -> dict[str, Any]:
    return {
        "id": statement_id,
        "name": name,
        "description": description,
        "actions": actions,
        "resources": [PATTERN_WILDCARD],
        "effect": Effect.ALLOW.value,
    }


DEFAULT_ROLE_PERMISSIONS: dict[AccountRole, list[dict[str, Any]]] = {
    AccountRole.ORGANIZATION_ADMIN: [
        _allow(
            "perm-org-admin",
            "OrganizationFullAccess",
            "Full access to organization management",
            ["*"],
        ),
    ],
    AccountRole.ACCOUNT_ADMIN: [
        _allow(
            "perm-account-admin",
            "AccountFullAccess",
            "Full access within account",
            ["*"],
        ),
    ],
    AccountRole.POWER_USER: [
        _allow(
            "perm-power-user",
            "PowerUserAccess",
            "Full access except IAM and Organization",
            ["ec2:*", "s3:*", "lambda:*", "ecs:*", "eks:*", "cloudwatch:*", "logs:*"],
        ),
    ],
    AccountRole.DEVELOPER: [
        _allow(
            "perm-developer",
            "DeveloperAccess",
            "Development resource access",
            [
                "ec2:Describe*",
                "ec2:Start*",
                "ec2:Stop*",
                "ec2:Reboot*",
                "s3:*",
                "lambda:*",
                "logs:*",
                "cloudwatch:Get*",
                "cloudwatch:List*",
            ],
        ),
    ],
    AccountRole.READ_ONLY: [
        _allow(
            "perm-readonly",
            "ReadOnlyAccess",
            "Read-only access to all resources",
            ["*:Describe*", "*:List*", "*:Get*"],
        ),
    ],
    AccountRole.BILLING_ADMIN: [
        _allow(
            "perm-billing",
            "BillingFullAccess",
            "Full access to billing",
            ["billing:*", "budgets:*", "cost-explorer:*", "ce:*"],
        ),
    ],
}


def default_permissions_for(role: AccountRole) -> list[dict[str, Any]]:
    return [dict(item) for item in DEFAULT_ROLE_PERMISSIONS[role]]


@lru_cache(maxsize=1024)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    # Only "*" is a wildcard; everything else is matched literally.
    body = ".*".join(re.escape(part) for part in pattern.split(PATTERN_WILDCARD))
    return re.compile(f"^{body}$", re.DOTALL)


def pattern_matches(pattern: str, value: str) -> bool:
    if pattern == PATTERN_WILDCARD or pattern == value:
        return True
    if PATTERN_WILDCARD not in pattern:
        return False
    return _compile_pattern(pattern).fullmatch(value) is not None


def _any_matches(patterns: Iterable[str], value: str) -> bool:
    return any(pattern_matches(pattern, value) for pattern in patterns)


def parse_statements(raw: Iterable[Any]) -> list[PermissionStatement]:
    return [
        item if isinstance(item, PermissionStatement) else PermissionStatement.model_validate(item)
        for item in raw
    ]


class PolicyEvaluator:
    """First-match evaluation of ordered permission statements.

    Statements are examined in the order given. The first statement whose
    action (and, when a non-empty resource is requested, resource) patterns match
    decides the outcome; later statements are never consulted, so an earlier
    Allow shadows a later Deny and vice versa. When nothing matches the result
    is ``NO_MATCH``, which callers must treat as not authorized.
    """

    def evaluate(
        self,
        statements: Sequence[PermissionStatement],
        action: str,
        resource: str | None = None,
    ) -> PolicyDecision:
        for statement in statements:
            if not _any_matches(statement.actions, action):
                continue
            if resource and not _any_matches(statement.resources, resource):
                continue
            if statement.effect == Effect.DENY:
                return PolicyDecision.DENY
            return PolicyDecision.ALLOW
        return PolicyDecision.NO_MATCH

    def is_allowed(
        self,
        statements: Sequence[PermissionStatement],
        action: str,
        resource: str | None = None,
    ) -> bool:
        return self.evaluate(statements, action, resource) == PolicyDecision.ALLOW


policy_evaluator = PolicyEvaluator()
