from __future__ import annotations

import pytest

from app.domain.models import AccountRole, Effect, PermissionStatement, PolicyDecision
from app.domain.permissions import (
    PolicyEvaluator,
    default_permissions_for,
    parse_statements,
    pattern_matches,
)


def _statement(
    effect: Effect,
    actions: list[str],
    resources: list[str] | None = None,
) -> PermissionStatement:
    return PermissionStatement(effect=effect, actions=actions, resources=resources or [])


@pytest.fixture()
def evaluator() -> PolicyEvaluator:
    return PolicyEvaluator()


def test_empty_statement_list_is_no_match(evaluator: PolicyEvaluator) -> None:
    assert evaluator.evaluate([], "ec2:DescribeInstances") == PolicyDecision.NO_MATCH
    assert evaluator.is_allowed([], "ec2:DescribeInstances") is False


def test_service_wildcard_matches_any_action_of_service(evaluator: PolicyEvaluator) -> None:
    statements = [_statement(Effect.ALLOW, ["ec2:*"])]

    assert evaluator.evaluate(statements, "ec2:DescribeInstances") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "s3:GetObject") == PolicyDecision.NO_MATCH


def test_first_matching_statement_wins(evaluator: PolicyEvaluator) -> None:
    deny_first = [
        _statement(Effect.DENY, ["ec2:Terminate*"]),
        _statement(Effect.ALLOW, ["ec2:*"]),
    ]
    allow_first = list(reversed(deny_first))

    assert evaluator.evaluate(deny_first, "ec2:TerminateInstances") == PolicyDecision.DENY
    assert evaluator.evaluate(deny_first, "ec2:StartInstances") == PolicyDecision.ALLOW
    # An earlier Allow shadows the later Deny.
    assert evaluator.evaluate(allow_first, "ec2:TerminateInstances") == PolicyDecision.ALLOW


def test_resource_is_only_checked_when_supplied(evaluator: PolicyEvaluator) -> None:
    statements = [
        _statement(Effect.ALLOW, ["s3:GetObject"], ["arn:bhoomi:s3:::public-*"]),
        _statement(Effect.DENY, ["s3:*"], ["*"]),
    ]

    assert evaluator.evaluate(statements, "s3:GetObject") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "s3:GetObject", "arn:bhoomi:s3:::public-assets") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "s3:GetObject", "arn:bhoomi:s3:::private") == PolicyDecision.DENY


def test_empty_resource_list_never_matches_a_requested_resource(evaluator: PolicyEvaluator) -> None:
    statements = [_statement(Effect.ALLOW, ["lambda:*"])]

    assert evaluator.evaluate(statements, "lambda:InvokeFunction") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "lambda:InvokeFunction", "fn-1") == PolicyDecision.NO_MATCH


def test_empty_string_resource_skips_resource_matching(evaluator: PolicyEvaluator) -> None:
    statements = [_statement(Effect.ALLOW, ["s3:*"], ["arn:bhoomi:s3:::my-bucket"])]

    assert evaluator.evaluate(statements, "s3:GetObject", "") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "s3:GetObject", "arn:bhoomi:s3:::other") == PolicyDecision.NO_MATCH


def test_patterns_treat_regex_metacharacters_literally() -> None:
    assert pattern_matches("ec2:Describe.Instances", "ec2:Describe.Instances") is True
    assert pattern_matches("ec2:Describe.Instances", "ec2:DescribeXInstances") is False
    assert pattern_matches("a+b:*", "a+b:Get") is True
    assert pattern_matches("a+b:*", "aab:Get") is False
    assert pattern_matches("(x)|y", "y") is False
    assert pattern_matches("arn:[a]:*", "arn:[a]:bucket") is True


def test_patterns_are_anchored() -> None:
    assert pattern_matches("ec2:Get*", "xec2:GetThing") is False
    assert pattern_matches("*:List*", "iam:ListUsers") is True
    assert pattern_matches("*:List*", "iam:GetList") is False
    assert pattern_matches("*", "") is True


def test_read_only_role_statements(evaluator: PolicyEvaluator) -> None:
    statements = parse_statements(default_permissions_for(AccountRole.READ_ONLY))

    assert evaluator.evaluate(statements, "ec2:DescribeInstances") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "iam:ListUsers") == PolicyDecision.ALLOW
    assert evaluator.evaluate(statements, "ec2:TerminateInstances") == PolicyDecision.NO_MATCH


def test_developer_role_cannot_list_organizational_units(evaluator: PolicyEvaluator) -> None:
    statements = parse_statements(default_permissions_for(AccountRole.DEVELOPER))

    assert evaluator.is_allowed(statements, "ec2:StartInstances") is True
    assert evaluator.is_allowed(statements, "organizations:ListOrganizationalUnits") is False


def test_default_permissions_are_copied() -> None:
    first = default_permissions_for(AccountRole.POWER_USER)
    first[0]["effect"] = Effect.DENY.value

    assert default_permissions_for(AccountRole.POWER_USER)[0]["effect"] == Effect.ALLOW.value


def test_parse_statements_keeps_order_and_accepts_models() -> None:
    existing = _statement(Effect.DENY, ["iam:*"])
    statements = parse_statements(
        [existing, {"id": "s-2", "actions": ["*"], "resources": ["*"], "effect": "Allow"}]
    )

    assert statements[0] is existing
    assert statements[1].id == "s-2"
    assert statements[1].effect == Effect.ALLOW
