"""Unit tests for rule compilation and policy evaluation.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

import pytest

from teleport_autoreviewer.config import RejectionRuleConfig
from teleport_autoreviewer.exceptions import ConfigurationError
from teleport_autoreviewer.pdp import PolicyEvaluator, compile_rules
from teleport_autoreviewer.plane.models import AccessRequest, RequestState


def make_request(roles: list[str], reason: str = "", request_id: str = "req-1") -> AccessRequest:
    return AccessRequest(
        id=request_id,
        requested_roles=frozenset(roles),
        reason=reason,
        state=RequestState.PENDING,
    )


def make_evaluator(*rules: dict) -> PolicyEvaluator:
    return PolicyEvaluator(compile_rules(RejectionRuleConfig(**rule) for rule in rules))


# ============================================================================
# Rule Compilation
# ============================================================================


class TestCompileRules:
    """Tests for compile_rules."""

    def test_preserves_declaration_order(self) -> None:
        # Arrange
        definitions = [RejectionRuleConfig(name=name) for name in ("c", "a", "b")]

        # Act
        compiled = compile_rules(definitions)

        # Assert
        assert [rule.name for rule in compiled] == ["c", "a", "b"]
        assert isinstance(compiled, tuple)

    def test_empty_patterns_mean_no_constraint(self) -> None:
        """Given empty strings, no matcher is compiled (not a match-empty pattern)."""
        compiled = compile_rules([RejectionRuleConfig(name="r", reason_regex="", roles_regex="")])

        assert compiled[0].reason_matcher is None
        assert compiled[0].roles_matcher is None

    def test_invalid_pattern_raises_with_rule_and_pattern(self) -> None:
        # Arrange
        definitions = [
            RejectionRuleConfig(name="ok", roles_regex="admin"),
            RejectionRuleConfig(name="broken", reason_regex="["),
        ]

        # Act / Assert
        with pytest.raises(ConfigurationError) as exc_info:
            compile_rules(definitions)

        assert exc_info.value.rule_name == "broken"
        assert exc_info.value.pattern == "["

    def test_invalid_roles_pattern_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="bad-roles"):
            compile_rules([RejectionRuleConfig(name="bad-roles", roles_regex="(unclosed")])

    def test_no_rules_compiles_to_empty_tuple(self) -> None:
        assert compile_rules([]) == ()


# ============================================================================
# Stage 1: Role Applicability
# ============================================================================


class TestRoleApplicability:
    """Tests for the role-applicability stage."""

    def test_rule_without_roles_applies_to_every_request(self) -> None:
        """Given no roles_regex, the rule applies regardless of roles."""
        rule = compile_rules([RejectionRuleConfig(name="all")])[0]

        assert rule.applies_to(frozenset())
        assert rule.applies_to(frozenset({"viewer"}))
        assert rule.applies_to(frozenset({"db-admin", "viewer"}))

    def test_any_matching_role_applies(self) -> None:
        rule = compile_rules([RejectionRuleConfig(name="admins", roles_regex="admin")])[0]

        assert rule.applies_to(frozenset({"viewer", "db-admin"}))
        assert not rule.applies_to(frozenset({"viewer", "editor"}))

    def test_roles_match_is_unanchored(self) -> None:
        rule = compile_rules([RejectionRuleConfig(name="r", roles_regex="adm")])[0]

        assert rule.applies_to(frozenset({"cluster-admin"}))

    def test_anchored_roles_pattern(self) -> None:
        rule = compile_rules([RejectionRuleConfig(name="r", roles_regex="^root$")])[0]

        assert rule.applies_to(frozenset({"root"}))
        assert not rule.applies_to(frozenset({"root-reader"}))


# ============================================================================
# Evaluation
# ============================================================================


class TestDecide:
    """Tests for PolicyEvaluator.decide."""

    def test_no_rules_abstains(self) -> None:
        assert make_evaluator().decide(make_request(["db-admin"])) is None

    def test_first_triggering_rule_wins(self) -> None:
        """Given A (admin roles) then B (reason ^ok$), an admin request with a bad reason hits A."""
        # Arrange
        evaluator = make_evaluator(
            {"name": "A", "roles_regex": ".*admin.*"},
            {"name": "B", "reason_regex": "^ok$"},
        )

        # Act
        rule = evaluator.decide(make_request(["db-admin"], "not ok"))

        # Assert
        assert rule is not None
        assert rule.name == "A"

    def test_reason_pattern_is_acceptable_justification(self) -> None:
        evaluator = make_evaluator({"name": "justify", "reason_regex": "^justification:.+"})

        denied = evaluator.decide(make_request(["dev"], "please"))
        allowed = evaluator.decide(make_request(["dev"], "justification: urgent fix"))

        assert denied is not None and denied.name == "justify"
        assert allowed is None

    def test_justified_rule_continues_to_next_rule(self) -> None:
        # Arrange
        evaluator = make_evaluator(
            {"name": "ticket", "roles_regex": "admin", "reason_regex": "JIRA-[0-9]+"},
            {"name": "no-prod", "roles_regex": "prod"},
        )

        # Act
        rule = evaluator.decide(make_request(["admin", "prod-reader"], "JIRA-42"))

        # Assert
        assert rule is not None
        assert rule.name == "no-prod"

    def test_non_applicable_rule_is_skipped(self) -> None:
        evaluator = make_evaluator({"name": "admins", "roles_regex": "admin"})

        assert evaluator.decide(make_request(["viewer"], "")) is None

    def test_rule_without_reason_denies_on_role_alone(self) -> None:
        evaluator = make_evaluator({"name": "no-root", "roles_regex": "^root$"})

        rule = evaluator.decide(make_request(["root"], "JIRA-1 very good reason"))

        assert rule is not None and rule.name == "no-root"

    def test_empty_reason_fails_reason_pattern(self) -> None:
        evaluator = make_evaluator({"name": "need-reason", "reason_regex": ".+"})

        assert evaluator.decide(make_request(["dev"], "")) is not None

    def test_rule_with_no_constraints_denies_everything(self) -> None:
        evaluator = make_evaluator({"name": "lockdown"})

        assert evaluator.decide(make_request([], "")).name == "lockdown"

    def test_decide_is_pure(self) -> None:
        """decide() does not change the request or the rules and is repeatable."""
        # Arrange
        evaluator = make_evaluator(
            {"name": "A", "roles_regex": "admin", "reason_regex": "^ok$"},
            {"name": "B"},
        )
        request = make_request(["db-admin"], "nope")
        request_before = make_request(["db-admin"], "nope")
        rules_before = evaluator.rules

        # Act
        first = evaluator.decide(request)
        second = evaluator.decide(request)

        # Assert
        assert first is second
        assert request == request_before
        assert evaluator.rules == rules_before


class TestExplain:
    """Tests for PolicyEvaluator.explain."""

    def test_trace_stops_at_triggering_rule(self) -> None:
        # Arrange
        evaluator = make_evaluator(
            {"name": "viewers", "roles_regex": "^viewer$"},
            {"name": "ticket", "roles_regex": "admin", "reason_regex": "JIRA"},
            {"name": "catch-all"},
            {"name": "never-reached"},
        )

        # Act
        traces = evaluator.explain(make_request(["db-admin"], "JIRA-1"))

        # Assert
        assert [(t.rule.name, t.outcome) for t in traces] == [
            ("viewers", "not_applicable"),
            ("ticket", "justified"),
            ("catch-all", "triggered"),
        ]
        assert traces[1].matched_role == "db-admin"

    def test_explain_agrees_with_decide(self) -> None:
        evaluator = make_evaluator(
            {"name": "A", "roles_regex": "admin", "reason_regex": "^ok$"},
            {"name": "B", "reason_regex": "ticket"},
        )
        request = make_request(["admin"], "ok")

        traces = evaluator.explain(request)
        rule = evaluator.decide(request)

        assert rule is not None
        assert traces[-1].outcome == "triggered"
        assert traces[-1].rule is rule

    def test_rule_count(self) -> None:
        assert make_evaluator({"name": "a"}, {"name": "b"}).rule_count == 2
