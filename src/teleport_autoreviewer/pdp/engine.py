"""Policy evaluator - decide whether a pending request is denied.

Evaluation flow, per rule in declaration order:
1. Role applicability: a rule with ``roles_matcher`` applies only if at least
   one requested role matches it (OR). A rule without one always applies.
2. Reason check: an applicable rule with ``reason_matcher`` triggers when the
   reason does NOT match (the pattern describes acceptable justifications).
   An applicable rule without one triggers unconditionally.
3. The first triggering rule wins. If none triggers, the request is left
   Pending for human review.

Design principles:
1. First match wins; rule order is the only precedence
2. The evaluator never approves: it denies or abstains
3. Pure and side-effect free: no I/O, no mutation of request or rules
"""

from __future__ import annotations

__all__ = [
    "PolicyEvaluator",
    "RuleTrace",
]

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from teleport_autoreviewer.pdp.rules import CompiledRule
from teleport_autoreviewer.plane.models import AccessRequest


@dataclass(frozen=True, slots=True)
class RuleTrace:
    """How a single rule treated a request.

    Attributes:
        rule: The rule evaluated.
        outcome: "not_applicable" (stage 1 failed), "justified" (reason matched),
            or "triggered" (the rule denies the request).
        matched_role: First requested role that matched roles_matcher, if any.
    """

    rule: CompiledRule
    outcome: Literal["not_applicable", "justified", "triggered"]
    matched_role: str | None = None


class PolicyEvaluator:
    """Evaluates access requests against compiled rejection rules.

    Usage:
        evaluator = PolicyEvaluator(compile_rules(config.rejection.rules))
        rule = evaluator.decide(request)
        if rule is not None:
            # deny with rule.message (or the default message)

    Attributes:
        rules: Compiled rules in evaluation order.
    """

    def __init__(self, rules: Iterable[CompiledRule]) -> None:
        self._rules: tuple[CompiledRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[CompiledRule, ...]:
        return self._rules

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def decide(self, request: AccessRequest) -> CompiledRule | None:
        """Return the first rule that denies the request, or None.

        Args:
            request: Snapshot of the request under review.

        Returns:
            The triggering CompiledRule, or None to leave the request for
            human review.
        """
        for rule in self._rules:
            if not rule.applies_to(request.requested_roles):
                continue
            if not rule.is_justified(request.reason):
                return rule
        return None

    def explain(self, request: AccessRequest) -> list[RuleTrace]:
        """Trace every rule up to and including the triggering one.

        Same algorithm as decide(), but records why each rule did or did not
        trigger. Used for debug logging and the `rules check` command.

        Args:
            request: Snapshot of the request under review.

        Returns:
            One RuleTrace per rule evaluated; the last entry is the
            triggering rule when there is one.
        """
        traces: list[RuleTrace] = []
        for rule in self._rules:
            matched_role = self._first_matching_role(rule, request)
            if rule.roles_matcher is not None and matched_role is None:
                traces.append(RuleTrace(rule=rule, outcome="not_applicable"))
                continue
            if rule.is_justified(request.reason):
                traces.append(RuleTrace(rule=rule, outcome="justified", matched_role=matched_role))
                continue
            traces.append(RuleTrace(rule=rule, outcome="triggered", matched_role=matched_role))
            break
        return traces

    @staticmethod
    def _first_matching_role(rule: CompiledRule, request: AccessRequest) -> str | None:
        if rule.roles_matcher is None:
            return None
        # Sorted so traces are stable across runs (roles are a frozenset)
        for role in sorted(request.requested_roles):
            if rule.roles_matcher.search(role):
                return role
        return None
