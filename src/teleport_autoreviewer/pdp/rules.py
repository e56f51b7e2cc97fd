"""Rule compilation - turn declared rejection rules into matchers.

Compilation runs once at startup. Each rule's ``reason_regex`` and
``roles_regex`` are compiled with Python's ``re`` module; an empty or absent
pattern becomes "no constraint" rather than a pattern matching only "".

A single invalid pattern fails the whole compilation with ConfigurationError,
so a partial rule set is never used.
"""

from __future__ import annotations

__all__ = [
    "CompiledRule",
    "compile_rules",
]

import re
from collections.abc import Iterable
from dataclasses import dataclass

from teleport_autoreviewer.config import RejectionRuleConfig
from teleport_autoreviewer.exceptions import ConfigurationError
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

_logger = get_system_logger()


@dataclass(frozen=True, slots=True)
class CompiledRule:
    """A rejection rule with its patterns compiled.

    Attributes:
        name: Rule identifier from config.
        reason_matcher: Acceptable-justification pattern, or None when the rule
            denies regardless of reason.
        roles_matcher: Role selector, or None when the rule applies to every
            request.
        message: Denial reason; empty means "use the default message".
    """

    name: str
    reason_matcher: re.Pattern[str] | None
    roles_matcher: re.Pattern[str] | None
    message: str

    def applies_to(self, roles: Iterable[str]) -> bool:
        """Stage 1: does any requested role fall under this rule?"""
        if self.roles_matcher is None:
            return True
        return any(self.roles_matcher.search(role) for role in roles)

    def is_justified(self, reason: str) -> bool:
        """Stage 2: does the reason satisfy this rule's justification pattern?

        A rule without a reason pattern never considers a request justified.
        """
        if self.reason_matcher is None:
            return False
        return self.reason_matcher.search(reason) is not None


def _compile_pattern(rule_name: str, pattern: str | None) -> re.Pattern[str] | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(
            f"Rule '{rule_name}': invalid regular expression {pattern!r}: {e}",
            rule_name=rule_name,
            pattern=pattern,
        ) from e


def compile_rules(definitions: Iterable[RejectionRuleConfig]) -> tuple[CompiledRule, ...]:
    """Compile rule definitions in declaration order.

    Args:
        definitions: Ordered rule definitions from config.

    Returns:
        Immutable tuple of compiled rules, same order as declared.

    Raises:
        ConfigurationError: If any pattern is not a valid regular expression.
    """
    compiled = tuple(
        CompiledRule(
            name=definition.name,
            reason_matcher=_compile_pattern(definition.name, definition.reason_regex),
            roles_matcher=_compile_pattern(definition.name, definition.roles_regex),
            message=definition.message,
        )
        for definition in definitions
    )
    _logger.debug(
        {
            "event": "rules_compiled",
            "message": f"Compiled {len(compiled)} rejection rules",
            "rules": [rule.name for rule in compiled],
        }
    )
    return compiled
