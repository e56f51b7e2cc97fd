"""Rules commands for teleport-autoreviewer CLI.

Commands:
    rules validate  Compile every rule and report errors
    rules check     Show how a hypothetical request would be reviewed
"""

from __future__ import annotations

__all__ = [
    "rules",
]

import sys
from pathlib import Path

import click

from teleport_autoreviewer.exceptions import ConfigurationError
from teleport_autoreviewer.pdp.engine import PolicyEvaluator
from teleport_autoreviewer.pdp.rules import CompiledRule, compile_rules
from teleport_autoreviewer.plane.models import AccessRequest, RequestState

from ..options import config_option, load_config_or_exit
from ..styling import style_dim, style_error, style_header, style_label, style_success, style_warning


def _compile_or_exit(config_path: Path) -> tuple[PolicyEvaluator, str]:
    config = load_config_or_exit(config_path)
    try:
        compiled = compile_rules(config.rejection.rules)
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(e.exit_code)
    return PolicyEvaluator(compiled), config.rejection.default_message


def _describe(rule: CompiledRule) -> str:
    roles = rule.roles_matcher.pattern if rule.roles_matcher else "(any role)"
    reason = rule.reason_matcher.pattern if rule.reason_matcher else "(always deny)"
    return f"roles={roles} reason={reason}"


@click.group()
def rules() -> None:
    """Rejection rule tools."""
    pass


@rules.command("validate")
@config_option
def validate(config_path: Path) -> None:
    """Compile all rejection rules in the config.

    Exits 16 if the config or any pattern is invalid.
    """
    evaluator, _ = _compile_or_exit(config_path)
    if evaluator.rule_count == 0:
        click.echo(style_warning("No rejection rules configured; every request is left for review"))
    click.echo(style_success(f"{evaluator.rule_count} rule(s) compiled from {config_path}"))
    for index, rule in enumerate(evaluator.rules, start=1):
        click.echo(f"  {index}. {rule.name} " + style_dim(_describe(rule)))


@rules.command("check")
@click.option("--role", "-r", "roles", multiple=True, required=True, help="Requested role (repeatable)")
@click.option("--reason", default="", help="Request reason")
@config_option
def check(roles: tuple[str, ...], reason: str, config_path: Path) -> None:
    """Show which rule, if any, would deny a request.

    Examples:
        teleport-autoreviewer rules check --role db-admin --reason "JIRA-123 fix"
    """
    evaluator, default_message = _compile_or_exit(config_path)
    request = AccessRequest(
        id="cli-check",
        requested_roles=frozenset(roles),
        reason=reason,
        state=RequestState.PENDING,
    )

    click.echo(style_header("Evaluation"))
    traces = evaluator.explain(request)
    for trace in traces:
        detail = trace.outcome
        if trace.matched_role:
            detail += f" (role {trace.matched_role})"
        click.echo(f"  {trace.rule.name}: {detail}")
    if not traces:
        click.echo(style_dim("  No rules configured."))

    rule = evaluator.decide(request)
    click.echo()
    if rule is None:
        click.echo(style_label("Decision") + " left pending for human review")
        return
    click.echo(style_label("Decision") + f" denied by {rule.name}")
    click.echo(style_label("Message") + f" {rule.message or default_message}")
