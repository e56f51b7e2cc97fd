"""Policy Decision Point (PDP) - rejection rule evaluation.

The PDP is intentionally stateless and side-effect free.
All I/O (listing, watching, denying) happens in the watcher.

Structure:
    rules.py          - CompiledRule and compile_rules()
    engine.py         - PolicyEvaluator (decide / explain)
"""

from teleport_autoreviewer.pdp.engine import PolicyEvaluator, RuleTrace
from teleport_autoreviewer.pdp.rules import CompiledRule, compile_rules

__all__ = [
    # Compilation
    "CompiledRule",
    "compile_rules",
    # Evaluation
    "PolicyEvaluator",
    "RuleTrace",
]
