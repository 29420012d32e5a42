"""
Rule evaluation for content and transition gating.

Main components:
- ConditionRule / RuleGroup: immutable rule tree (rules.py)
- evaluate / score / explain: pure evaluation functions (evaluator.py)
- EvaluationTrace: which leaves passed, for reporting (trace.py)
"""

from lead_qualifier.conditions.rules import (
    ConditionRule,
    Logic,
    Operator,
    RuleGroup,
    RuleNode,
    RuleValidationError,
    is_rule_group,
    parse_condition_rule,
    parse_rule_group,
    parse_rule_groups,
    parse_rule_node,
)
from lead_qualifier.conditions.evaluator import (
    evaluate,
    evaluate_node,
    evaluate_rule,
    explain,
    iter_leaf_rules,
    parse_number,
    rule_weight,
    score,
)
from lead_qualifier.conditions.trace import ConditionEntry, EvaluationTrace

__all__ = [
    "ConditionRule",
    "Logic",
    "Operator",
    "RuleGroup",
    "RuleNode",
    "RuleValidationError",
    "is_rule_group",
    "parse_condition_rule",
    "parse_rule_group",
    "parse_rule_groups",
    "parse_rule_node",
    "evaluate",
    "evaluate_node",
    "evaluate_rule",
    "explain",
    "iter_leaf_rules",
    "parse_number",
    "rule_weight",
    "score",
    "ConditionEntry",
    "EvaluationTrace",
]
