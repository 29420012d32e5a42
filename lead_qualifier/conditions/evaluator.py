"""
Rule Evaluator.

Pure functions over immutable rule trees and a flat profile
(Dict[str, str]). Nothing here raises on bad data: a rule that cannot
be evaluated is simply false.

Usage:
    from lead_qualifier.conditions import evaluate, score

    if evaluate(group, profile):
        ...
    match_score = score([group], profile)  # 0.0 .. 1.0
"""

import logging
import math
import re
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from lead_qualifier.conditions.rules import (
    ConditionRule,
    Logic,
    Operator,
    RuleGroup,
    RuleNode,
)
from lead_qualifier.conditions.trace import EvaluationTrace
from lead_qualifier.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = settings.get_nested("matcher.default_weight", 5)

# Leading numeric prefix: "500000", "-1.5", ".5", "1e6", "500k" -> 500
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a float from the start of a value, or None.

    Only the leading numeric prefix is used ("500k" -> 500.0),
    anything without one is None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_PREFIX.match(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def rule_weight(rule: ConditionRule, default_weight: Optional[float] = None) -> float:
    """
    Weight of a leaf, falling back to the default when unset.

    Only None counts as unset: an explicit 0 stays 0 and the leaf adds
    nothing to the score.
    """
    if rule.weight is None:
        return float(DEFAULT_WEIGHT if default_weight is None else default_weight)
    return float(rule.weight)


def evaluate_rule(rule: ConditionRule, profile: Mapping[str, str]) -> bool:
    """
    Evaluate one leaf rule.

    A missing or empty profile value is false for every operator.
    """
    user_value = profile.get(rule.field)
    if user_value is None or user_value == "":
        return False
    user_value = str(user_value)

    operator = rule.operator
    expected = rule.value

    if operator == Operator.EQUALS:
        return user_value == expected

    if operator == Operator.NOT_EQUALS:
        return user_value != expected

    if operator == Operator.INCLUDES:
        if isinstance(expected, tuple):
            return user_value in expected
        return user_value == expected

    if operator in (Operator.GREATER_THAN, Operator.LESS_THAN):
        if isinstance(expected, tuple):
            return False
        actual_num = parse_number(user_value)
        expected_num = parse_number(expected)
        if actual_num is None or expected_num is None:
            return False
        if operator == Operator.GREATER_THAN:
            return actual_num > expected_num
        return actual_num < expected_num

    if operator == Operator.BETWEEN:
        if not isinstance(expected, tuple) or len(expected) != 2:
            return False
        actual_num = parse_number(user_value)
        low = parse_number(expected[0])
        high = parse_number(expected[1])
        if actual_num is None or low is None or high is None:
            return False
        return low <= actual_num <= high

    logger.debug("Unknown operator %r on field %s", operator, rule.field)
    return False


def evaluate_node(node: RuleNode, profile: Mapping[str, str]) -> bool:
    if isinstance(node, RuleGroup):
        return evaluate(node, profile)
    return evaluate_rule(node, profile)


def evaluate(group: RuleGroup, profile: Mapping[str, str]) -> bool:
    """
    Evaluate a rule group recursively.

    AND needs every child true, so an empty AND group is true.
    OR needs at least one child true, so an empty OR group is false.
    """
    results = (evaluate_node(child, profile) for child in group.rules)
    if group.logic == Logic.AND:
        return all(results)
    if group.logic == Logic.OR:
        return any(results)
    return False


def iter_leaf_rules(groups: Iterable[RuleGroup]) -> Iterator[ConditionRule]:
    """All leaves of all groups, nesting flattened."""
    for group in groups:
        yield from group.iter_conditions()


def score(
    groups: Sequence[RuleGroup],
    profile: Mapping[str, str],
    default_weight: Optional[float] = None
) -> float:
    """
    Weighted fraction of leaf rules that pass, across all groups.

    Nesting and AND/OR logic are ignored for weighting. Returns 0.0 when
    there are no leaves or the total weight is zero.
    """
    total_weight = 0.0
    matched_weight = 0.0

    for rule in iter_leaf_rules(groups):
        weight = rule_weight(rule, default_weight)
        total_weight += weight
        if evaluate_rule(rule, profile):
            matched_weight += weight

    if total_weight <= 0:
        return 0.0
    return matched_weight / total_weight


def explain(
    groups: Sequence[RuleGroup],
    profile: Mapping[str, str],
    name: str = "",
    default_weight: Optional[float] = None
) -> EvaluationTrace:
    """Per-leaf PASS/FAIL trace for the given groups."""
    trace = EvaluationTrace(rule_name=name)
    for rule in iter_leaf_rules(groups):
        field_values = {rule.field: profile[rule.field]} if rule.field in profile else {}
        trace.record(
            condition_name=rule.describe(),
            result=evaluate_rule(rule, profile),
            weight=rule_weight(rule, default_weight),
            field_values=field_values,
        )
    trace.finish()
    return trace
