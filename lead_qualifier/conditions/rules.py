"""
Rule tree models for content and transition gating.

A rule tree is a closed union of two node kinds:
- ConditionRule: a leaf comparing one profile field with a value
- RuleGroup: an AND/OR combination of child nodes

Trees are immutable. Children are frozen into tuples when a group is
built and every child must already exist at that point, so a group can
never contain itself (directly or transitively).

Dict format (YAML / JSON):
    {"logic": "AND", "rules": [
        {"field": "timeline", "operator": "equals", "value": "0-3", "weight": 10},
        {"logic": "OR", "rules": [...]}
    ]}

A dict is a group iff it has a "logic" key.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class RuleValidationError(Exception):
    """Raised when a rule tree cannot be built from its definition."""

    def __init__(self, definition: Any, reason: str):
        self.definition = definition
        self.reason = reason
        super().__init__(f"Invalid rule {definition!r}: {reason}")


class Operator(str, Enum):
    """Comparison operators for ConditionRule."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    INCLUDES = "includes"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"


class Logic(str, Enum):
    """Combinators for RuleGroup."""
    AND = "AND"
    OR = "OR"


RuleValue = Union[str, Tuple[str, ...]]


def _normalize_value(value: Any) -> RuleValue:
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class ConditionRule:
    """
    Leaf condition.

    Attributes:
        field: Profile key to read
        operator: How to compare
        value: Scalar string or tuple of strings (for includes/between)
        weight: Weight in the match score; None means the default weight
    """
    field: str
    operator: Operator
    value: RuleValue
    weight: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "value", _normalize_value(self.value))

    def describe(self) -> str:
        """Short human readable form, e.g. "budget greater_than 400000"."""
        op = self.operator.value if isinstance(self.operator, Operator) else str(self.operator)
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return f"{self.field} {op} {value}"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "field": self.field,
            "operator": self.operator.value if isinstance(self.operator, Operator) else self.operator,
            "value": list(self.value) if isinstance(self.value, tuple) else self.value,
        }
        if self.weight is not None:
            result["weight"] = self.weight
        return result


@dataclass(frozen=True)
class RuleGroup:
    """
    AND/OR combination of rule nodes.

    An empty AND group is true and an empty OR group is false
    (see evaluator.evaluate).
    """
    logic: Logic
    rules: Tuple["RuleNode", ...] = ()

    def __post_init__(self):
        rules = tuple(self.rules)
        for child in rules:
            if not isinstance(child, (ConditionRule, RuleGroup)):
                raise RuleValidationError(
                    child,
                    f"group children must be ConditionRule or RuleGroup, got {type(child).__name__}"
                )
        object.__setattr__(self, "rules", rules)

    def iter_conditions(self) -> Iterator[ConditionRule]:
        """Yield every leaf rule, depth first."""
        for child in self.rules:
            if isinstance(child, RuleGroup):
                yield from child.iter_conditions()
            else:
                yield child

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logic": self.logic.value,
            "rules": [child.to_dict() for child in self.rules],
        }


RuleNode = Union[ConditionRule, RuleGroup]


def is_rule_group(definition: Any) -> bool:
    """Dict discrimination: groups carry a "logic" key, leaves do not."""
    return isinstance(definition, dict) and "logic" in definition


def parse_condition_rule(definition: Dict[str, Any]) -> ConditionRule:
    """
    Build a ConditionRule from a dict.

    Raises:
        RuleValidationError: If field/operator/value/weight are malformed
    """
    if not isinstance(definition, dict):
        raise RuleValidationError(definition, "expected a mapping")

    field_name = definition.get("field")
    if not isinstance(field_name, str) or not field_name:
        raise RuleValidationError(definition, "'field' must be a non-empty string")

    try:
        operator = Operator(definition.get("operator"))
    except ValueError:
        raise RuleValidationError(
            definition,
            f"unknown operator {definition.get('operator')!r}"
        )

    if "value" not in definition:
        raise RuleValidationError(definition, "'value' is required")
    value = definition["value"]
    if isinstance(value, dict):
        raise RuleValidationError(definition, "'value' must be a string or a list")

    weight = definition.get("weight")
    if weight is not None:
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight < 0:
            raise RuleValidationError(definition, "'weight' must be a non-negative number")
        weight = float(weight)

    return ConditionRule(field=field_name, operator=operator, value=value, weight=weight)


def parse_rule_group(definition: Dict[str, Any]) -> RuleGroup:
    """
    Build a RuleGroup (recursively) from a dict.

    Raises:
        RuleValidationError: If the definition or any child is malformed
    """
    if not is_rule_group(definition):
        raise RuleValidationError(definition, "a rule group needs a 'logic' key")

    logic_raw = definition.get("logic")
    try:
        logic = Logic(str(logic_raw).upper())
    except ValueError:
        raise RuleValidationError(definition, f"unknown logic {logic_raw!r}")

    children = definition.get("rules") or []
    if not isinstance(children, list):
        raise RuleValidationError(definition, "'rules' must be a list")

    return RuleGroup(logic=logic, rules=tuple(parse_rule_node(child) for child in children))


def parse_rule_node(definition: Dict[str, Any]) -> RuleNode:
    """Build either node kind from a dict."""
    if is_rule_group(definition):
        return parse_rule_group(definition)
    return parse_condition_rule(definition)


def parse_rule_groups(definitions: Optional[List[Dict[str, Any]]]) -> Tuple[RuleGroup, ...]:
    """Build a tuple of top-level groups. None or empty -> ()."""
    if not definitions:
        return ()
    if not isinstance(definitions, list):
        raise RuleValidationError(definitions, "rule groups must be a list")
    return tuple(parse_rule_group(d) for d in definitions)
