"""
Evaluation Trace for rule trees.

Records which leaf rules passed or failed for a profile, with their
weights and the profile values they read. Used to report why a content
item was (not) selected.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ConditionEntry:
    """
    Record of a single leaf rule evaluation.

    Attributes:
        condition_name: Readable form of the rule ("budget greater_than 400000")
        result: Whether the rule passed
        weight: Weight the rule contributes to the match score
        field_values: Profile values the rule read at evaluation time
    """
    condition_name: str
    result: bool
    weight: float = 0.0
    field_values: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition_name,
            "result": self.result,
            "weight": self.weight,
            "field_values": self.field_values,
        }

    def to_compact_string(self) -> str:
        result_str = "PASS" if self.result else "FAIL"
        values_str = ""
        if self.field_values:
            values_str = f" ({', '.join(f'{k}={v}' for k, v in self.field_values.items())})"
        return f"  {self.condition_name}: {result_str} w={self.weight:g}{values_str}"


@dataclass
class EvaluationTrace:
    """
    Trace of leaf rule evaluations for one item.

    Attributes:
        rule_name: What was evaluated (usually a content item id)
        entries: Leaf evaluations in tree order
        start_time: When evaluation started
        end_time: When evaluation completed
    """
    rule_name: str
    entries: List[ConditionEntry] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None

    def record(
        self,
        condition_name: str,
        result: bool,
        weight: float = 0.0,
        field_values: Optional[Dict[str, Any]] = None
    ) -> None:
        self.entries.append(ConditionEntry(
            condition_name=condition_name,
            result=result,
            weight=weight,
            field_values=dict(field_values or {}),
        ))

    def finish(self) -> None:
        self.end_time = datetime.now()

    @property
    def conditions_checked(self) -> int:
        return len(self.entries)

    @property
    def conditions_passed(self) -> int:
        return sum(1 for e in self.entries if e.result)

    @property
    def passed(self) -> List[str]:
        """Names of the rules that passed."""
        return [e.condition_name for e in self.entries if e.result]

    @property
    def failed(self) -> List[str]:
        """Names of the rules that failed."""
        return [e.condition_name for e in self.entries if not e.result]

    @property
    def total_weight(self) -> float:
        return sum(e.weight for e in self.entries)

    @property
    def matched_weight(self) -> float:
        return sum(e.weight for e in self.entries if e.result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "conditions_checked": self.conditions_checked,
            "conditions_passed": self.conditions_passed,
            "matched_weight": self.matched_weight,
            "total_weight": self.total_weight,
            "entries": [e.to_dict() for e in self.entries],
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }

    def to_compact_string(self) -> str:
        """
        Format:
        [RULE] item_id (2/3 passed, 15/20)
          timeline equals 0-3: PASS w=10 (timeline=0-3)
        """
        lines = [
            f"[RULE] {self.rule_name} ({self.conditions_passed}/{self.conditions_checked} passed, "
            f"{self.matched_weight:g}/{self.total_weight:g})"
        ]
        for entry in self.entries:
            lines.append(entry.to_compact_string())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"EvaluationTrace(rule={self.rule_name!r}, "
            f"checked={self.conditions_checked}, "
            f"passed={self.conditions_passed})"
        )
