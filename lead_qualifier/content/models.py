"""Content catalog models (advice items, action steps)."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from lead_qualifier.conditions import RuleGroup, parse_rule_groups


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key; catalogs may use snake_case or camelCase."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class ApplicableWhen:
    """
    Gate for a content item.

    Attributes:
        flow: Flows the item applies to; None means every flow
        rule_groups: All must evaluate true; empty means universal
        min_match_score: Score threshold; None means the configured default
    """
    flow: Optional[Tuple[str, ...]] = None
    rule_groups: Tuple[RuleGroup, ...] = ()
    min_match_score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplicableWhen":
        flow = _pick(data, "flow", "flows")
        if isinstance(flow, str):
            flow = (flow,)
        elif flow is not None:
            flow = tuple(str(f) for f in flow)

        min_score = _pick(data, "min_match_score", "minMatchScore")
        if min_score is not None:
            min_score = float(min_score)

        return cls(
            flow=flow,
            rule_groups=parse_rule_groups(_pick(data, "rule_groups", "ruleGroups")),
            min_match_score=min_score,
        )


@dataclass(frozen=True)
class ContentItem:
    """
    Any matchable content.

    `applicable_when` None means the item applies everywhere.
    `payload` carries display data the matcher never reads.
    """
    id: str
    title: str = ""
    priority: int = 0
    applicable_when: Optional[ApplicableWhen] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentItem":
        """
        Build an item from a catalog entry.

        Raises:
            RuleValidationError: If the rule groups are malformed
            ValueError: If the entry has no id
        """
        item_id = _pick(data, "id", "stepId", "adviceId")
        if item_id is None or str(item_id) == "":
            raise ValueError(f"Content entry without id: {data!r}")

        conditions = _pick(data, "applicable_when", "applicableWhen")
        priority = _pick(data, "priority", "defaultPriority", default=0)

        known = {
            "id", "stepId", "adviceId", "title", "priority", "defaultPriority",
            "applicable_when", "applicableWhen",
        }
        return cls(
            id=str(item_id),
            title=str(data.get("title", "")),
            priority=int(priority or 0),
            applicable_when=ApplicableWhen.from_dict(conditions) if isinstance(conditions, dict) else None,
            payload={k: v for k, v in data.items() if k not in known},
        )
