"""
Content Matcher.

Ranks a catalog of content items (advice, action steps) for a user
profile and flow using the rule evaluator.

Admission:
1. Flow gate: items restricted to other flows are excluded
2. No rule groups: universal, score 1.0
3. Otherwise every group must evaluate true AND the weighted score
   must reach min_match_score (default from settings)

Ordering: score descending, then priority ascending. The sort is stable
so remaining ties keep catalog order.

Usage:
    from lead_qualifier.content import match

    items = match(catalog, profile, Flow.BUY, limit=3)
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Union

from lead_qualifier.conditions import evaluate, explain, score
from lead_qualifier.constants import Flow
from lead_qualifier.content.models import ContentItem
from lead_qualifier.logger import logger
from lead_qualifier.settings import settings


@dataclass
class MatchResult:
    """
    Applicability of one item.

    Attributes:
        item: The content item
        applicable: Whether it is admitted
        match_score: Weighted rule score (1.0 for universal items)
        reason: Short explanation for debugging / admin UIs
        matched_rules: Readable forms of the leaf rules that passed
    """
    item: ContentItem
    applicable: bool
    match_score: float
    reason: str = ""
    matched_rules: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item.id,
            "applicable": self.applicable,
            "match_score": round(self.match_score, 4),
            "reason": self.reason,
            "matched_rules": list(self.matched_rules),
        }


def _default_min_score() -> float:
    return float(settings.get_nested("matcher.default_min_match_score", 0.5))


def is_applicable(
    item: ContentItem,
    profile: Mapping[str, str],
    flow: Union[Flow, str]
) -> MatchResult:
    """Check one item against the flow and profile."""
    conditions = item.applicable_when

    if conditions is None:
        return MatchResult(item, True, 1.0, "Universal content (no conditions)")

    if conditions.flow is not None and flow not in conditions.flow:
        return MatchResult(
            item, False, 0.0,
            f"Flow mismatch: content is for {', '.join(conditions.flow) or 'no flow'}"
        )

    if not conditions.rule_groups:
        return MatchResult(item, True, 1.0, "Universal content")

    trace = explain(conditions.rule_groups, profile, name=item.id)
    all_groups_match = all(evaluate(group, profile) for group in conditions.rule_groups)
    match_score = score(conditions.rule_groups, profile)

    # Only None falls back to the default; an explicit 0 admits any score
    min_score = conditions.min_match_score
    if min_score is None:
        min_score = _default_min_score()

    if all_groups_match and match_score >= min_score:
        return MatchResult(
            item, True, match_score,
            f"Rules matched with score {match_score * 100:.0f}%",
            trace.passed,
        )

    if not all_groups_match:
        reason = "Rule groups not satisfied"
    else:
        reason = (
            f"Match score {match_score * 100:.0f}% below threshold {min_score * 100:.0f}%"
        )
    return MatchResult(item, False, match_score, reason, trace.passed)


def rank(
    catalog: Sequence[ContentItem],
    profile: Mapping[str, str],
    flow: Union[Flow, str],
    limit: Optional[int] = None
) -> List[MatchResult]:
    """Applicable items with their scores, best first, at most `limit`."""
    if limit is None:
        limit = int(settings.get_nested("matcher.default_limit", 5))
    if limit <= 0:
        return []

    results = [is_applicable(item, profile, flow) for item in catalog]
    admitted = [r for r in results if r.applicable]
    admitted.sort(key=lambda r: (-r.match_score, r.item.priority))

    logger.debug(
        "Content ranked",
        flow=getattr(flow, "value", flow),
        catalog=len(catalog),
        admitted=len(admitted),
        limit=limit,
    )
    return admitted[:limit]


def match(
    catalog: Sequence[ContentItem],
    profile: Mapping[str, str],
    flow: Union[Flow, str],
    limit: Optional[int] = None
) -> List[ContentItem]:
    """Applicable items ordered by score desc, priority asc; capped at `limit`."""
    return [result.item for result in rank(catalog, profile, flow, limit)]
