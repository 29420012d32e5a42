"""Content catalog matching."""

from lead_qualifier.content.models import ApplicableWhen, ContentItem
from lead_qualifier.content.matcher import MatchResult, is_applicable, match, rank

__all__ = [
    "ApplicableWhen",
    "ContentItem",
    "MatchResult",
    "is_applicable",
    "match",
    "rank",
]
