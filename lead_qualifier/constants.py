"""
Shared constants for flows, state types and intents.

Usage:
    from lead_qualifier.constants import Flow, StateType, TERMINAL_STATE_TYPES
"""

from enum import Enum
from typing import FrozenSet, Tuple


class Flow(str, Enum):
    """Conversation purpose; gates which states and content apply."""
    BUY = "buy"
    SELL = "sell"
    BROWSE = "browse"


class StateType(str, Enum):
    """
    Known state types. Configs may use any other string (e.g. an
    objection handling state); only the terminal markers are special.
    """
    DATA_COLLECTION = "data_collection"
    LEAD_CAPTURE = "lead_capture"
    COMPLETION = "completion"


TERMINAL_STATE_TYPES: FrozenSet[str] = frozenset({
    StateType.LEAD_CAPTURE.value,
    StateType.COMPLETION.value,
})

# Ids used by flows generated from a plain question list
LEAD_CAPTURE_STATE_ID = "__lead_capture__"
COMPLETION_STATE_ID = "__completion__"

# Profile key read by the intent_set transition condition
INTENT_FIELD = "intent"

# Primary intents of the classify-and-extract contract
INTENT_PRIMARY_VALUES: Tuple[str, ...] = (
    "direct_answer",
    "multi_answer",
    "clarification_question",
    "objection",
    "chitchat",
    "off_topic",
    "change_previous_answer",
    "escalation_request",
    "attempted_answer_but_unclear",
)

ANSWER_INTENTS: FrozenSet[str] = frozenset({"direct_answer", "multi_answer"})
DEFAULT_INTENT = "clarification_question"

OBJECTION_TYPES: Tuple[str, ...] = (
    "privacy_refusal",
    "trust_issue",
    "time_constraint",
    "price_sensitivity",
    "not_ready",
)

# Objection type used when the classifier flags an objection without a type
GENERAL_OBJECTION = "general"

TONES: Tuple[str, ...] = ("empathetic", "firm", "playful", "educational")
