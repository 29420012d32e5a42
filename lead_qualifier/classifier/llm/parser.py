"""
Parsing of the classify-and-extract response.

The LLM output is untrusted free text that is supposed to be JSON.
parse_classify_and_extract_response() never raises: anything it cannot
use is replaced by a default.

Defaults:
- intent.primary          -> "clarification_question"
- intent.confidence       -> 0.5 (settings: classifier.default_intent_confidence)
- extracted[].confidence  -> 0.7 (settings: classifier.default_extraction_confidence)
- extracted entries without a non-empty mappingKey or value are dropped
- correction is kept only when mappingKey is a non-empty string
"""

import json
import logging
import math
import re
import typing
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from lead_qualifier.classifier.llm.schemas import (
    ClassifyAndExtractResult,
    Correction,
    ExtractionItem,
    IntentPrimary,
    IntentResult,
    ObjectionType,
    Tone,
)
from lead_qualifier.constants import DEFAULT_INTENT
from lead_qualifier.settings import settings

logger = logging.getLogger(__name__)

_INTENTS = frozenset(typing.get_args(IntentPrimary))
_OBJECTIONS = frozenset(typing.get_args(ObjectionType))
_TONES = frozenset(typing.get_args(Tone))

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def _intent_default_confidence() -> float:
    return float(settings.get_nested("classifier.default_intent_confidence", 0.5))


def _extraction_default_confidence() -> float:
    return float(settings.get_nested("classifier.default_extraction_confidence", 0.7))


def _confidence(value: Any, default: float) -> float:
    """Numeric confidence clamped to [0, 1]; anything else -> default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    try:
        number = float(value)
    except (OverflowError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, 0.0), 1.0)


def _text(value: Any) -> str:
    """Scalar -> stripped string; None and containers -> ""."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def _choice(value: Any, allowed: frozenset) -> Optional[str]:
    """Value if it is one of the allowed strings, else None."""
    if isinstance(value, str) and value in allowed:
        return value
    return None


def _load(raw: Any) -> Optional[Dict[str, Any]]:
    """Turn raw model output into a dict, or None."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        # Prose around the JSON object: take the outermost braces
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start:end + 1])
        except (ValueError, RecursionError):
            return None

    return data if isinstance(data, dict) else None


def _parse_intent(data: Any) -> IntentResult:
    data = data if isinstance(data, dict) else {}

    return IntentResult(
        primary=_choice(data.get("primary"), _INTENTS) or DEFAULT_INTENT,
        objection=_choice(data.get("objection"), _OBJECTIONS),
        confidence=_confidence(data.get("confidence"), _intent_default_confidence()),
        suggested_tone=_choice(data.get("suggestedTone", data.get("suggested_tone")), _TONES),
    )


def _parse_extracted(data: Any) -> List[ExtractionItem]:
    if not isinstance(data, list):
        return []

    default_confidence = _extraction_default_confidence()
    items = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        mapping_key = _text(entry.get("mappingKey", entry.get("mapping_key")))
        value = _text(entry.get("value"))
        if not mapping_key or not value:
            continue
        items.append(ExtractionItem(
            mapping_key=mapping_key,
            value=value,
            confidence=_confidence(entry.get("confidence"), default_confidence),
        ))
    return items


def _parse_correction(data: Any) -> Optional[Correction]:
    if not isinstance(data, dict):
        return None
    mapping_key = data.get("mappingKey", data.get("mapping_key"))
    if not isinstance(mapping_key, str) or not mapping_key.strip():
        return None
    return Correction(
        mapping_key=mapping_key.strip(),
        new_value=_text(data.get("newValue", data.get("new_value"))),
    )


def default_result() -> ClassifyAndExtractResult:
    """Result used when nothing usable came back."""
    return ClassifyAndExtractResult(
        intent=IntentResult(primary=DEFAULT_INTENT, confidence=_intent_default_confidence()),
    )


def parse_classify_and_extract_response(raw: Any) -> ClassifyAndExtractResult:
    """
    Parse the LLM response into a well-formed result.

    Args:
        raw: Parsed JSON dict, JSON text (optionally in a ``` fence), or anything

    Returns:
        ClassifyAndExtractResult, defaults filled in; never raises
    """
    data = _load(raw)
    if data is None:
        logger.warning("Unparseable classify-and-extract response, using defaults")
        return default_result()

    try:
        return ClassifyAndExtractResult(
            intent=_parse_intent(data.get("intent")),
            extracted=_parse_extracted(data.get("extracted")),
            correction=_parse_correction(data.get("correction")),
        )
    except ValidationError as e:
        logger.warning("Classify-and-extract response failed validation: %s", e)
        return default_result()
