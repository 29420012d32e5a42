"""
Prompt construction for the classify-and-extract call.

One LLM call both classifies the user's intent and extracts values for
every collectable field of the flow, so "buying in Halifax, around 500k"
fills location and budget at once even if only location was asked.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from lead_qualifier.constants import INTENT_PRIMARY_VALUES, OBJECTION_TYPES, TONES
from lead_qualifier.settings import settings
from lead_qualifier.state_machine.engine import get_all_collectable_fields, get_state_by_id
from lead_qualifier.state_machine.models import (
    ConversationState,
    FieldSpec,
    StateMachineConfig,
    StateMachineContext,
)


@dataclass
class ClassificationRequest:
    """
    Everything the prompt is built from.

    Attributes:
        user_message: The latest user message
        state_id / state_goal / state_prompt / state_collects: Current state
        collectable_fields: All fields of the flow, deduplicated
        already_collected: Profile values collected so far
        flow_name: buy / sell / browse
        recent_context: Last few messages, oldest first, "role: text"
    """
    user_message: str
    state_id: str = ""
    state_goal: str = ""
    state_prompt: str = ""
    state_collects: List[FieldSpec] = field(default_factory=list)
    collectable_fields: List[FieldSpec] = field(default_factory=list)
    already_collected: Dict[str, str] = field(default_factory=dict)
    flow_name: str = ""
    recent_context: List[str] = field(default_factory=list)


def build_classification_request(
    config: StateMachineConfig,
    context: StateMachineContext,
    user_message: str,
    history: Optional[Sequence[str]] = None
) -> ClassificationRequest:
    """Assemble the request for the current state of a session."""
    state: Optional[ConversationState] = get_state_by_id(config, context.current_state_id)
    collectable = get_all_collectable_fields(config)
    known_keys = {f.mapping_key for f in collectable}
    context_size = int(settings.get_nested("classifier.context_messages", 5))

    return ClassificationRequest(
        user_message=user_message,
        state_id=state.id if state else context.current_state_id,
        state_goal=state.goal if state else "",
        state_prompt=state.prompt if state else "",
        state_collects=list(state.collects) if state else [],
        collectable_fields=collectable,
        already_collected={
            k: v for k, v in context.user_input.items() if k in known_keys and v
        },
        flow_name=config.flow,
        recent_context=list(history or [])[-context_size:] if context_size > 0 else [],
    )


def _quoted_choices(values: Sequence[str]) -> str:
    return " | ".join(f'"{v}"' for v in values)


def build_classify_and_extract_prompt(request: ClassificationRequest) -> str:
    """Render the prompt text for a request."""
    field_lines = []
    for spec in request.collectable_fields:
        collected = request.already_collected.get(spec.mapping_key)
        status = f'(already collected: "{collected}")' if collected else "(not yet collected)"
        field_lines.append(
            f"  - {spec.mapping_key}: {spec.label} (hint: {spec.extraction_hint or spec.label}) {status}"
        )

    current_lines = [
        f"  - {spec.mapping_key}: {spec.extraction_hint or spec.label}"
        for spec in request.state_collects
    ]

    sections = [
        f"You are a conversation analyst for a {request.flow_name or 'real estate'} assistant.",
        "",
        "CURRENT STATE:",
        f"  Goal: {request.state_goal or '(none)'}",
        f'  Question asked: "{request.state_prompt}"',
        "  Fields this state collects:",
        "\n".join(current_lines) or "  (none)",
        "",
        "ALL COLLECTABLE FIELDS:",
        "\n".join(field_lines) or "  (none)",
        "",
    ]

    if request.recent_context:
        sections.extend(["RECENT CONVERSATION:", "\n".join(request.recent_context), ""])

    sections.extend([
        f'USER JUST SAID: "{request.user_message}"',
        "",
        "TASK: Classify the user's intent and extract every field value present in the message.",
        "",
        "Return valid JSON with exactly this schema:",
        "{",
        '  "intent": {',
        f'    "primary": {_quoted_choices(INTENT_PRIMARY_VALUES)},',
        f'    "objection": {_quoted_choices(OBJECTION_TYPES)} | null,',
        '    "confidence": number (0.0 to 1.0),',
        f'    "suggestedTone": {_quoted_choices(TONES)} | null',
        "  },",
        '  "extracted": [',
        '    { "mappingKey": "fieldName", "value": "extracted value", "confidence": number (0.0 to 1.0) }',
        "  ],",
        '  "correction": { "mappingKey": "fieldName", "newValue": "corrected value" } or null',
        "}",
        "",
        "RULES:",
        '- Clear answer to the current question -> "direct_answer"',
        '- Values for several fields in one message -> "multi_answer", extract all of them',
        '- Wants to change an earlier answer -> "change_previous_answer" and fill correction',
        '- Asks a question back -> "clarification_question"',
        '- Refuses or hesitates -> "objection" with the objection type',
        '- Unrelated to the conversation -> "off_topic"',
        "- Extract every field you can detect, not only the current question's",
        "- Use only mappingKey values from ALL COLLECTABLE FIELDS",
        "- confidence reflects how certain each extraction is",
        "- Set correction only when the user explicitly changes a previous answer",
        "- Output raw JSON only. No markdown, no explanations.",
    ])

    return "\n".join(sections)
