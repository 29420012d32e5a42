"""
Convert a flat question list into a StateMachineConfig.

Clients that only configured an ordered list of questions get a linear
flow: one data_collection state per question, each advancing once its
answer is collected or its attempts run out, then lead capture, then
completion.

Question dict keys: id, question, order, mapping_key, label, required
(camelCase variants accepted).
"""

from typing import Any, Dict, List, Sequence, Union

from lead_qualifier.constants import COMPLETION_STATE_ID, LEAD_CAPTURE_STATE_ID, Flow, StateType
from lead_qualifier.settings import settings
from lead_qualifier.state_machine.models import (
    ConditionType,
    ConversationState,
    FieldSpec,
    StateMachineConfig,
    Transition,
    TransitionCondition,
)

LEAD_CAPTURE_PROMPT = "Perfect! Let me get your contact info to send your personalized plan."
COMPLETION_PROMPT = "Thank you! Your personalized plan is on its way."


def _state_id(question: Dict[str, Any]) -> str:
    return f"q_{question['id']}"


def questions_to_state_machine(
    questions: Sequence[Dict[str, Any]],
    flow: Union[Flow, str]
) -> StateMachineConfig:
    """
    Build a linear flow from questions.

    Raises:
        ValueError: If a question has no id
    """
    for question in questions:
        if not question.get("id"):
            raise ValueError(f"Question without id: {question!r}")

    ordered = sorted(questions, key=lambda q: q.get("order", 0))
    max_attempts = int(settings.get_nested("engine.default_max_attempts", 3))

    states: List[ConversationState] = []
    for index, question in enumerate(ordered):
        mapping_key = str(question.get("mapping_key") or question.get("mappingKey") or question["id"])
        label = str(question.get("label") or mapping_key)
        next_id = _state_id(ordered[index + 1]) if index + 1 < len(ordered) else LEAD_CAPTURE_STATE_ID

        states.append(ConversationState(
            id=_state_id(question),
            order=index + 1,
            type=StateType.DATA_COLLECTION.value,
            prompt=str(question.get("question", "")),
            goal=f"Collect {label}",
            collects=(FieldSpec(
                mapping_key=mapping_key,
                label=label,
                required=question.get("required") is not False,
                extraction_hint=f"the user's {label}",
            ),),
            transitions=(
                Transition(
                    target_state_id=next_id,
                    condition=TransitionCondition(
                        type=ConditionType.DATA_COLLECTED.value,
                        mapping_keys=(mapping_key,),
                    ),
                ),
                # Lets the objection give-up path move past any question
                Transition(
                    target_state_id=next_id,
                    condition=TransitionCondition(
                        type=ConditionType.MAX_ATTEMPTS_REACHED.value,
                        max_attempts=max_attempts,
                    ),
                    priority=10,
                ),
            ),
            skip_if_data_exists=True,
            max_attempts=max_attempts,
        ))

    states.append(ConversationState(
        id=LEAD_CAPTURE_STATE_ID,
        order=len(ordered) + 1,
        type=StateType.LEAD_CAPTURE.value,
        prompt=LEAD_CAPTURE_PROMPT,
        goal="Collect contact information for lead capture",
        transitions=(Transition(
            target_state_id=COMPLETION_STATE_ID,
            condition=TransitionCondition(type=ConditionType.ALWAYS.value),
        ),),
    ))
    states.append(ConversationState(
        id=COMPLETION_STATE_ID,
        order=len(ordered) + 2,
        type=StateType.COMPLETION.value,
        prompt=COMPLETION_PROMPT,
        goal="Flow complete",
    ))

    flow_name = str(getattr(flow, "value", flow))
    return StateMachineConfig(
        id=f"converted_{flow_name}",
        flow=flow_name,
        states=tuple(states),
        initial_state_id=states[0].id,
        lead_capture_state_id=LEAD_CAPTURE_STATE_ID,
        multi_field_extraction=True,
        skip_completed_states=True,
    )
