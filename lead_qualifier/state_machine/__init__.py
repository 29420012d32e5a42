"""Conversation state machine: flow graph model and pure engine functions."""

from lead_qualifier.state_machine.models import (
    AdvancementResult,
    ConditionType,
    ConversationState,
    FieldSpec,
    ObjectionCounter,
    StateMachineConfig,
    StateMachineContext,
    Transition,
    TransitionCondition,
)
from lead_qualifier.state_machine.engine import (
    apply_advancement,
    calculate_progress,
    evaluate_transitions,
    get_all_collectable_fields,
    get_next_state_by_order,
    get_objection_counter,
    get_prompt_variant,
    get_state_by_id,
    is_condition_met,
    is_terminal_state,
    process_extraction,
)
from lead_qualifier.state_machine.converter import questions_to_state_machine

__all__ = [
    "AdvancementResult",
    "ConditionType",
    "ConversationState",
    "FieldSpec",
    "ObjectionCounter",
    "StateMachineConfig",
    "StateMachineContext",
    "Transition",
    "TransitionCondition",
    "apply_advancement",
    "calculate_progress",
    "evaluate_transitions",
    "get_all_collectable_fields",
    "get_next_state_by_order",
    "get_objection_counter",
    "get_prompt_variant",
    "get_state_by_id",
    "is_condition_met",
    "is_terminal_state",
    "process_extraction",
    "questions_to_state_machine",
]
