"""
State Machine Engine: pure functions, no side effects besides logging.

Evaluates transitions, applies extraction results, resolves objection
counters and computes progress for a conversation flow.

Usage:
    from lead_qualifier.state_machine import process_extraction

    result = process_extraction(config, context, classify_result.extracted)
    if result.is_complete:
        ...
"""

import logging
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional

from lead_qualifier.constants import INTENT_FIELD, TERMINAL_STATE_TYPES, StateType
from lead_qualifier.logger import logger
from lead_qualifier.settings import settings
from lead_qualifier.state_machine.models import (
    AdvancementResult,
    ConditionType,
    ConversationState,
    FieldSpec,
    StateMachineConfig,
    StateMachineContext,
    TransitionCondition,
)

if TYPE_CHECKING:
    from lead_qualifier.classifier.llm.schemas import ExtractionItem


def _has_value(profile: Mapping[str, str], key: str) -> bool:
    return bool(profile.get(key))


def get_state_by_id(config: StateMachineConfig, state_id: str) -> Optional[ConversationState]:
    """State with this id, or None."""
    for state in config.states:
        if state.id == state_id:
            return state
    return None


def is_condition_met(
    condition: TransitionCondition,
    context: StateMachineContext,
    state: ConversationState
) -> bool:
    """Check one transition condition. Unknown condition types are never met."""
    profile = context.user_input

    if condition.type == ConditionType.DATA_COLLECTED:
        return all(_has_value(profile, key) for key in condition.mapping_keys)

    if condition.type == ConditionType.ANY_DATA_COLLECTED:
        return any(_has_value(profile, key) for key in condition.mapping_keys)

    if condition.type == ConditionType.INTENT_SET:
        return profile.get(INTENT_FIELD, "") in condition.intents

    if condition.type == ConditionType.ALWAYS:
        return True

    if condition.type == ConditionType.MAX_ATTEMPTS_REACHED:
        if condition.max_attempts is None:
            return False
        return context.state_attempts.get(state.id, 0) >= condition.max_attempts

    return False


def evaluate_transitions(
    state: ConversationState,
    context: StateMachineContext
) -> Optional[str]:
    """
    Target of the first satisfied transition, or None.

    Transitions are checked in ascending priority (lower = first); equal
    priorities keep their declared order.
    """
    for transition in sorted(state.transitions, key=lambda t: t.priority):
        if is_condition_met(transition.condition, context, state):
            return transition.target_state_id
    return None


def get_next_state_by_order(
    config: StateMachineConfig,
    current_state_id: str
) -> Optional[ConversationState]:
    """State right after the current one by `order`, or None at the end."""
    ordered = sorted(config.states, key=lambda s: s.order)
    for index, state in enumerate(ordered):
        if state.id == current_state_id:
            return ordered[index + 1] if index + 1 < len(ordered) else None
    return None


def _can_skip(
    config: StateMachineConfig,
    state: ConversationState,
    profile: Mapping[str, str]
) -> bool:
    """Whether the cascade may pass over `state` because its data exists."""
    return (
        config.skip_completed_states
        and state.skip_if_data_exists is not False
        and len(state.collects) > 0
        and all(not f.required or _has_value(profile, f.mapping_key) for f in state.collects)
    )


def is_terminal_state(config: StateMachineConfig, state_id: str) -> bool:
    """Lead capture (by id or type) or completion."""
    if config.lead_capture_state_id and state_id == config.lead_capture_state_id:
        return True
    state = get_state_by_id(config, state_id)
    return state is not None and state.type in TERMINAL_STATE_TYPES


def process_extraction(
    config: StateMachineConfig,
    context: StateMachineContext,
    extractions: Iterable["ExtractionItem"],
    confidence_threshold: Optional[float] = None
) -> AdvancementResult:
    """
    Apply extractions and advance through the flow.

    1. Extractions with confidence >= threshold are merged into a copy of
       the profile (the context passed in is never modified).
    2. Cascade: follow transitions from the current state; a target whose
       required data is already present is skipped and the cascade goes on.
    3. Stops when no transition fires, a transition points back at the
       current state or at an unknown state, or after len(states) steps.

    Returns:
        AdvancementResult for the last state reached
    """
    if confidence_threshold is None:
        confidence_threshold = float(settings.get_nested("engine.confidence_threshold", 0.6))

    user_input = dict(context.user_input)
    fields_collected: List[str] = []
    for extraction in extractions:
        if extraction.confidence >= confidence_threshold:
            user_input[extraction.mapping_key] = extraction.value
            fields_collected.append(extraction.mapping_key)
        else:
            logger.debug(
                "Extraction below threshold",
                mapping_key=extraction.mapping_key,
                confidence=extraction.confidence,
                threshold=confidence_threshold,
            )

    current_state_id = context.current_state_id
    skipped_states: List[str] = []
    advanced = False

    # Each step moves to another state, so a mis-authored cycle ends here
    for _ in range(len(config.states)):
        current_state = get_state_by_id(config, current_state_id)
        if current_state is None:
            logger.warning("Unknown state in cascade", state=current_state_id, flow=config.id)
            break

        step_context = StateMachineContext(
            current_state_id=current_state_id,
            user_input=user_input,
            state_attempts=context.state_attempts,
            state_history=context.state_history,
        )
        target_id = evaluate_transitions(current_state, step_context)
        if not target_id or target_id == current_state_id:
            break

        target_state = get_state_by_id(config, target_id)
        if target_state is None:
            logger.warning(
                "Transition to unknown state ignored",
                from_state=current_state_id,
                to_state=target_id,
                flow=config.id,
            )
            break

        advanced = True
        if _can_skip(config, target_state, user_input):
            skipped_states.append(target_id)
            logger.event("state_skipped", level=logging.DEBUG, state=target_id, flow=config.id)
            current_state_id = target_id
            continue

        logger.event(
            "state_transition",
            level=logging.DEBUG,
            from_state=current_state_id,
            to_state=target_id,
            flow=config.id,
        )
        current_state_id = target_id
        break

    return AdvancementResult(
        advanced=advanced,
        new_state_id=current_state_id,
        fields_collected=fields_collected,
        skipped_states=skipped_states,
        is_complete=is_terminal_state(config, current_state_id),
        progress=calculate_progress(config, user_input),
        user_input=user_input,
    )


def apply_advancement(
    context: StateMachineContext,
    result: AdvancementResult
) -> StateMachineContext:
    """New context reflecting an AdvancementResult (history gets the new state)."""
    new_context = context.copy()
    new_context.user_input = dict(result.user_input)
    if result.advanced:
        new_context.current_state_id = result.new_state_id
        new_context.state_history.append(result.new_state_id)
    return new_context


def get_objection_counter(
    config: StateMachineConfig,
    state_id: str,
    objection_type: str,
    attempt_count: int
) -> Optional[str]:
    """
    Scripted response for an objection.

    State-level counters win over global ones. From the second occurrence
    on (attempt_count > 1) a state-level escalation_response is used when
    defined. None means the caller falls back to a generic reply.
    """
    state = get_state_by_id(config, state_id)
    is_escalation = attempt_count > 1

    if state is not None:
        for counter in state.objection_counters:
            if counter.objection_type == objection_type:
                if is_escalation and counter.escalation_response:
                    return counter.escalation_response
                return counter.response

    for counter in config.global_objection_counters:
        if counter.objection_type == objection_type:
            return counter.response

    return None


def calculate_progress(config: StateMachineConfig, profile: Mapping[str, str]) -> int:
    """
    Percentage (0-100) of required data_collection fields present.

    Keys are deduplicated across states. No required fields at all means
    there is nothing left to collect: 100.
    """
    required = set()
    for state in config.states:
        if state.type == StateType.DATA_COLLECTION:
            required.update(state.required_keys)

    if not required:
        return 100

    collected = sum(1 for key in required if _has_value(profile, key))
    # Half up, not banker's rounding
    percent = int(collected * 100 / len(required) + 0.5)
    return max(0, min(percent, 100))


def get_prompt_variant(state: ConversationState, attempt_count: int) -> str:
    """
    Prompt for the given attempt: base prompt first, then variants in a cycle.
    """
    if not state.prompt_variants or attempt_count <= 0:
        return state.prompt
    return state.prompt_variants[(attempt_count - 1) % len(state.prompt_variants)]


def get_all_collectable_fields(config: StateMachineConfig) -> List[FieldSpec]:
    """Every field of the flow once, first declaration wins."""
    seen = set()
    fields: List[FieldSpec] = []
    for state in config.states:
        for spec in state.collects:
            if spec.mapping_key not in seen:
                seen.add(spec.mapping_key)
                fields.append(spec)
    return fields
