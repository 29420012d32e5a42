"""
Turn processing: one user message through classify -> engine -> reply.

The classifier is injected (anything matching ClassifyFn), so the pipeline
runs unchanged against a real LLM client or a test double. Contexts are
never modified in place; every outcome carries a new one. Turns of one
session must be processed sequentially by the caller.

Usage:
    processor = TurnProcessor(config, LLMClassifier(client), catalog=items)
    context = start_conversation(config)
    outcome = processor.process_turn(context, "Buying in Halifax, around 500k")
    context = outcome.context
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from lead_qualifier.classifier.llm.classifier import ClassifyFn
from lead_qualifier.classifier.llm.prompts import build_classification_request
from lead_qualifier.classifier.llm.schemas import ClassifyAndExtractResult
from lead_qualifier.constants import ANSWER_INTENTS, GENERAL_OBJECTION
from lead_qualifier.content.matcher import match
from lead_qualifier.content.models import ContentItem
from lead_qualifier.logger import logger
from lead_qualifier.state_machine.engine import (
    apply_advancement,
    calculate_progress,
    get_objection_counter,
    get_prompt_variant,
    get_state_by_id,
    is_terminal_state,
    process_extraction,
)
from lead_qualifier.state_machine.models import (
    AdvancementResult,
    ConversationState,
    StateMachineConfig,
    StateMachineContext,
)

OBJECTION_FALLBACK_REPLY = "I understand. No pressure at all."
MOVE_ON_REPLY = "No problem at all! Let's move on to something else."
CORRECTION_REPLY = "Got it, I've updated that for you!"


def start_conversation(
    config: StateMachineConfig,
    profile: Optional[Mapping[str, str]] = None
) -> StateMachineContext:
    """Fresh context at the initial state, optionally with known profile values."""
    return StateMachineContext(
        current_state_id=config.initial_state_id,
        user_input={k: v for k, v in (profile or {}).items() if v},
        state_attempts={},
        state_history=[config.initial_state_id],
    )


@dataclass
class TurnOutcome:
    """
    Result of one turn.

    Attributes:
        context: Context to use for the next turn
        reply: Text for the user
        intent: Primary intent the classifier returned
        advancement: Engine result when the engine ran, else None
        objection_response: Scripted counter used for this turn, if any
        content: Matched content for the state reached
        is_complete: Reached lead capture / completion
        progress: 0..100 for the new profile
    """
    context: StateMachineContext
    reply: str
    intent: str = ""
    advancement: Optional[AdvancementResult] = None
    objection_response: Optional[str] = None
    content: List[ContentItem] = field(default_factory=list)
    is_complete: bool = False
    progress: int = 0

    def to_dict(self) -> Dict:
        return {
            "state": self.context.current_state_id,
            "reply": self.reply,
            "intent": self.intent,
            "advancement": self.advancement.to_dict() if self.advancement else None,
            "objection_response": self.objection_response,
            "content": [item.id for item in self.content],
            "is_complete": self.is_complete,
            "progress": self.progress,
        }


class TurnProcessor:
    """
    Runs user turns against one flow.

    Dispatch by primary intent:
    - direct_answer / multi_answer: merge extractions and advance
    - objection: scripted counter; gives up on the state after max_attempts
    - change_previous_answer: overwrite the corrected field, then as answer
    - anything else: count the attempt and re-ask
    """

    def __init__(
        self,
        config: StateMachineConfig,
        classifier: ClassifyFn,
        catalog: Optional[Sequence[ContentItem]] = None,
        content_limit: int = 3
    ):
        self.config = config
        self.classifier = classifier
        self.catalog = list(catalog) if catalog is not None else None
        self.content_limit = content_limit

    def process_turn(
        self,
        context: StateMachineContext,
        message: str,
        history: Optional[Sequence[str]] = None
    ) -> TurnOutcome:
        """
        Process one user message.

        Args:
            context: Current session context (not modified)
            message: The user's message
            history: Recent messages, oldest first, as "role: text"

        Returns:
            TurnOutcome with the new context and the reply
        """
        state = get_state_by_id(self.config, context.current_state_id)

        if not message or not message.strip():
            return self._outcome(
                context.copy(),
                self._reask(state, context.attempts()),
                intent="",
            )

        request = build_classification_request(self.config, context, message, history)
        result = self.classifier(request)
        intent = result.intent.primary

        logger.info(
            "Turn classified",
            state=context.current_state_id,
            intent=intent,
            confidence=result.intent.confidence,
            extracted=[e.mapping_key for e in result.extracted],
        )

        if state is None:
            logger.warning("Session points at unknown state", state=context.current_state_id, flow=self.config.id)
            return self._outcome(context.copy(), "", intent=intent)

        if intent in ANSWER_INTENTS:
            return self._handle_answer(context, state, result)
        if intent == "objection":
            return self._handle_objection(context, state, result)
        if intent == "change_previous_answer":
            return self._handle_correction(context, state, result)
        return self._handle_non_answer(context, state, result)

    def _handle_answer(
        self,
        context: StateMachineContext,
        state: ConversationState,
        result: ClassifyAndExtractResult
    ) -> TurnOutcome:
        advancement = process_extraction(self.config, context, result.extracted)
        new_context = apply_advancement(context, advancement)

        if advancement.advanced:
            next_state = get_state_by_id(self.config, advancement.new_state_id)
            reply = next_state.prompt if next_state else ""
        else:
            attempts = self._bump_attempts(new_context, state.id)
            reply = get_prompt_variant(state, attempts)

        return self._outcome(new_context, reply, result.intent.primary, advancement)

    def _handle_objection(
        self,
        context: StateMachineContext,
        state: ConversationState,
        result: ClassifyAndExtractResult
    ) -> TurnOutcome:
        new_context = context.copy()
        attempts = self._bump_attempts(new_context, state.id)

        objection_type = result.intent.objection or GENERAL_OBJECTION
        counter = get_objection_counter(self.config, state.id, objection_type, attempts)

        logger.info(
            "Objection",
            state=state.id,
            objection=objection_type,
            attempts=attempts,
            max_attempts=state.max_attempts,
            has_counter=counter is not None,
        )

        if attempts >= state.max_attempts:
            advancement = process_extraction(self.config, new_context, [])
            if advancement.advanced:
                logger.event(
                    "objection_give_up",
                    state=state.id,
                    to_state=advancement.new_state_id,
                    attempts=attempts,
                )
                return self._outcome(
                    apply_advancement(new_context, advancement),
                    MOVE_ON_REPLY,
                    result.intent.primary,
                    advancement,
                )

        return self._outcome(
            new_context,
            counter or OBJECTION_FALLBACK_REPLY,
            result.intent.primary,
            objection_response=counter,
        )

    def _handle_correction(
        self,
        context: StateMachineContext,
        state: ConversationState,
        result: ClassifyAndExtractResult
    ) -> TurnOutcome:
        corrected = context.copy()
        correction = result.correction
        # An empty new value would erase the field; keep the old one
        if correction is not None and correction.new_value:
            logger.info(
                "Answer corrected",
                mapping_key=correction.mapping_key,
                had_value=bool(context.user_input.get(correction.mapping_key)),
            )
            corrected.user_input[correction.mapping_key] = correction.new_value

        advancement = process_extraction(self.config, corrected, result.extracted)
        new_context = apply_advancement(corrected, advancement)

        if advancement.advanced:
            next_state = get_state_by_id(self.config, advancement.new_state_id)
            reply = next_state.prompt if next_state else CORRECTION_REPLY
        else:
            reply = CORRECTION_REPLY

        return self._outcome(new_context, reply, result.intent.primary, advancement)

    def _handle_non_answer(
        self,
        context: StateMachineContext,
        state: ConversationState,
        result: ClassifyAndExtractResult
    ) -> TurnOutcome:
        new_context = context.copy()
        attempts = self._bump_attempts(new_context, state.id)
        return self._outcome(new_context, get_prompt_variant(state, attempts), result.intent.primary)

    @staticmethod
    def _bump_attempts(context: StateMachineContext, state_id: str) -> int:
        attempts = context.state_attempts.get(state_id, 0) + 1
        context.state_attempts[state_id] = attempts
        return attempts

    @staticmethod
    def _reask(state: Optional[ConversationState], attempts: int) -> str:
        if state is None:
            return ""
        return get_prompt_variant(state, attempts)

    def _outcome(
        self,
        context: StateMachineContext,
        reply: str,
        intent: str,
        advancement: Optional[AdvancementResult] = None,
        objection_response: Optional[str] = None
    ) -> TurnOutcome:
        content: List[ContentItem] = []
        if self.catalog is not None:
            content = match(self.catalog, context.user_input, self.config.flow, limit=self.content_limit)

        return TurnOutcome(
            context=context,
            reply=reply,
            intent=intent,
            advancement=advancement,
            objection_response=objection_response,
            content=content,
            is_complete=is_terminal_state(self.config, context.current_state_id),
            progress=calculate_progress(self.config, context.user_input),
        )
