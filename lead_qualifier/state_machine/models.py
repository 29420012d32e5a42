"""
State machine data model.

Flow graphs (StateMachineConfig and everything under it) are immutable and
authored offline as YAML. StateMachineContext is the per-session state that
the engine reads and returns updated copies of.

Dict keys may be snake_case (YAML configs) or camelCase (JSON from the
content/config stores).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from lead_qualifier.constants import Flow, StateType
from lead_qualifier.settings import settings


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


class ConditionType(str, Enum):
    """Transition condition kinds."""
    DATA_COLLECTED = "data_collected"
    ANY_DATA_COLLECTED = "any_data_collected"
    INTENT_SET = "intent_set"
    ALWAYS = "always"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"


@dataclass(frozen=True)
class FieldSpec:
    """A profile field a state collects."""
    mapping_key: str
    label: str = ""
    required: bool = True
    extraction_hint: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldSpec":
        mapping_key = _pick(data, "mapping_key", "mappingKey")
        if not mapping_key:
            raise ValueError(f"Field without mapping_key: {data!r}")
        label = data.get("label") or mapping_key
        return cls(
            mapping_key=str(mapping_key),
            label=str(label),
            required=bool(data.get("required", True)),
            extraction_hint=str(_pick(data, "extraction_hint", "extractionHint", default="") or ""),
        )


@dataclass(frozen=True)
class TransitionCondition:
    """
    When a transition fires.

    Attributes:
        type: One of ConditionType; unknown types never fire
        mapping_keys: For data_collected / any_data_collected
        intents: For intent_set
        max_attempts: For max_attempts_reached
    """
    type: str
    mapping_keys: Tuple[str, ...] = ()
    intents: Tuple[str, ...] = ()
    max_attempts: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransitionCondition":
        condition_type = data.get("type")
        if not condition_type:
            raise ValueError(f"Transition condition without type: {data!r}")
        max_attempts = _pick(data, "max_attempts", "maxAttempts")
        return cls(
            type=str(condition_type),
            mapping_keys=_str_tuple(_pick(data, "mapping_keys", "mappingKeys")),
            intents=_str_tuple(data.get("intents")),
            max_attempts=int(max_attempts) if max_attempts is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.mapping_keys:
            result["mapping_keys"] = list(self.mapping_keys)
        if self.intents:
            result["intents"] = list(self.intents)
        if self.max_attempts is not None:
            result["max_attempts"] = self.max_attempts
        return result


@dataclass(frozen=True)
class Transition:
    """Edge to another state; lower priority is checked first."""
    target_state_id: str
    condition: TransitionCondition
    priority: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transition":
        target = _pick(data, "target_state_id", "targetStateId", "target")
        if not target:
            raise ValueError(f"Transition without target: {data!r}")
        condition = data.get("condition") or {"type": ConditionType.ALWAYS.value}
        if isinstance(condition, str):
            condition = {"type": condition}
        return cls(
            target_state_id=str(target),
            condition=TransitionCondition.from_dict(condition),
            priority=int(data.get("priority", 0)),
        )


@dataclass(frozen=True)
class ObjectionCounter:
    """Scripted answer to an objection, with a firmer variant for repeats."""
    objection_type: str
    response: str
    escalation_response: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObjectionCounter":
        objection_type = _pick(data, "objection_type", "objectionType")
        response = data.get("response")
        if not objection_type or not response:
            raise ValueError(f"Objection counter needs a type and a response: {data!r}")
        escalation = _pick(data, "escalation_response", "escalationResponse")
        return cls(
            objection_type=str(objection_type),
            response=str(response),
            escalation_response=str(escalation) if escalation else None,
        )


@dataclass(frozen=True)
class ConversationState:
    """
    Node of the flow graph.

    `type` is a StateType value or any custom string; only lead_capture and
    completion are treated specially. `skip_if_data_exists=False` opts the
    state out of cascade skipping.
    """
    id: str
    order: int
    type: str
    prompt: str
    goal: str = ""
    prompt_variants: Tuple[str, ...] = ()
    collects: Tuple[FieldSpec, ...] = ()
    transitions: Tuple[Transition, ...] = ()
    objection_counters: Tuple[ObjectionCounter, ...] = ()
    skip_if_data_exists: Optional[bool] = None
    max_attempts: int = 3

    @property
    def required_keys(self) -> List[str]:
        return [f.mapping_key for f in self.collects if f.required]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], order: int = 0) -> "ConversationState":
        state_id = data.get("id")
        if not state_id:
            raise ValueError(f"State without id: {data!r}")
        max_attempts = _pick(data, "max_attempts", "maxAttempts")
        if max_attempts is None:
            max_attempts = settings.get_nested("engine.default_max_attempts", 3)
        skip = _pick(data, "skip_if_data_exists", "skipIfDataExists")
        return cls(
            id=str(state_id),
            order=int(data.get("order", order)),
            type=str(data.get("type", StateType.DATA_COLLECTION.value)),
            prompt=str(data.get("prompt", "")),
            goal=str(data.get("goal", "")),
            prompt_variants=_str_tuple(_pick(data, "prompt_variants", "promptVariants")),
            collects=tuple(FieldSpec.from_dict(f) for f in data.get("collects") or []),
            transitions=tuple(Transition.from_dict(t) for t in data.get("transitions") or []),
            objection_counters=tuple(
                ObjectionCounter.from_dict(c)
                for c in _pick(data, "objection_counters", "objectionCounters", default=None) or []
            ),
            skip_if_data_exists=None if skip is None else bool(skip),
            max_attempts=int(max_attempts),
        )


@dataclass(frozen=True)
class StateMachineConfig:
    """Complete flow graph for one conversation purpose."""
    id: str
    flow: str
    states: Tuple[ConversationState, ...]
    initial_state_id: str
    lead_capture_state_id: Optional[str] = None
    global_objection_counters: Tuple[ObjectionCounter, ...] = ()
    version: int = 1
    multi_field_extraction: bool = True
    skip_completed_states: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateMachineConfig":
        """
        Build a config from its dict form.

        Raises:
            ValueError: If a required part is missing
        """
        states = tuple(
            ConversationState.from_dict(s, order=index + 1)
            for index, s in enumerate(data.get("states") or [])
        )
        initial = _pick(data, "initial_state_id", "initialStateId")
        if not initial and states:
            initial = min(states, key=lambda s: s.order).id
        if not initial:
            raise ValueError("Flow has no states and no initial_state_id")

        flow = data.get("flow") or data.get("intent") or Flow.BUY.value
        return cls(
            id=str(data.get("id", flow)),
            flow=str(getattr(flow, "value", flow)),
            states=states,
            initial_state_id=str(initial),
            lead_capture_state_id=_pick(data, "lead_capture_state_id", "leadCaptureStateId"),
            global_objection_counters=tuple(
                ObjectionCounter.from_dict(c)
                for c in _pick(data, "global_objection_counters", "globalObjectionCounters", default=None) or []
            ),
            version=int(data.get("version", 1)),
            multi_field_extraction=bool(_pick(data, "multi_field_extraction", "multiFieldExtraction", default=True)),
            skip_completed_states=bool(_pick(data, "skip_completed_states", "skipCompletedStates", default=True)),
        )


@dataclass
class StateMachineContext:
    """
    Per-session state threaded through every evaluation.

    The engine never mutates a context; it returns new ones.
    """
    current_state_id: str
    user_input: Dict[str, str] = field(default_factory=dict)
    state_attempts: Dict[str, int] = field(default_factory=dict)
    state_history: List[str] = field(default_factory=list)

    def copy(self) -> "StateMachineContext":
        return StateMachineContext(
            current_state_id=self.current_state_id,
            user_input=dict(self.user_input),
            state_attempts=dict(self.state_attempts),
            state_history=list(self.state_history),
        )

    def attempts(self, state_id: Optional[str] = None) -> int:
        return self.state_attempts.get(state_id or self.current_state_id, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_state_id": self.current_state_id,
            "user_input": dict(self.user_input),
            "state_attempts": dict(self.state_attempts),
            "state_history": list(self.state_history),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateMachineContext":
        return cls(
            current_state_id=str(_pick(data, "current_state_id", "currentStateId")),
            user_input={str(k): str(v) for k, v in (_pick(data, "user_input", "userInput", default=None) or {}).items()},
            state_attempts={str(k): int(v) for k, v in (_pick(data, "state_attempts", "stateAttempts", default=None) or {}).items()},
            state_history=[str(s) for s in (_pick(data, "state_history", "stateHistory", default=None) or [])],
        )


@dataclass
class AdvancementResult:
    """
    Outcome of process_extraction.

    Attributes:
        advanced: Whether the state changed
        new_state_id: State reached (unchanged if nothing fired)
        fields_collected: Keys merged this call, in extraction order
        skipped_states: States passed over because their data already exists
        is_complete: Reached lead capture / completion
        progress: 0..100, recomputed from the merged profile
        user_input: The merged profile (a new dict)
    """
    advanced: bool
    new_state_id: str
    fields_collected: List[str] = field(default_factory=list)
    skipped_states: List[str] = field(default_factory=list)
    is_complete: bool = False
    progress: int = 0
    user_input: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "advanced": self.advanced,
            "new_state_id": self.new_state_id,
            "fields_collected": list(self.fields_collected),
            "skipped_states": list(self.skipped_states),
            "is_complete": self.is_complete,
            "progress": self.progress,
        }
