"""Pydantic schemas for the classify-and-extract LLM call."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

IntentPrimary = Literal[
    # Answers
    "direct_answer", "multi_answer", "attempted_answer_but_unclear",
    # Questions and digressions
    "clarification_question", "chitchat", "off_topic",
    # Conversation control
    "objection", "change_previous_answer", "escalation_request",
]

ObjectionType = Literal[
    "privacy_refusal", "trust_issue", "time_constraint",
    "price_sensitivity", "not_ready",
]

Tone = Literal["empathetic", "firm", "playful", "educational"]


class IntentResult(BaseModel):
    """Classified intent of the user's latest message."""
    model_config = ConfigDict(populate_by_name=True)

    primary: IntentPrimary = Field("clarification_question", description="Primary intent")
    objection: Optional[ObjectionType] = Field(None, description="Objection type when primary is objection")
    confidence: float = Field(0.5, ge=0.0, le=1.0, description="Confidence 0-1")
    suggested_tone: Optional[Tone] = Field(None, alias="suggestedTone", description="Tone for the reply")


class ExtractionItem(BaseModel):
    """One extracted profile value."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mapping_key: str = Field(..., min_length=1, alias="mappingKey", description="Profile key")
    value: str = Field(..., min_length=1, description="Extracted value")
    confidence: float = Field(0.7, ge=0.0, le=1.0, description="Confidence 0-1")


class Correction(BaseModel):
    """Explicit change of a previously given answer."""
    model_config = ConfigDict(populate_by_name=True)

    mapping_key: str = Field(..., min_length=1, alias="mappingKey")
    new_value: str = Field("", alias="newValue")


class ClassifyAndExtractResult(BaseModel):
    """Parsed response of the classify-and-extract call."""
    intent: IntentResult = Field(default_factory=IntentResult)
    extracted: List[ExtractionItem] = Field(default_factory=list)
    correction: Optional[Correction] = None

    def to_wire(self) -> dict:
        """camelCase dict matching the response shape the LLM is asked for."""
        return self.model_dump(by_alias=True)
