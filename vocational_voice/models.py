"""
Pydantic models for the voice interaction controller.
Covers the session/question records exchanged with the test session backend
and the records produced by a completed turn.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from enum import Enum


# ============================================================================
# Enums
# ============================================================================

class InteractionState(str, Enum):
    """
    Voice bubble interaction states.

    IDLE: No session running, waiting for the user to start
    SESSION_STARTING: Session requested from the backend
    SPEAKING: Current question is being announced
    LISTENING: Microphone and speech recognition are live
    THINKING: Answer captured, classifying and submitting
    """
    IDLE = "IDLE"
    SESSION_STARTING = "SESSION_STARTING"
    SPEAKING = "SPEAKING"
    LISTENING = "LISTENING"
    THINKING = "THINKING"


# ============================================================================
# Backend records
# ============================================================================

class Session(BaseModel):
    """
    One test attempt.

    question_order is advanced locally, and only after a successful submission.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    session_id: str = Field(
        ...,
        min_length=1,
        description="Backend session identifier"
    )
    question_order: int = Field(
        default=1,
        ge=1,
        description="Order of the question currently being answered"
    )


class Question(BaseModel):
    """Question supplied by the backend. Immutable once received."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str = Field(..., description="Question identifier")
    text: str = Field(..., description="Question text to announce")
    category: str = Field(default="", description="Question category")
    riasec_weights: Dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("riasec_weights", "riasecWeights"),
        description="Weight of the question on each RIASEC dimension"
    )


class ResponseRecord(BaseModel):
    """Classified answer to one question."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    response_value: int = Field(..., ge=1, le=5)
    riasec_weights: Dict[str, float] = Field(default_factory=dict)
    order: int = Field(..., ge=1)


class SubmitResponsePayload(BaseModel):
    """
    Body of POST /questions/response.
    Field names match the backend's snake_case wire format.
    """
    session_id: str
    question_id: str
    question_text: str
    question_category: str
    response_value: int = Field(..., ge=1, le=5)
    response_time: int = Field(
        ...,
        ge=0,
        description="Milliseconds from question delivery to end of answer"
    )
    question_order: int = Field(..., ge=1)
    riasec_weights: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_record(
        cls,
        session_id: str,
        record: ResponseRecord,
        question: Question,
        response_time_ms: int,
    ) -> "SubmitResponsePayload":
        return cls(
            session_id=session_id,
            question_id=record.question_id,
            question_text=question.text,
            question_category=question.category,
            response_value=record.response_value,
            response_time=max(0, int(response_time_ms)),
            question_order=record.order,
            riasec_weights=dict(record.riasec_weights),
        )


class Ack(BaseModel):
    """Backend acknowledgement of a submitted response."""

    accepted: bool = True
    data: Optional[Dict[str, Any]] = None


# ============================================================================
# Controller telemetry
# ============================================================================

class CapabilityReport(BaseModel):
    """Result of capability negotiation, computed once per controller."""

    model_config = ConfigDict(frozen=True)

    audio_capture: bool = False
    speech_recognition: bool = False
    narration: bool = False

    @property
    def voice_ready(self) -> bool:
        """True when a full voice turn (capture + recognition) is possible."""
        return self.audio_capture and self.speech_recognition
