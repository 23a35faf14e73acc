"""
Voice interaction controller for the conversational vocational (RIASEC) test.
"""

from .errors import (
    VoiceControllerError,
    CaptureUnavailable,
    SpeechUnsupported,
    SessionCreateFailed,
    QuestionFetchFailed,
    SubmissionFailed,
    RetriesExhausted,
    BackendError,
    SpeechCaptureFailed,
)
from .models import InteractionState, Session, Question, ResponseRecord, CapabilityReport
from .capabilities import negotiate_capabilities
from .logging_config import configure_logging
from .orchestration.response_classifier import classify, describe_response
from .orchestration.turn_controller import TurnController
from .session.client import HttpTestSessionClient

__all__ = [
    "VoiceControllerError",
    "CaptureUnavailable",
    "SpeechUnsupported",
    "SessionCreateFailed",
    "QuestionFetchFailed",
    "SubmissionFailed",
    "RetriesExhausted",
    "BackendError",
    "SpeechCaptureFailed",
    "InteractionState",
    "Session",
    "Question",
    "ResponseRecord",
    "CapabilityReport",
    "negotiate_capabilities",
    "configure_logging",
    "classify",
    "describe_response",
    "TurnController",
    "HttpTestSessionClient",
]
