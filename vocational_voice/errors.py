"""
Error taxonomy for the voice interaction controller.

Every error carries a stable `code` so callers can map it to UI copy
without matching on class names.
"""

from typing import Optional


class VoiceControllerError(Exception):
    """Base class for all controller errors."""

    code = "voice_error"
    recoverable = False

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class CaptureUnavailable(VoiceControllerError):
    """Microphone permission denied, no input device, or no audio support."""

    code = "capture_unavailable"


class SpeechUnsupported(VoiceControllerError):
    """Speech-to-text capability absent on the host."""

    code = "speech_unsupported"


class SessionCreateFailed(VoiceControllerError):
    """Backend could not create a test session."""

    code = "session_create_failed"


class QuestionFetchFailed(VoiceControllerError):
    """Backend could not deliver the next question."""

    code = "question_fetch_failed"


class SubmissionFailed(VoiceControllerError):
    """Response submission failed after all automatic attempts."""

    code = "submission_failed"
    recoverable = True

    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.attempts = attempts


class RetriesExhausted(VoiceControllerError):
    """A question was re-asked more times than allowed after failed submissions."""

    code = "retries_exhausted"


class BackendError(VoiceControllerError):
    """Transport failure or non-2xx response from the test session backend."""

    code = "backend_error"

    def __init__(self, message: str, status: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.status = status


class SpeechCaptureFailed(VoiceControllerError):
    """Recognizer reported an error other than a lost microphone."""

    code = "speech_capture_failed"
    recoverable = True
