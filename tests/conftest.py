"""
Shared fakes for the voice controller tests.

Fakes stand in for the host capabilities (microphone, speech recognition,
narration) and for the test session backend.
"""

import asyncio
from typing import Callable, List, Optional

import pytest

from vocational_voice.capabilities import SpeechErrorEvent, SpeechResult, SpeechResultEvent
from vocational_voice.config import Settings
from vocational_voice.errors import BackendError
from vocational_voice.models import Ack, Question, Session, SubmitResponsePayload


# ============================================================================
# Audio capture
# ============================================================================

class FakeStream:
    def __init__(self, owner: "FakeAudioCapture"):
        self.owner = owner
        self.stopped = False

    def stop(self) -> None:
        if not self.stopped:
            self.stopped = True
            self.owner.released_streams += 1


class FakeAnalyser:
    frequency_bin_count = 128
    value_range = 255.0

    def __init__(self, owner: "FakeAudioCapture"):
        self.owner = owner
        self.closed = False

    def get_frequency_data(self) -> List[float]:
        return list(self.owner.frequency_data)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.owner.released_analysers += 1


class FakeAudioCapture:
    """Counts every stream/analyser acquisition and release."""

    def __init__(self, available: bool = True, deny_stream: bool = False, fail_analyser: bool = False):
        self.available = available
        self.deny_stream = deny_stream
        self.fail_analyser = fail_analyser
        self.frequency_data: List[float] = [128.0] * 128

        self.acquired_streams = 0
        self.released_streams = 0
        self.acquired_analysers = 0
        self.released_analysers = 0

    @property
    def active(self) -> int:
        return (self.acquired_streams - self.released_streams) + (
            self.acquired_analysers - self.released_analysers
        )

    def is_available(self) -> bool:
        return self.available

    def get_stream(self) -> FakeStream:
        if self.deny_stream:
            raise PermissionError("NotAllowedError: permission denied")
        self.acquired_streams += 1
        return FakeStream(self)

    def create_analyser(self, stream: FakeStream, fft_size: int, smoothing: float) -> FakeAnalyser:
        if self.fail_analyser:
            raise RuntimeError("AudioContext not supported")
        self.acquired_analysers += 1
        return FakeAnalyser(self)


# ============================================================================
# Speech recognition
# ============================================================================

class FakeRecognizer:
    def __init__(self, fail_start: bool = False, fail_stop: bool = False):
        self.lang = ""
        self.continuous = True
        self.interim_results = False
        self.max_alternatives = 5

        self.on_start: Optional[Callable] = None
        self.on_result: Optional[Callable] = None
        self.on_end: Optional[Callable] = None
        self.on_error: Optional[Callable] = None

        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.started = False
        self.stop_calls = 0
        self.abort_calls = 0

    def start(self) -> None:
        if self.fail_start:
            raise RuntimeError("InvalidStateError: recognition already started")
        self.started = True
        if self.on_start:
            self.on_start()

    def stop(self) -> None:
        self.stop_calls += 1
        if self.fail_stop:
            raise RuntimeError("InvalidStateError: recognition has ended")

    def abort(self) -> None:
        self.abort_calls += 1

    # Test drivers

    def emit(self, result_index: int, *results: SpeechResult) -> None:
        if self.on_result:
            self.on_result(SpeechResultEvent(result_index=result_index, results=list(results)))

    def say(self, text: str) -> None:
        """Deliver text as a single final result."""
        self.emit(0, SpeechResult(text, is_final=True, confidence=0.9))

    def end(self) -> None:
        if self.on_end:
            self.on_end()

    def fail(self, code: str, message: str = "") -> None:
        if self.on_error:
            self.on_error(SpeechErrorEvent(error=code, message=message))


class FakeSpeechRecognition:
    def __init__(
        self,
        supported: bool = True,
        fail_start: bool = False,
        fail_stop: bool = False,
        fail_create: bool = False,
    ):
        self.supported = supported
        self.fail_create = fail_create
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.recognizers: List[FakeRecognizer] = []

    @property
    def last(self) -> FakeRecognizer:
        return self.recognizers[-1]

    def is_supported(self) -> bool:
        return self.supported

    def create_recognizer(self) -> FakeRecognizer:
        if self.fail_create:
            raise RuntimeError("SpeechRecognition constructor threw")
        recognizer = FakeRecognizer(fail_start=self.fail_start, fail_stop=self.fail_stop)
        self.recognizers.append(recognizer)
        return recognizer


class FakeNarrator:
    def __init__(self, duration_s: float = 0.01, fail: bool = False):
        self.duration_s = duration_s
        self.fail = fail
        self.spoken: List[str] = []

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        await asyncio.sleep(self.duration_s)
        if self.fail:
            raise RuntimeError("speech synthesis interrupted")


# ============================================================================
# Test session backend
# ============================================================================

class FakeSessionService:
    """
    In-memory backend. next_question() serves the question after the last
    accepted submission, None once all are answered.
    """

    def __init__(
        self,
        questions: Optional[List[Question]] = None,
        fail_create: bool = False,
        fail_next: bool = False,
        submit_failures: int = 0,
        submit_rejections: int = 0,
        delay_s: float = 0.0,
    ):
        self.questions = questions or []
        self.fail_create = fail_create
        self.fail_next = fail_next
        self.submit_failures = submit_failures
        self.submit_rejections = submit_rejections
        self.delay_s = delay_s

        self.created: List[Optional[str]] = []
        self.next_calls = 0
        self.submit_calls = 0
        self.submitted: List[SubmitResponsePayload] = []

    async def create_session(self, user_id: Optional[str] = None) -> Session:
        await asyncio.sleep(self.delay_s)
        if self.fail_create:
            raise BackendError("POST /sessions failed with status 500", status=500)
        self.created.append(user_id)
        return Session(session_id=f"session-{len(self.created)}")

    async def next_question(self, session_id: str) -> Optional[Question]:
        await asyncio.sleep(self.delay_s)
        self.next_calls += 1
        if self.fail_next:
            raise BackendError("GET next question failed with status 503", status=503)
        if len(self.submitted) >= len(self.questions):
            return None
        return self.questions[len(self.submitted)]

    async def submit_response(self, payload: SubmitResponsePayload) -> Ack:
        await asyncio.sleep(self.delay_s)
        self.submit_calls += 1
        if self.submit_failures > 0:
            self.submit_failures -= 1
            raise BackendError("POST /questions/response failed with status 502", status=502)
        if self.submit_rejections > 0:
            self.submit_rejections -= 1
            return Ack(accepted=False)
        self.submitted.append(payload)
        return Ack(accepted=True, data={"id": f"response-{len(self.submitted)}"})


def make_questions(count: int) -> List[Question]:
    return [
        Question(
            id=f"q{i}",
            text=f"¿Te gustaría trabajar en la actividad {i}?",
            category="realistic",
            riasec_weights={"R": 1.0, "I": 0.5},
        )
        for i in range(1, count + 1)
    ]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short delays so controller tests run quickly."""
    return Settings(
        announcement_delay_ms=10,
        sampler_frame_rate=200,
        submit_max_attempts=2,
        submit_initial_backoff_ms=0,
        submit_max_backoff_ms=0,
        max_verbal_retries=1,
        silence_submit_ms=None,
        listening_timeout_ms=None,
    )


@pytest.fixture
def audio_capture() -> FakeAudioCapture:
    return FakeAudioCapture()


@pytest.fixture
def speech_recognition() -> FakeSpeechRecognition:
    return FakeSpeechRecognition()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or fail after timeout seconds."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.005)

    return _wait_until
