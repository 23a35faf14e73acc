"""
Turn Controller - Orchestrates the voice question/answer loop.

Coordinates:
- State machine transitions
- Question announcement (narrator or fixed delay)
- Microphone level sampling and speech capture during LISTENING
- Response classification and submission
- Session progression until the backend runs out of questions

Critical: capture resources (sampler + speech adapter) are held only while
LISTENING. Every transition out of LISTENING releases both.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, List, Optional, Set

from vocational_voice.audio.level_sampler import AudioLevelSampler, SamplerHandle
from vocational_voice.capabilities import (
    AudioCaptureCapability,
    Narrator,
    SpeechRecognitionCapability,
    negotiate_capabilities,
)
from vocational_voice.config import Settings, settings as default_settings
from vocational_voice.errors import (
    CaptureUnavailable,
    QuestionFetchFailed,
    RetriesExhausted,
    SessionCreateFailed,
    SpeechUnsupported,
    SubmissionFailed,
    VoiceControllerError,
)
from vocational_voice.models import (
    CapabilityReport,
    InteractionState,
    Question,
    ResponseRecord,
    Session,
)
from vocational_voice.orchestration.announcement_timer import AnnouncementTimer
from vocational_voice.orchestration.response_classifier import ResponseClassifier
from vocational_voice.orchestration.session_progression import SessionProgression
from vocational_voice.orchestration.silence_timer import SilenceTimer
from vocational_voice.session.client import TestSessionService
from vocational_voice.speech.capture_adapter import SpeechCaptureAdapter
from vocational_voice.state_machine import StateMachine

logger = logging.getLogger(__name__)


class TurnController:
    """
    Runs one vocational test session by voice.

    State Flow:
    IDLE → SESSION_STARTING → SPEAKING → LISTENING → THINKING → SPEAKING ...
                                             ↑           ↓ (submission failed)
                                             └───────────┘
    THINKING → IDLE when the backend reports no further question.

    start() and stop_listening() change state before returning; backend calls
    and capability acquisition continue as asyncio tasks.
    """

    def __init__(
        self,
        session_service: TestSessionService,
        audio_capture: Optional[AudioCaptureCapability],
        speech_recognition: Optional[SpeechRecognitionCapability],
        narrator: Optional[Narrator] = None,
        user_id: Optional[str] = None,
        on_session_complete: Optional[Callable[[str], Any]] = None,
        on_state_change: Optional[Callable[[InteractionState, InteractionState], Any]] = None,
        on_error: Optional[Callable[[VoiceControllerError], Any]] = None,
        on_audio_level: Optional[Callable[[float], None]] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
        on_response_recorded: Optional[Callable[[ResponseRecord], Any]] = None,
        classifier: Optional[ResponseClassifier] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.user_id = user_id

        # Callbacks (sync or async)
        self.on_session_complete = on_session_complete
        self.on_state_change = on_state_change
        self.on_error = on_error
        self.on_audio_level = on_audio_level
        self.on_transcript = on_transcript
        self.on_response_recorded = on_response_recorded

        # Capabilities (negotiated once)
        self.audio_capture = audio_capture
        self.speech_recognition = speech_recognition
        self.capabilities: CapabilityReport = negotiate_capabilities(
            audio_capture, speech_recognition, narrator
        )

        # Core components
        self.state_machine = StateMachine()
        self.state_machine.register_on_transition(self._notify_state_change)
        self.progression = SessionProgression(session_service, config=self.config)
        self.classifier = classifier or ResponseClassifier()
        self.announcer = AnnouncementTimer(
            on_announcement_complete=self._on_announcement_complete,
            delay_ms=self.config.announcement_delay_ms,
            narrator=narrator,
            ms_per_char=self.config.announcement_ms_per_char,
            padding_ms=self.config.announcement_padding_ms,
        )
        self.silence_timer: Optional[SilenceTimer] = None
        if self.config.silence_submit_ms is not None:
            self.silence_timer = SilenceTimer(
                self._on_silence_detected, self.config.silence_submit_ms, name="silence"
            )
        self.listening_timer: Optional[SilenceTimer] = None
        if self.config.listening_timeout_ms is not None:
            self.listening_timer = SilenceTimer(
                self._on_listening_timeout, self.config.listening_timeout_ms, name="listening deadline"
            )
        self.sampler: Optional[AudioLevelSampler] = None
        if audio_capture is not None:
            self.sampler = AudioLevelSampler(
                audio_capture,
                on_level=self._handle_audio_level,
                frame_rate=self.config.sampler_frame_rate,
                fft_size=self.config.analyser_fft_size,
                smoothing=self.config.analyser_smoothing,
            )

        # Session state
        self._session: Optional[Session] = None
        self._current_question: Optional[Question] = None
        self._records: List[ResponseRecord] = []
        self._completed_session_id: Optional[str] = None
        self._verbal_retries = 0
        self._question_started_at: Optional[float] = None

        # Listening phase resources
        self._adapter: Optional[SpeechCaptureAdapter] = None
        self._sampler_handle: Optional[SamplerHandle] = None
        self._transcript = ""
        self._last_heard = ""
        self._audio_level = 0.0

        # Background work; _epoch invalidates tasks from an aborted/failed run
        self._tasks: Set[asyncio.Task] = set()
        self._epoch = 0
        self._speech_unsupported_reported = False

        logger.info(f"TurnController initialized (user={user_id}, voice_ready={self.capabilities.voice_ready})")

    # ------------------------------------------------------------------
    # Read-only interface
    # ------------------------------------------------------------------

    @property
    def current_state(self) -> InteractionState:
        return self.state_machine.current_state

    @property
    def current_question(self) -> Optional[Question]:
        return self._current_question

    @property
    def transcript(self) -> str:
        """Live transcript while LISTENING, last captured transcript otherwise."""
        if self._adapter is not None:
            return self._adapter.transcript
        return self._transcript

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def audio_level(self) -> float:
        return self._audio_level

    @property
    def records(self) -> List[ResponseRecord]:
        """Responses accepted by the backend in the current/last session."""
        return list(self._records)

    @property
    def is_capturing(self) -> bool:
        return self._adapter is not None or self._sampler_handle is not None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Start a new test session.

        Returns:
            True if a session start was initiated, False if ignored
        """
        if self.current_state != InteractionState.IDLE:
            logger.debug(f"start() ignored in state {self.current_state.value}")
            return False

        if not self.capabilities.speech_recognition:
            if not self._speech_unsupported_reported:
                self._speech_unsupported_reported = True
                await self._emit_error(
                    SpeechUnsupported("Speech recognition is not supported on this host")
                )
            return False

        if not self.capabilities.audio_capture or self.sampler is None:
            await self._emit_error(CaptureUnavailable("No microphone capture available"))
            return False

        self._epoch += 1
        self._records = []
        self._transcript = ""
        await self._transition(InteractionState.SESSION_STARTING, "user start")
        self._spawn(self._run_session_start(self._epoch))
        return True

    async def stop_listening(self) -> bool:
        """
        Finish the current answer.

        Returns:
            True if the answer was taken, False if not LISTENING
        """
        if self.current_state != InteractionState.LISTENING:
            logger.debug(f"stop_listening() ignored in state {self.current_state.value}")
            return False

        transcript = self._release_capture()
        response_time_ms = self._elapsed_ms()

        await self._transition(InteractionState.THINKING, "user stopped listening")
        self._spawn(self._run_thinking(self._epoch, transcript, response_time_ms))
        return True

    async def abort(self) -> bool:
        """
        Abandon the session from any state. No completion notification fires.

        Returns:
            True if a running session was abandoned
        """
        if self.current_state == InteractionState.IDLE:
            return False

        logger.info(f"Aborting session {self._session.session_id if self._session else None}")
        self._epoch += 1
        self.announcer.cancel()
        self._release_capture(abort=True)
        self._cancel_tasks()

        await self._transition(InteractionState.IDLE, "user aborted")
        self._discard_session()
        return True

    async def close(self) -> None:
        """Abort any running session and release every resource."""
        await self.abort()
        if self.sampler is not None:
            self.sampler.stop_all()

    # ------------------------------------------------------------------
    # Session flow
    # ------------------------------------------------------------------

    async def _run_session_start(self, epoch: int) -> None:
        try:
            session = await self.progression.create_session(self.user_id)
        except SessionCreateFailed as e:
            if not self._is_stale(epoch):
                await self._fail(e)
            return

        if self._is_stale(epoch):
            return

        self._session = session
        await self._advance(epoch)

    async def _advance(self, epoch: int) -> None:
        """Fetch the next question and announce it, or complete the session."""
        session = self._session
        if session is None:
            return

        try:
            question = await self.progression.next_question(session.session_id)
        except QuestionFetchFailed as e:
            if not self._is_stale(epoch):
                await self._fail(e)
            return

        if self._is_stale(epoch):
            return

        if question is None:
            await self._complete_session(session)
            return

        self._current_question = question
        self._verbal_retries = 0
        self._transcript = ""
        self._question_started_at = time.monotonic()

        if await self._transition(InteractionState.SPEAKING, f"question {question.id} ready"):
            self.announcer.start(question.text)

    async def _on_announcement_complete(self) -> None:
        if self.current_state != InteractionState.SPEAKING:
            logger.warning(f"Announcement finished in {self.current_state.value} state - ignoring")
            return
        await self._enter_listening("announcement complete")

    async def _enter_listening(self, reason: str) -> None:
        """Acquire sampler and speech adapter, then move to LISTENING."""
        adapter: Optional[SpeechCaptureAdapter] = None
        handle: Optional[SamplerHandle] = None

        try:
            adapter = SpeechCaptureAdapter(
                self.speech_recognition,
                on_transcript=self._handle_transcript,
                on_end=self._handle_speech_end,
                on_error=self._handle_speech_error,
                locale=self.config.speech_locale,
                continuous=self.config.speech_continuous,
                interim_results=self.config.speech_interim_results,
            )
            handle = self.sampler.start()
            adapter.start()
        except Exception as e:
            self.sampler.stop(handle)
            if adapter is not None:
                adapter.abort()
            if not isinstance(e, (CaptureUnavailable, SpeechUnsupported)):
                logger.error(f"Unexpected error starting capture: {e}", exc_info=True)
                e = CaptureUnavailable(f"Listening could not start: {e}", cause=e)
            await self._fail(e)
            return

        self._adapter = adapter
        self._sampler_handle = handle
        self._transcript = ""
        self._last_heard = ""

        if not await self._transition(InteractionState.LISTENING, reason):
            self._release_capture(abort=True)
            return

        if self.listening_timer is not None and self.current_state == InteractionState.LISTENING:
            self.listening_timer.start()

    async def _run_thinking(self, epoch: int, transcript: str, response_time_ms: int) -> None:
        session = self._session
        question = self._current_question
        if session is None or question is None:
            return

        value = self.classifier.classify(transcript)
        record = self.progression.build_record(session, question, value)
        logger.info(f"Answer classified: '{transcript[:60]}' -> {value}")

        try:
            await self.progression.submit_response(session, record, question, response_time_ms)
        except SubmissionFailed as e:
            if self._is_stale(epoch):
                return
            await self._handle_submission_failure(e)
            return

        if self._is_stale(epoch):
            return

        self._records.append(record)
        await self._invoke(self.on_response_recorded, record)
        await self._advance(epoch)

    async def _handle_submission_failure(self, error: SubmissionFailed) -> None:
        self._verbal_retries += 1
        if self._verbal_retries > self.config.max_verbal_retries:
            await self._fail(RetriesExhausted(
                f"Gave up after {self._verbal_retries} failed submissions for the same question",
                cause=error,
            ))
            return

        logger.warning(
            f"Submission failed, asking again "
            f"({self._verbal_retries}/{self.config.max_verbal_retries})"
        )
        await self._emit_error(error)
        await self._enter_listening("submission failed - retry")

    async def _complete_session(self, session: Session) -> None:
        self._current_question = None
        await self._transition(InteractionState.IDLE, "test complete")

        if session.session_id != self._completed_session_id:
            self._completed_session_id = session.session_id
            logger.info(f"Session complete: {session.session_id} ({len(self._records)} responses)")
            await self._invoke(self.on_session_complete, session.session_id)

        self._discard_session()

    async def _fail(self, error: VoiceControllerError) -> None:
        """Unrecoverable error: release everything, go IDLE, surface the error."""
        logger.error(f"Voice session failed: {error!r}")
        self._epoch += 1
        self.announcer.cancel()
        self._release_capture(abort=True)

        if self.current_state != InteractionState.IDLE:
            await self._transition(InteractionState.IDLE, f"error: {error.code}")
        self._discard_session()
        await self._emit_error(error)

    # ------------------------------------------------------------------
    # Capture resources
    # ------------------------------------------------------------------

    def _release_capture(self, abort: bool = False) -> str:
        """Release sampler, speech adapter and listening timers; returns the final transcript."""
        self._cancel_listening_timers()

        if self._sampler_handle is not None and self.sampler is not None:
            self.sampler.stop(self._sampler_handle)
        self._sampler_handle = None

        if self._adapter is not None:
            if abort:
                self._adapter.abort()
                self._transcript = self._adapter.transcript
            else:
                self._transcript = self._adapter.stop()
            self._adapter = None

        self._audio_level = 0.0
        return self._transcript

    def _cancel_listening_timers(self) -> None:
        if self.silence_timer is not None:
            self.silence_timer.cancel()
        if self.listening_timer is not None:
            self.listening_timer.cancel()

    def _handle_audio_level(self, level: float) -> None:
        if self.current_state != InteractionState.LISTENING:
            return
        self._audio_level = level
        if self.on_audio_level:
            try:
                self.on_audio_level(level)
            except Exception as e:
                logger.error(f"Error in on_audio_level callback: {e}", exc_info=True)

    def _handle_transcript(self, text: str) -> None:
        if (
            self.silence_timer is not None
            and self.current_state == InteractionState.LISTENING
            and text
            and text != self._last_heard
        ):
            self._last_heard = text
            self.silence_timer.start()

        if self.on_transcript:
            try:
                self.on_transcript(text)
            except Exception as e:
                logger.error(f"Error in on_transcript callback: {e}", exc_info=True)

    async def _on_silence_detected(self) -> None:
        if self.current_state != InteractionState.LISTENING:
            return
        logger.info(f"Silence after speech ({self.config.silence_submit_ms}ms) - finishing answer")
        await self.stop_listening()

    async def _on_listening_timeout(self) -> None:
        if self.current_state != InteractionState.LISTENING:
            return
        logger.info(f"Listening deadline ({self.config.listening_timeout_ms}ms) reached - finishing answer")
        await self.stop_listening()

    def _handle_speech_end(self) -> None:
        if self.config.auto_submit_on_speech_end and self.current_state == InteractionState.LISTENING:
            logger.info("Speech ended naturally - finishing answer")
            self._spawn(self.stop_listening())
        else:
            logger.debug("Speech ended naturally - waiting for stop_listening()")

    def _handle_speech_error(self, error: VoiceControllerError) -> None:
        if isinstance(error, CaptureUnavailable):
            self._spawn(self._fail(error))
        else:
            self._spawn(self._emit_error(error))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _transition(self, to_state: InteractionState, reason: str) -> bool:
        """Apply a transition, releasing capture when leaving LISTENING."""
        from_state = self.state_machine.current_state
        if from_state == InteractionState.LISTENING and to_state != InteractionState.LISTENING:
            self._release_capture(abort=to_state == InteractionState.IDLE)

        if not self.state_machine.apply(to_state, reason):
            return False

        await self.state_machine.notify_transition(from_state, to_state)
        return True

    async def _notify_state_change(self, from_state: InteractionState, to_state: InteractionState) -> None:
        await self._invoke(self.on_state_change, from_state, to_state)

    async def _emit_error(self, error: VoiceControllerError) -> None:
        await self._invoke(self.on_error, error)

    async def _invoke(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in controller callback {getattr(callback, '__name__', callback)}: {e}", exc_info=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Controller task failed: {error}", exc_info=error)

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()

    def _is_stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    def _elapsed_ms(self) -> int:
        if self._question_started_at is None:
            return 0
        return int((time.monotonic() - self._question_started_at) * 1000)

    def _discard_session(self) -> None:
        self._session = None
        self._current_question = None
        self._question_started_at = None
        self._verbal_retries = 0

    def __repr__(self) -> str:
        session_id = self._session.session_id if self._session else None
        return f"TurnController(state={self.current_state.value}, session={session_id})"
