"""
Speech capture adapter.

Normalizes a platform speech recognizer (start/result/end/error events) into a
single-utterance contract: one adapter instance serves exactly one Listening
phase, and stop() always yields whatever transcript has accumulated.
"""

import logging
from typing import Callable, Optional

from vocational_voice.capabilities import (
    SpeechErrorEvent,
    SpeechRecognitionCapability,
    SpeechResultEvent,
)
from vocational_voice.config import settings
from vocational_voice.errors import (
    CaptureUnavailable,
    SpeechCaptureFailed,
    SpeechUnsupported,
    VoiceControllerError,
)
from vocational_voice.orchestration.transcript_buffer import TranscriptBuffer

logger = logging.getLogger(__name__)

# Recognizer error codes meaning the microphone itself is unusable
CAPTURE_ERROR_CODES = frozenset({"not-allowed", "service-not-allowed", "audio-capture"})

# Recognizer error codes that only mean "nothing (more) was heard"
BENIGN_ERROR_CODES = frozenset({"no-speech", "aborted"})


class SpeechCaptureAdapter:
    """
    One Listening phase worth of speech recognition.

    Key Features:
    - Raises SpeechUnsupported at construction when the host lacks recognition
    - Interim/final merge handled by TranscriptBuffer
    - stop() is idempotent and never raises, even racing a natural end
    - Events arriving after stop() are ignored
    """

    def __init__(
        self,
        speech_recognition: Optional[SpeechRecognitionCapability],
        on_transcript: Optional[Callable[[str], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[VoiceControllerError], None]] = None,
        locale: Optional[str] = None,
        continuous: Optional[bool] = None,
        interim_results: Optional[bool] = None,
    ):
        """
        Initialize adapter.

        Args:
            speech_recognition: Host speech-to-text capability
            on_transcript: Called with the best-known transcript after each result
            on_end: Called when the recognizer ends on its own
            on_error: Called with a typed error for non-benign recognizer errors
            locale: Recognition language (defaults to settings.speech_locale)
            continuous: Keep recognizing after the first utterance
            interim_results: Request provisional results

        Raises:
            SpeechUnsupported: Host has no speech recognition
        """
        if speech_recognition is None:
            raise SpeechUnsupported("Speech recognition is not supported on this host")
        try:
            supported = speech_recognition.is_supported()
        except Exception as e:
            raise SpeechUnsupported(f"Speech recognition support check failed: {e}", cause=e) from e
        if not supported:
            raise SpeechUnsupported("Speech recognition is not supported on this host")

        self.on_transcript = on_transcript
        self.on_end = on_end
        self.on_error = on_error
        self.locale = locale or settings.speech_locale
        self.continuous = settings.speech_continuous if continuous is None else continuous
        self.interim_results = (
            settings.speech_interim_results if interim_results is None else interim_results
        )

        self.buffer = TranscriptBuffer()
        try:
            self._recognizer = speech_recognition.create_recognizer()
        except Exception as e:
            raise SpeechUnsupported(f"Speech recognizer could not be created: {e}", cause=e) from e

        self._started = False
        self._capturing = False
        self._ended = False
        self._stopped = False

    @property
    def transcript(self) -> str:
        """Best-known transcript so far."""
        return self.buffer.text

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def has_ended(self) -> bool:
        """True once the recognizer ended by itself."""
        return self._ended

    def start(self) -> None:
        """
        Clear the buffer and begin capture.

        Raises:
            RuntimeError: Adapter was already started
            CaptureUnavailable: Recognizer refused to start
        """
        if self._started:
            raise RuntimeError("SpeechCaptureAdapter serves a single Listening phase")
        self._started = True

        recognizer = self._recognizer
        recognizer.lang = self.locale
        recognizer.continuous = self.continuous
        recognizer.interim_results = self.interim_results
        recognizer.max_alternatives = 1

        recognizer.on_start = self._handle_start
        recognizer.on_result = self._handle_result
        recognizer.on_end = self._handle_end
        recognizer.on_error = self._handle_error

        self.buffer.clear()
        self._capturing = True

        try:
            recognizer.start()
        except Exception as e:
            self._capturing = False
            self._stopped = True
            self._detach()
            logger.error(f"Speech recognizer failed to start: {e}")
            raise CaptureUnavailable(f"Speech recognition could not start: {e}", cause=e) from e

        logger.info(f"Speech capture started (lang={self.locale}, interim={self.interim_results})")

    def stop(self) -> str:
        """
        End capture early and return the accumulated transcript.

        Returns:
            Transcript value at the moment of stopping
        """
        if not self._stopped:
            self._stopped = True
            self.buffer.lock()
            if self._capturing and not self._ended:
                try:
                    self._recognizer.stop()
                except Exception as e:
                    # Recognizer finished on its own between our check and stop()
                    logger.debug(f"Recognizer stop raced natural end: {e}")
            self._capturing = False
            self._detach()
            logger.info(f"Speech capture stopped: '{self.transcript[:60]}'")
        return self.transcript

    def abort(self) -> None:
        """Discard capture without waiting for pending results."""
        if self._stopped:
            return
        self._stopped = True
        self.buffer.lock()
        if self._capturing and not self._ended:
            try:
                self._recognizer.abort()
            except Exception as e:
                logger.debug(f"Recognizer abort raced natural end: {e}")
        self._capturing = False
        self._detach()
        logger.info("Speech capture aborted")

    def _detach(self) -> None:
        recognizer = self._recognizer
        recognizer.on_start = None
        recognizer.on_result = None
        recognizer.on_end = None
        recognizer.on_error = None

    def _handle_start(self) -> None:
        if self._stopped:
            return
        logger.debug("Recognizer reported start")

    def _handle_result(self, event: SpeechResultEvent) -> None:
        if self._stopped:
            return

        for index in range(event.result_index, len(event.results)):
            result = event.results[index]
            if result.is_final:
                self.buffer.add_final(index, result.transcript, result.confidence)
            else:
                self.buffer.add_partial(index, result.transcript, result.confidence)

        if self.on_transcript:
            self.on_transcript(self.transcript)

    def _handle_end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._capturing = False
        if self._stopped:
            return
        logger.info("Recognizer ended on its own")
        if self.on_end:
            self.on_end()

    def _handle_error(self, event: SpeechErrorEvent) -> None:
        if self._stopped:
            return

        if event.error in BENIGN_ERROR_CODES:
            logger.debug(f"Recognizer ended without speech: {event.error}")
            return

        if event.error in CAPTURE_ERROR_CODES:
            error: VoiceControllerError = CaptureUnavailable(
                f"Microphone unavailable for speech recognition: {event.error}"
            )
        else:
            error = SpeechCaptureFailed(
                f"Speech recognition error: {event.error} {event.message}".strip()
            )

        logger.error(f"Speech recognition error: {event.error} ({event.message})")
        if self.on_error:
            self.on_error(error)

    def __repr__(self) -> str:
        if self._stopped:
            status = "stopped"
        elif self._capturing:
            status = "capturing"
        else:
            status = "idle"
        return f"SpeechCaptureAdapter(lang={self.locale}, {status})"
