"""
Platform capability contracts consumed by the voice controller.

The controller never binds to a concrete audio or speech API. Hosts plug in
objects satisfying these protocols; negotiate_capabilities() probes them once
and produces a typed CapabilityReport for the state machine.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from vocational_voice.models import CapabilityReport

logger = logging.getLogger(__name__)


# ============================================================================
# Speech-to-text events
# ============================================================================

@dataclass(frozen=True)
class SpeechResult:
    """Best alternative of one recognition result slot."""
    transcript: str
    is_final: bool
    confidence: float = 0.0


@dataclass(frozen=True)
class SpeechResultEvent:
    """
    Recognizer result event.

    results holds every slot of the current utterance; slots before
    result_index are unchanged since the previous event.
    """
    result_index: int
    results: List[SpeechResult] = field(default_factory=list)


@dataclass(frozen=True)
class SpeechErrorEvent:
    error: str
    message: str = ""


# ============================================================================
# Capability protocols
# ============================================================================

class SpeechRecognizer(Protocol):
    lang: str
    continuous: bool
    interim_results: bool
    max_alternatives: int

    on_start: Optional[Callable[[], None]]
    on_result: Optional[Callable[[SpeechResultEvent], None]]
    on_end: Optional[Callable[[], None]]
    on_error: Optional[Callable[[SpeechErrorEvent], None]]

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class SpeechRecognitionCapability(Protocol):
    def is_supported(self) -> bool: ...

    def create_recognizer(self) -> SpeechRecognizer: ...


class AudioStream(Protocol):
    def stop(self) -> None: ...


class FrequencyAnalyser(Protocol):
    frequency_bin_count: int
    value_range: float

    def get_frequency_data(self) -> Sequence[float]: ...

    def close(self) -> None: ...


class AudioCaptureCapability(Protocol):
    def is_available(self) -> bool: ...

    def get_stream(self) -> AudioStream: ...

    def create_analyser(self, stream: AudioStream, fft_size: int, smoothing: float) -> FrequencyAnalyser: ...


class Narrator(Protocol):
    async def speak(self, text: str) -> None: ...


# ============================================================================
# Negotiation
# ============================================================================

def _probe(name: str, probe: Optional[Callable[[], bool]]) -> bool:
    if probe is None:
        return False
    try:
        return bool(probe())
    except Exception as e:
        logger.warning(f"{name} capability probe failed: {e}")
        return False


def negotiate_capabilities(
    audio_capture: Optional[AudioCaptureCapability],
    speech_recognition: Optional[SpeechRecognitionCapability],
    narrator: Optional[Narrator] = None,
) -> CapabilityReport:
    """
    Probe the host capabilities once.

    Args:
        audio_capture: Microphone/analyser capability, or None if absent
        speech_recognition: Speech-to-text capability, or None if absent
        narrator: Optional text-to-speech narrator

    Returns:
        CapabilityReport consumed by the turn controller
    """
    report = CapabilityReport(
        audio_capture=_probe("Audio capture", audio_capture.is_available if audio_capture else None),
        speech_recognition=_probe(
            "Speech recognition",
            speech_recognition.is_supported if speech_recognition else None,
        ),
        narration=narrator is not None,
    )
    logger.info(
        f"Capabilities negotiated: audio={report.audio_capture}, "
        f"speech={report.speech_recognition}, narration={report.narration}"
    )
    return report
