"""
Audio level sampler for listening feedback.

Wraps a live microphone stream and a frequency analyser, producing a
normalized loudness value in [0, 1] once per display frame while the
controller is LISTENING. Values are advisory only and never gate a state
transition.
"""

import asyncio
import itertools
import logging
import math
from typing import Callable, Dict, Optional, Sequence

import numpy as np

from vocational_voice.capabilities import AudioCaptureCapability, AudioStream, FrequencyAnalyser
from vocational_voice.config import settings
from vocational_voice.errors import CaptureUnavailable

logger = logging.getLogger(__name__)

# Byte frequency data spans 0..255
DEFAULT_VALUE_RANGE = 255.0


def compute_level(snapshot: Sequence[float], value_range: float = DEFAULT_VALUE_RANGE) -> float:
    """
    Average magnitude of a frequency-domain snapshot, normalized by the
    analyser's value range.

    Args:
        snapshot: Frequency bin magnitudes
        value_range: Largest magnitude the analyser can report

    Returns:
        Loudness in [0, 1]; 0.0 for empty or non-finite input
    """
    if not value_range or not math.isfinite(value_range) or value_range <= 0:
        return 0.0

    data = np.asarray(snapshot, dtype=np.float64).ravel()
    data = data[np.isfinite(data)]
    if data.size == 0:
        return 0.0

    level = float(np.abs(data).mean()) / float(value_range)
    return min(1.0, max(0.0, level))


class SamplerHandle:
    """Resources owned by one start()/stop() cycle of the sampler."""

    def __init__(self, handle_id: int, stream: AudioStream, analyser: FrequencyAnalyser):
        self.handle_id = handle_id
        self.stream = stream
        self.analyser = analyser
        self.task: Optional[asyncio.Task] = None
        self.stopped = False
        self.ticks = 0

    @property
    def is_active(self) -> bool:
        return not self.stopped

    def __repr__(self) -> str:
        status = "stopped" if self.stopped else "active"
        return f"SamplerHandle(id={self.handle_id}, ticks={self.ticks}, {status})"


class AudioLevelSampler:
    """
    Periodic loudness sampler over an audio capture capability.

    Key Features:
    - One stream + analyser acquired per start(), released by stop()
    - stop() is idempotent and releases everything synchronously
    - Ticks that race with stop() never reach the callback
    - active_resources exposes the number of live acquisitions
    """

    def __init__(
        self,
        audio_capture: AudioCaptureCapability,
        on_level: Callable[[float], None],
        frame_rate: Optional[float] = None,
        fft_size: Optional[int] = None,
        smoothing: Optional[float] = None,
    ):
        """
        Initialize sampler.

        Args:
            audio_capture: Capability providing streams and analysers
            on_level: Callback receiving each loudness value
            frame_rate: Callbacks per second (defaults to settings)
            fft_size: Analyser FFT size (defaults to settings)
            smoothing: Analyser smoothing constant (defaults to settings)
        """
        self.audio_capture = audio_capture
        self.on_level = on_level
        self.frame_rate = frame_rate or settings.sampler_frame_rate
        self.fft_size = fft_size or settings.analyser_fft_size
        self.smoothing = settings.analyser_smoothing if smoothing is None else smoothing

        self._handles: Dict[int, SamplerHandle] = {}
        self._ids = itertools.count(1)

    @property
    def active_resources(self) -> int:
        """Number of handles whose stream/analyser are still held."""
        return len(self._handles)

    def start(self) -> SamplerHandle:
        """
        Acquire the microphone and start sampling.

        Returns:
            Handle to pass to stop()

        Raises:
            CaptureUnavailable: Permission denied, no device, or unsupported host
        """
        try:
            stream = self.audio_capture.get_stream()
        except CaptureUnavailable:
            raise
        except Exception as e:
            logger.error(f"Microphone access failed: {e}")
            raise CaptureUnavailable(f"Microphone unavailable: {e}", cause=e) from e

        try:
            analyser = self.audio_capture.create_analyser(stream, self.fft_size, self.smoothing)
        except Exception as e:
            logger.error(f"Audio analyser setup failed: {e}")
            self._release_stream(stream)
            raise CaptureUnavailable(f"Audio analysis unavailable: {e}", cause=e) from e

        handle = SamplerHandle(next(self._ids), stream, analyser)
        self._handles[handle.handle_id] = handle
        handle.task = asyncio.create_task(self._run(handle))

        logger.debug(
            f"Audio level sampler started: handle={handle.handle_id}, "
            f"{self.frame_rate:g} Hz, fft_size={self.fft_size}"
        )
        return handle

    def stop(self, handle: Optional[SamplerHandle]) -> None:
        """
        Stop sampling and release the stream and analyser.

        Safe to call repeatedly and with None.
        """
        if handle is None or handle.stopped:
            return

        handle.stopped = True

        if handle.task and not handle.task.done():
            handle.task.cancel()

        try:
            handle.analyser.close()
        except Exception as e:
            logger.warning(f"Error closing audio analyser: {e}")
        self._release_stream(handle.stream)

        self._handles.pop(handle.handle_id, None)
        logger.debug(f"Audio level sampler stopped: handle={handle.handle_id}, ticks={handle.ticks}")

    def stop_all(self) -> None:
        """Release every live handle."""
        for handle in list(self._handles.values()):
            self.stop(handle)

    def _release_stream(self, stream: AudioStream) -> None:
        try:
            stream.stop()
        except Exception as e:
            logger.warning(f"Error stopping audio stream: {e}")

    async def _run(self, handle: SamplerHandle) -> None:
        """Sample once per frame until the handle is stopped."""
        interval = 1.0 / self.frame_rate
        try:
            while not handle.stopped:
                level = compute_level(
                    handle.analyser.get_frequency_data(),
                    getattr(handle.analyser, "value_range", DEFAULT_VALUE_RANGE),
                )
                if handle.stopped:
                    return
                handle.ticks += 1
                try:
                    self.on_level(level)
                except Exception as e:
                    logger.error(f"Error in audio level callback: {e}", exc_info=True)
                await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.debug(f"Sampler task cancelled: handle={handle.handle_id}")
        except Exception as e:
            logger.error(f"Audio level sampling failed: {e}", exc_info=True)

    def __repr__(self) -> str:
        return f"AudioLevelSampler({self.frame_rate:g} Hz, active={self.active_resources})"
