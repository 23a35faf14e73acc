"""
Announcement timer for the SPEAKING phase.

Waits until the current question has been read aloud, then fires a callback
that moves the controller to LISTENING. With a narrator the wait ends when
narration completes; without one a fixed, configurable delay is used.
The wait is cancellable at any point (user abort).
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from vocational_voice.capabilities import Narrator

logger = logging.getLogger(__name__)


class AnnouncementTimer:
    """
    Cancellable question announcement.

    Key Features:
    - Narrator completion event when a narrator is available
    - Fixed delay fallback (degraded mode)
    - Restarting cancels the previous announcement
    - Callback never fires after cancel()
    """

    def __init__(
        self,
        on_announcement_complete: Callable[[], Awaitable[None]],
        delay_ms: int = 3000,
        narrator: Optional[Narrator] = None,
        ms_per_char: Optional[int] = None,
        padding_ms: int = 1000,
    ):
        """
        Initialize announcement timer.

        Args:
            on_announcement_complete: Callback invoked when the announcement ends
            delay_ms: Fixed delay used when no narrator is available (also the
                floor of the length-based estimate)
            narrator: Optional text-to-speech narrator
            ms_per_char: Per-character estimate of reading time; None keeps delay_ms
            padding_ms: Added to the per-character estimate
        """
        self.on_announcement_complete = on_announcement_complete
        self.delay_ms = delay_ms
        self.narrator = narrator
        self.ms_per_char = ms_per_char
        self.padding_ms = padding_ms

        self._timer_task: Optional[asyncio.Task] = None
        self._is_running = False

    @property
    def uses_narrator(self) -> bool:
        return self.narrator is not None

    def start(self, text: str = "", override_ms: Optional[int] = None) -> None:
        """
        Start announcing.

        If an announcement is already running, it is cancelled and replaced.

        Args:
            text: Text to narrate
            override_ms: Fixed delay to use instead of delay_ms (degraded mode only)
        """
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()

        self._is_running = True
        self._timer_task = asyncio.create_task(self._run(text, override_ms))

        if self.narrator:
            logger.debug(f"Announcement started via narrator: '{text[:40]}'")
        else:
            duration = override_ms if override_ms is not None else self.duration_for(text)
            logger.debug(f"Announcement started: fixed delay {duration}ms")

    def cancel(self) -> None:
        """Cancel the running announcement."""
        if not self._is_running:
            return

        self._is_running = False

        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
            logger.debug("Announcement cancelled")

    def is_running(self) -> bool:
        """Check if an announcement is in progress."""
        return self._is_running

    def duration_for(self, text: str) -> int:
        """
        Fixed-delay duration for a question.

        With ms_per_char set: max(delay_ms, len(text) * ms_per_char + padding_ms).
        """
        if self.ms_per_char is None:
            return self.delay_ms
        return max(self.delay_ms, len(text) * self.ms_per_char + self.padding_ms)

    def set_delay_ms(self, delay_ms: int) -> None:
        """Change the fixed delay (clamped at 0)."""
        old_value = self.delay_ms
        self.delay_ms = max(0, delay_ms)
        logger.info(f"Announcement delay set: {old_value}ms -> {self.delay_ms}ms")

    async def _run(self, text: str, override_ms: Optional[int]) -> None:
        """Wait for narration or the delay, then invoke the callback if not cancelled."""
        try:
            if self.narrator:
                try:
                    await self.narrator.speak(text)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"Narration failed, continuing without audio: {e}")
            else:
                duration_ms = override_ms if override_ms is not None else self.duration_for(text)
                await asyncio.sleep(duration_ms / 1000.0)

            if self._is_running:
                self._is_running = False
                logger.debug("Announcement complete - triggering callback")
                await self.on_announcement_complete()

        except asyncio.CancelledError:
            logger.debug("Announcement task cancelled")
        except Exception as e:
            logger.error(f"Error in announcement callback: {e}", exc_info=True)

    def __repr__(self) -> str:
        status = "running" if self._is_running else "idle"
        mode = "narrator" if self.narrator else f"delay={self.delay_ms}ms"
        return f"AnnouncementTimer({mode}, status={status})"
