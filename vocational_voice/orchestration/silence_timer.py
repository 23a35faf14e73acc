"""
Silence timer for the LISTENING phase.

Restarts on every transcript change and fires once the speaker has been quiet
for the configured window. The controller also uses one as the listening
deadline (started once on entering LISTENING, never restarted).
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SilenceTimer:
    """
    Restartable one-shot timer.

    Key Features:
    - start() while running restarts the countdown
    - Cancellable; the callback never fires after cancel()
    - Callback errors are logged, never left on the task
    """

    def __init__(
        self,
        on_silence_complete: Callable[[], Awaitable[None]],
        silence_ms: int = 2000,
        name: str = "silence",
    ):
        """
        Initialize silence timer.

        Args:
            on_silence_complete: Callback to invoke when the window elapses
            silence_ms: Window duration
            name: Label used in log messages
        """
        self.on_silence_complete = on_silence_complete
        self.silence_ms = silence_ms
        self.name = name

        self._timer_task: Optional[asyncio.Task] = None
        self._is_running = False

    def start(self) -> None:
        """Start the timer, restarting the countdown if already running."""
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()

        self._is_running = True
        self._timer_task = asyncio.create_task(self._run_timer())
        logger.debug(f"{self.name} timer started: {self.silence_ms}ms")

    def cancel(self) -> None:
        """Cancel the running timer."""
        if not self._is_running:
            return

        self._is_running = False

        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
            logger.debug(f"{self.name} timer cancelled")

    def is_running(self) -> bool:
        """Check if timer is currently active."""
        return self._is_running

    def set_silence_ms(self, silence_ms: int) -> None:
        """Change the window (clamped at 0); applies from the next start()."""
        old_value = self.silence_ms
        self.silence_ms = max(0, silence_ms)
        logger.info(f"{self.name} window set: {old_value}ms -> {self.silence_ms}ms")

    async def _run_timer(self) -> None:
        try:
            await asyncio.sleep(self.silence_ms / 1000.0)

            # Still running means nobody cancelled during the sleep
            if self._is_running:
                logger.debug(f"{self.name} window elapsed - triggering callback")
                self._is_running = False
                await self.on_silence_complete()

        except asyncio.CancelledError:
            logger.debug(f"{self.name} timer task cancelled")
        except Exception as e:
            logger.error(f"Error in {self.name} timer callback: {e}", exc_info=True)

    def __repr__(self) -> str:
        status = "running" if self._is_running else "idle"
        return f"SilenceTimer({self.name}, window={self.silence_ms}ms, status={status})"
