"""
State Machine for the voice interaction controller.
Implements validated state transitions with lifecycle hooks.

States: IDLE → SESSION_STARTING → SPEAKING → LISTENING → THINKING → SPEAKING ... → IDLE
"""

import logging
from typing import Optional, Callable, Awaitable, Dict, Set
import time

from vocational_voice.models import InteractionState

logger = logging.getLogger(__name__)


class StateMachine:
    """
    State machine for question/answer turn control.

    Enforces valid state transitions and provides hooks for state changes.
    Every state may fall back to IDLE (abort or unrecoverable error).
    """

    # Define all valid state transitions
    ALLOWED_TRANSITIONS: Dict[InteractionState, Set[InteractionState]] = {
        InteractionState.IDLE: {
            InteractionState.SESSION_STARTING,  # User pressed start
        },
        InteractionState.SESSION_STARTING: {
            InteractionState.SPEAKING,  # First question available
            InteractionState.IDLE,  # Session failed or test already complete
        },
        InteractionState.SPEAKING: {
            InteractionState.LISTENING,  # Announcement finished
            InteractionState.IDLE,  # Abort/capture unavailable
        },
        InteractionState.LISTENING: {
            InteractionState.THINKING,  # User finished answering
            InteractionState.IDLE,  # Abort/capture error
        },
        InteractionState.THINKING: {
            InteractionState.SPEAKING,  # Next question available
            InteractionState.LISTENING,  # Submission failed, ask again
            InteractionState.IDLE,  # Test complete or fatal error
        },
    }

    def __init__(self, initial_state: InteractionState = InteractionState.IDLE):
        """
        Initialize state machine.

        Args:
            initial_state: Starting state (default: IDLE)
        """
        self._current_state: InteractionState = initial_state
        self._previous_state: Optional[InteractionState] = None
        self._state_history: list[dict] = []

        # Hooks for state lifecycle events
        self._on_enter_hooks: Dict[InteractionState, list[Callable]] = {
            state: [] for state in InteractionState
        }
        self._on_exit_hooks: Dict[InteractionState, list[Callable]] = {
            state: [] for state in InteractionState
        }
        self._on_transition_hooks: list[Callable] = []

        logger.info(f"State machine initialized in state: {initial_state.value}")
        self._record_state_change(None, initial_state, "initialization")

    @property
    def current_state(self) -> InteractionState:
        """Get current state."""
        return self._current_state

    @property
    def previous_state(self) -> Optional[InteractionState]:
        """Get previous state."""
        return self._previous_state

    @property
    def state_history(self) -> list[dict]:
        """Get state history for debugging/telemetry."""
        return self._state_history.copy()

    def can_transition(self, to_state: InteractionState) -> bool:
        """
        Check if transition to target state is allowed.

        Args:
            to_state: Target state

        Returns:
            True if transition is allowed, False otherwise
        """
        return to_state in self.ALLOWED_TRANSITIONS.get(self._current_state, set())

    def apply(self, to_state: InteractionState, reason: str = "") -> bool:
        """
        Change state immediately without running hooks.

        The controller uses this so that a caller observes the new state as
        soon as start()/stop_listening() returns; hooks run afterwards via
        notify_transition().

        Returns:
            True if transition succeeded, False if not allowed
        """
        if not self.can_transition(to_state):
            self._log_rejected(to_state)
            return False

        from_state = self._current_state
        self._previous_state = from_state
        self._current_state = to_state
        self._record_state_change(from_state, to_state, reason)

        log_msg = f"State transition: {from_state.value} → {to_state.value}"
        if reason:
            log_msg += f" (reason: {reason})"
        logger.info(log_msg)
        return True

    async def transition(self, to_state: InteractionState, reason: str = "") -> bool:
        """
        Transition to new state with validation and hooks.

        Args:
            to_state: Target state
            reason: Optional reason for transition (for logging)

        Returns:
            True if transition succeeded, False if not allowed
        """
        if not self.can_transition(to_state):
            self._log_rejected(to_state)
            return False

        from_state = self._current_state

        # Execute exit hooks for current state
        await self._execute_exit_hooks(from_state)

        self.apply(to_state, reason)

        await self._execute_enter_hooks(to_state)
        await self._execute_transition_hooks(from_state, to_state)
        return True

    async def notify_transition(self, from_state: InteractionState, to_state: InteractionState) -> None:
        """Run exit, enter and transition hooks for a change already made with apply()."""
        await self._execute_exit_hooks(from_state)
        await self._execute_enter_hooks(to_state)
        await self._execute_transition_hooks(from_state, to_state)

    def register_on_enter(
        self,
        state: InteractionState,
        callback: Callable[[], Awaitable[None]]
    ) -> None:
        """
        Register callback to execute when entering a state.

        Args:
            state: State to hook into
            callback: Async callback function
        """
        self._on_enter_hooks[state].append(callback)
        logger.debug(f"Registered on_enter hook for state: {state.value}")

    def register_on_exit(
        self,
        state: InteractionState,
        callback: Callable[[], Awaitable[None]]
    ) -> None:
        """
        Register callback to execute when exiting a state.

        Args:
            state: State to hook into
            callback: Async callback function
        """
        self._on_exit_hooks[state].append(callback)
        logger.debug(f"Registered on_exit hook for state: {state.value}")

    def register_on_transition(
        self,
        callback: Callable[[InteractionState, InteractionState], Awaitable[None]]
    ) -> None:
        """
        Register callback to execute on any state transition.

        Args:
            callback: Async callback function receiving (from_state, to_state)
        """
        self._on_transition_hooks.append(callback)
        logger.debug("Registered on_transition hook")

    async def reset(self) -> None:
        """Reset state machine to IDLE."""
        if self._current_state == InteractionState.IDLE:
            return
        logger.info("Resetting state machine to IDLE")
        await self.transition(InteractionState.IDLE, reason="reset")

    def _log_rejected(self, to_state: InteractionState) -> None:
        logger.warning(
            f"Invalid state transition: {self._current_state.value} → {to_state.value}. "
            f"Allowed transitions: {sorted(s.value for s in self.get_allowed_transitions())}"
        )

    def _record_state_change(
        self,
        from_state: Optional[InteractionState],
        to_state: InteractionState,
        reason: str
    ) -> None:
        """Record state change in history."""
        record = {
            "from_state": from_state.value if from_state else None,
            "to_state": to_state.value,
            "reason": reason,
            "timestamp": int(time.time() * 1000),  # Unix timestamp in milliseconds
        }
        self._state_history.append(record)

    async def _execute_enter_hooks(self, state: InteractionState) -> None:
        """Execute all on_enter hooks for a state."""
        for callback in self._on_enter_hooks[state]:
            try:
                await callback()
            except Exception as e:
                logger.error(f"Error in on_enter hook for {state.value}: {e}", exc_info=True)

    async def _execute_exit_hooks(self, state: InteractionState) -> None:
        """Execute all on_exit hooks for a state."""
        for callback in self._on_exit_hooks[state]:
            try:
                await callback()
            except Exception as e:
                logger.error(f"Error in on_exit hook for {state.value}: {e}", exc_info=True)

    async def _execute_transition_hooks(
        self,
        from_state: InteractionState,
        to_state: InteractionState
    ) -> None:
        """Execute all on_transition hooks."""
        for callback in self._on_transition_hooks:
            try:
                await callback(from_state, to_state)
            except Exception as e:
                logger.error(f"Error in on_transition hook: {e}", exc_info=True)

    def get_allowed_transitions(self) -> Set[InteractionState]:
        """Get all allowed transitions from current state."""
        return self.ALLOWED_TRANSITIONS.get(self._current_state, set()).copy()

    def __repr__(self) -> str:
        """String representation of state machine."""
        return (
            f"StateMachine(current={self._current_state.value}, "
            f"previous={self._previous_state.value if self._previous_state else None})"
        )
