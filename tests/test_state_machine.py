"""
Unit tests for StateMachine.
Tests valid transitions, invalid transitions, hooks, and history.
"""

import pytest
from vocational_voice.state_machine import StateMachine
from vocational_voice.models import InteractionState


class TestStateMachineInitialization:
    """Test state machine initialization."""

    def test_default_initialization(self):
        """Test state machine starts in IDLE by default."""
        sm = StateMachine()
        assert sm.current_state == InteractionState.IDLE
        assert sm.previous_state is None
        assert len(sm.state_history) == 1
        assert sm.state_history[0]["from_state"] is None
        assert sm.state_history[0]["reason"] == "initialization"

    def test_custom_initialization(self):
        """Test state machine can start in custom state."""
        sm = StateMachine(initial_state=InteractionState.LISTENING)
        assert sm.current_state == InteractionState.LISTENING
        assert sm.previous_state is None


class TestValidTransitions:
    """Test all valid state transitions."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("from_state,to_state", [
        (InteractionState.IDLE, InteractionState.SESSION_STARTING),
        (InteractionState.SESSION_STARTING, InteractionState.SPEAKING),
        (InteractionState.SESSION_STARTING, InteractionState.IDLE),
        (InteractionState.SPEAKING, InteractionState.LISTENING),
        (InteractionState.SPEAKING, InteractionState.IDLE),
        (InteractionState.LISTENING, InteractionState.THINKING),
        (InteractionState.LISTENING, InteractionState.IDLE),
        (InteractionState.THINKING, InteractionState.SPEAKING),
        (InteractionState.THINKING, InteractionState.LISTENING),
        (InteractionState.THINKING, InteractionState.IDLE),
    ])
    async def test_allowed_transition(self, from_state, to_state):
        """Test every transition in the allow-list succeeds."""
        sm = StateMachine(from_state)
        assert sm.can_transition(to_state)
        success = await sm.transition(to_state, reason="test")
        assert success
        assert sm.current_state == to_state
        assert sm.previous_state == from_state


class TestInvalidTransitions:
    """Test that invalid state transitions are rejected."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("from_state,to_state", [
        (InteractionState.IDLE, InteractionState.SPEAKING),
        (InteractionState.IDLE, InteractionState.LISTENING),
        (InteractionState.IDLE, InteractionState.THINKING),
        (InteractionState.SESSION_STARTING, InteractionState.LISTENING),
        (InteractionState.SPEAKING, InteractionState.THINKING),
        (InteractionState.LISTENING, InteractionState.SPEAKING),
        (InteractionState.THINKING, InteractionState.SESSION_STARTING),
    ])
    async def test_rejected_transition(self, from_state, to_state):
        """Test disallowed transitions leave the state unchanged."""
        sm = StateMachine(from_state)
        assert not sm.can_transition(to_state)
        success = await sm.transition(to_state)
        assert not success
        assert sm.current_state == from_state

    def test_apply_rejects_invalid(self):
        """Test synchronous apply() validates too."""
        sm = StateMachine()
        assert not sm.apply(InteractionState.THINKING)
        assert sm.current_state == InteractionState.IDLE
        assert len(sm.state_history) == 1


class TestCompleteFlow:
    """Test complete question/answer sequences."""

    @pytest.mark.asyncio
    async def test_two_question_flow(self):
        """Test IDLE → SESSION_STARTING → (SPEAKING → LISTENING → THINKING) x2 → IDLE."""
        sm = StateMachine()

        await sm.transition(InteractionState.SESSION_STARTING, reason="start")
        for _ in range(2):
            await sm.transition(InteractionState.SPEAKING, reason="question")
            await sm.transition(InteractionState.LISTENING, reason="announced")
            await sm.transition(InteractionState.THINKING, reason="answered")
        await sm.transition(InteractionState.IDLE, reason="complete")

        assert sm.current_state == InteractionState.IDLE
        # init + 1 + 6 + 1
        assert len(sm.state_history) == 9

    @pytest.mark.asyncio
    async def test_verbal_retry_flow(self):
        """Test THINKING → LISTENING when a submission must be repeated."""
        sm = StateMachine(InteractionState.THINKING)
        await sm.transition(InteractionState.LISTENING, reason="submission failed")
        assert sm.current_state == InteractionState.LISTENING
        assert sm.previous_state == InteractionState.THINKING


class TestHooks:
    """Test lifecycle hooks."""

    @pytest.mark.asyncio
    async def test_enter_exit_and_transition_hooks(self):
        """Test hooks run in exit → enter → transition order."""
        sm = StateMachine()
        calls = []

        async def on_exit_idle():
            calls.append("exit_idle")

        async def on_enter_starting():
            calls.append("enter_starting")

        async def on_transition(from_state, to_state):
            calls.append(f"{from_state.value}->{to_state.value}")

        sm.register_on_exit(InteractionState.IDLE, on_exit_idle)
        sm.register_on_enter(InteractionState.SESSION_STARTING, on_enter_starting)
        sm.register_on_transition(on_transition)

        await sm.transition(InteractionState.SESSION_STARTING)

        assert calls == ["exit_idle", "enter_starting", "IDLE->SESSION_STARTING"]

    @pytest.mark.asyncio
    async def test_hook_error_does_not_block_transition(self):
        """Test a failing hook is logged and the transition still happens."""
        sm = StateMachine()

        async def broken_hook():
            raise RuntimeError("boom")

        sm.register_on_enter(InteractionState.SESSION_STARTING, broken_hook)
        success = await sm.transition(InteractionState.SESSION_STARTING)

        assert success
        assert sm.current_state == InteractionState.SESSION_STARTING

    @pytest.mark.asyncio
    async def test_apply_then_notify(self):
        """Test apply() changes state without hooks; notify_transition() runs them."""
        sm = StateMachine()
        seen = []

        async def on_transition(from_state, to_state):
            seen.append((from_state, to_state))

        sm.register_on_transition(on_transition)

        assert sm.apply(InteractionState.SESSION_STARTING, reason="start")
        assert sm.current_state == InteractionState.SESSION_STARTING
        assert seen == []

        await sm.notify_transition(InteractionState.IDLE, InteractionState.SESSION_STARTING)
        assert seen == [(InteractionState.IDLE, InteractionState.SESSION_STARTING)]

    @pytest.mark.asyncio
    async def test_notify_runs_exit_hooks_first(self):
        """Test notify_transition() runs exit, enter, then transition hooks."""
        sm = StateMachine()
        order = []

        async def on_exit():
            order.append("exit idle")

        async def on_enter():
            order.append("enter starting")

        async def on_transition(from_state, to_state):
            order.append("transition")

        sm.register_on_exit(InteractionState.IDLE, on_exit)
        sm.register_on_enter(InteractionState.SESSION_STARTING, on_enter)
        sm.register_on_transition(on_transition)

        sm.apply(InteractionState.SESSION_STARTING)
        await sm.notify_transition(InteractionState.IDLE, InteractionState.SESSION_STARTING)

        assert order == ["exit idle", "enter starting", "transition"]


class TestReset:
    """Test reset behavior."""

    @pytest.mark.asyncio
    async def test_reset_from_listening(self):
        """Test reset() returns to IDLE."""
        sm = StateMachine(InteractionState.LISTENING)
        await sm.reset()
        assert sm.current_state == InteractionState.IDLE
        assert sm.state_history[-1]["reason"] == "reset"

    @pytest.mark.asyncio
    async def test_reset_when_idle_is_noop(self):
        """Test reset() from IDLE records nothing."""
        sm = StateMachine()
        await sm.reset()
        assert len(sm.state_history) == 1

    def test_allowed_transitions_copy(self):
        """Test get_allowed_transitions() returns a copy."""
        sm = StateMachine(InteractionState.THINKING)
        allowed = sm.get_allowed_transitions()
        allowed.clear()
        assert sm.get_allowed_transitions() == {
            InteractionState.SPEAKING,
            InteractionState.LISTENING,
            InteractionState.IDLE,
        }
