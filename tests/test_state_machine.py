from __future__ import annotations

from lyria_voice.state_machine import LifecycleState, StateTransition


def test_happy_path_is_allowed() -> None:
    path = [
        LifecycleState.IDLE,
        LifecycleState.RECORDING,
        LifecycleState.SENDING,
        LifecycleState.AWAITING_REPLY,
        LifecycleState.IDLE,
    ]
    for old, new in zip(path, path[1:]):
        assert StateTransition.is_valid_transition(old, new)


def test_every_active_state_can_return_to_idle() -> None:
    for state in (LifecycleState.RECORDING, LifecycleState.SENDING, LifecycleState.AWAITING_REPLY):
        assert StateTransition.is_valid_transition(state, LifecycleState.IDLE)


def test_idle_only_starts_recording() -> None:
    assert StateTransition.get_allowed_transitions(LifecycleState.IDLE) == {LifecycleState.RECORDING}
    assert not StateTransition.is_valid_transition(LifecycleState.IDLE, LifecycleState.SENDING)
    assert not StateTransition.is_valid_transition(LifecycleState.AWAITING_REPLY, LifecycleState.RECORDING)
