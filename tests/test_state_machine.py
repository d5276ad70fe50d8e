import pytest

from app.domains.canvas.state_machine import (
    InvalidTransitionError, SyncEvent, SyncState, SyncStateMachine
)


def _ready_machine() -> SyncStateMachine:
    machine = SyncStateMachine()
    machine.dispatch(SyncEvent.HYDRATION_STARTED)
    machine.dispatch(SyncEvent.HYDRATION_FINISHED)
    machine.dispatch(SyncEvent.SETTLE_ELAPSED)
    return machine


def test_ready_only_after_settle():
    machine = SyncStateMachine()
    machine.dispatch(SyncEvent.HYDRATION_STARTED)
    assert machine.is_hydrating
    assert not machine.is_ready

    machine.dispatch(SyncEvent.HYDRATION_FINISHED)
    assert not machine.is_hydrating
    assert not machine.is_ready

    machine.dispatch(SyncEvent.SETTLE_ELAPSED)
    assert machine.is_ready
    assert machine.state == SyncState.IDLE


def test_changes_are_counted_until_flush():
    machine = _ready_machine()

    machine.dispatch(SyncEvent.CHANGE_DETECTED)
    machine.dispatch(SyncEvent.CHANGE_DETECTED)
    assert machine.state == SyncState.PENDING_SAVE
    assert machine.pending_changes == 2

    machine.dispatch(SyncEvent.FLUSH_STARTED)
    assert machine.pending_changes == 0
    machine.dispatch(SyncEvent.FLUSH_SUCCEEDED)
    assert machine.state == SyncState.IDLE


def test_change_during_save_leaves_save_pending():
    machine = _ready_machine()
    machine.dispatch(SyncEvent.CHANGE_DETECTED)
    machine.dispatch(SyncEvent.FLUSH_STARTED)
    machine.dispatch(SyncEvent.CHANGE_DETECTED)

    machine.dispatch(SyncEvent.FLUSH_FAILED)

    assert machine.state == SyncState.PENDING_SAVE
    assert machine.pending_changes == 1


def test_flush_not_allowed_while_settling():
    machine = SyncStateMachine()
    machine.dispatch(SyncEvent.HYDRATION_STARTED)
    machine.dispatch(SyncEvent.HYDRATION_FINISHED)

    assert not machine.can(SyncEvent.FLUSH_STARTED)
    with pytest.raises(InvalidTransitionError):
        machine.dispatch(SyncEvent.FLUSH_STARTED)


def test_stopped_is_terminal():
    machine = _ready_machine()
    machine.dispatch(SyncEvent.STOPPED)

    assert machine.is_stopped
    assert not machine.is_ready
    with pytest.raises(InvalidTransitionError):
        machine.dispatch(SyncEvent.CHANGE_DETECTED)


def test_transition_callback_receives_history():
    seen = []
    machine = SyncStateMachine(on_transition=lambda *args: seen.append(args))

    machine.dispatch(SyncEvent.HYDRATION_STARTED)

    assert seen == [(SyncState.CREATED, SyncEvent.HYDRATION_STARTED, SyncState.HYDRATING)]
    assert machine.history == seen
