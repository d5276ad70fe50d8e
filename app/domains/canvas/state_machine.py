from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple


class SyncState(str, Enum):
    CREATED = "created"
    HYDRATING = "hydrating"
    SETTLING = "settling"
    IDLE = "idle"
    PENDING_SAVE = "pending_save"
    SAVING = "saving"
    STOPPED = "stopped"


class SyncEvent(str, Enum):
    HYDRATION_STARTED = "hydration_started"
    HYDRATION_FINISHED = "hydration_finished"
    SETTLE_ELAPSED = "settle_elapsed"
    CHANGE_DETECTED = "change_detected"
    FLUSH_STARTED = "flush_started"
    FLUSH_SUCCEEDED = "flush_succeeded"
    FLUSH_FAILED = "flush_failed"
    STOPPED = "stopped"


class InvalidTransitionError(RuntimeError):
    pass


_S = SyncState
_E = SyncEvent

# (состояние, событие) -> новое состояние
TRANSITIONS: Dict[Tuple[SyncState, SyncEvent], SyncState] = {
    (_S.CREATED, _E.HYDRATION_STARTED): _S.HYDRATING,
    (_S.CREATED, _E.CHANGE_DETECTED): _S.CREATED,
    (_S.HYDRATING, _E.HYDRATION_FINISHED): _S.SETTLING,
    (_S.HYDRATING, _E.CHANGE_DETECTED): _S.HYDRATING,
    (_S.SETTLING, _E.CHANGE_DETECTED): _S.SETTLING,
    (_S.SETTLING, _E.SETTLE_ELAPSED): _S.IDLE,
    (_S.IDLE, _E.CHANGE_DETECTED): _S.PENDING_SAVE,
    (_S.IDLE, _E.FLUSH_STARTED): _S.SAVING,
    (_S.PENDING_SAVE, _E.CHANGE_DETECTED): _S.PENDING_SAVE,
    (_S.PENDING_SAVE, _E.FLUSH_STARTED): _S.SAVING,
    (_S.SAVING, _E.CHANGE_DETECTED): _S.SAVING,
    (_S.SAVING, _E.FLUSH_SUCCEEDED): _S.IDLE,
    (_S.SAVING, _E.FLUSH_FAILED): _S.IDLE,
}


class SyncStateMachine:
    """Явный автомат состояний сессии синхронизации.

    Флаги гидратации и готовности выводятся из состояния, а не хранятся
    отдельно, поэтому их нельзя рассинхронизировать.
    """

    def __init__(self, on_transition: Optional[Callable[[SyncState, SyncEvent, SyncState], None]] = None):
        self.state = SyncState.CREATED
        self.pending_changes = 0
        self.history: List[Tuple[SyncState, SyncEvent, SyncState]] = []
        self._on_transition = on_transition
        self._changed_while_saving = False

    @property
    def is_hydrating(self) -> bool:
        return self.state == SyncState.HYDRATING

    @property
    def is_ready(self) -> bool:
        return self.state in (SyncState.IDLE, SyncState.PENDING_SAVE, SyncState.SAVING)

    @property
    def is_stopped(self) -> bool:
        return self.state == SyncState.STOPPED

    def can(self, event: SyncEvent) -> bool:
        return event == SyncEvent.STOPPED or (self.state, event) in TRANSITIONS

    def dispatch(self, event: SyncEvent) -> SyncState:
        if self.state == SyncState.STOPPED:
            raise InvalidTransitionError(f"Session is stopped, got {event.value}")

        if event == SyncEvent.STOPPED:
            target = SyncState.STOPPED
        else:
            target = TRANSITIONS.get((self.state, event))
            if target is None:
                raise InvalidTransitionError(f"{event.value} is not allowed in state {self.state.value}")

        if event == SyncEvent.CHANGE_DETECTED:
            self.pending_changes += 1
            if self.state == SyncState.SAVING:
                self._changed_while_saving = True
        elif event == SyncEvent.FLUSH_STARTED:
            self.pending_changes = 0
            self._changed_while_saving = False
        elif event in (SyncEvent.FLUSH_SUCCEEDED, SyncEvent.FLUSH_FAILED) and self._changed_while_saving:
            # правки во время записи ждут следующего сохранения
            target = SyncState.PENDING_SAVE

        previous = self.state
        self.state = target
        self.history.append((previous, event, target))
        if self._on_transition is not None:
            self._on_transition(previous, event, target)
        return target
