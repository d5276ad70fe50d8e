"""Движок выборочной синхронизации холста с удалённым хранилищем.

Жизненный цикл сессии: гидратация -> выдержка -> ожидание <-> сохранение,
остановка при закрытии. Сохранение отложенное (debounce), защищённое от
гидратации и идемпотентное (update, затем insert).
"""
import asyncio
import logging
import time
from collections import deque
from typing import Deque, Optional

from app.core.config import SyncSettings, settings
from app.core.events import EventSink, LoggingEventSink
from app.db.repositories.canvas_repository import RemoteRecordRepository
from app.domains.canvas.entities import ChangeOrigin, ChangeScope, StoreChange
from app.domains.canvas.services import SaveOutcome, upsert_canvas_state
from app.domains.canvas.snapshot_filter import (
    InvalidPackageError, filter_snapshot, replay_batches, validate_package
)
from app.domains.canvas.state_machine import SyncEvent, SyncState, SyncStateMachine
from app.domains.canvas.store import DocumentStore
from app.utils.async_tools import DebouncedGuardedTask

logger = logging.getLogger(__name__)


class SyncEngine:
    """Синхронизация одного документа одного владельца"""

    def __init__(
        self,
        store: DocumentStore,
        repository: RemoteRecordRepository,
        owner_id: str,
        config: Optional[SyncSettings] = None,
        events: Optional[EventSink] = None,
    ):
        self.store = store
        self.repository = repository
        self.owner_id = owner_id
        self.config = config or settings.sync_settings()
        self.events = events or LoggingEventSink(logger)
        self.machine = SyncStateMachine()
        self.last_outcome: Optional[SaveOutcome] = None

        self._debouncer = DebouncedGuardedTask(
            self._flush,
            quiet_period=self.config.debounce_quiet_period,
            min_interval=self.config.min_save_interval,
            guard=self._save_blocked,
        )
        self._save_lock = asyncio.Lock()
        self._recent_changes: Deque[float] = deque()
        self._unsubscribe = None
        self._settle_task: Optional[asyncio.Task] = None

    # Состояние

    @property
    def state(self) -> SyncState:
        return self.machine.state

    @property
    def is_hydrating(self) -> bool:
        return self.machine.is_hydrating

    @property
    def is_ready(self) -> bool:
        return self.machine.is_ready

    @property
    def pending_changes(self) -> int:
        return self.machine.pending_changes

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    # Жизненный цикл

    async def start(self) -> None:
        """Подписка на изменения, гидратация и запуск выдержки"""
        if self.machine.state != SyncState.CREATED:
            raise RuntimeError(f"Engine already started (state={self.machine.state.value})")

        self._unsubscribe = self.store.subscribe(
            self._on_change, origin=ChangeOrigin.USER, scope=ChangeScope.DOCUMENT
        )
        await self.hydrate()

        if not self.machine.is_stopped:
            self._settle_task = asyncio.get_running_loop().create_task(self._settle())

    async def wait_ready(self) -> bool:
        """Ожидание окончания выдержки после гидратации"""
        if self._settle_task is not None:
            try:
                await self._settle_task
            except asyncio.CancelledError:
                pass
        return self.machine.is_ready

    def stop(self) -> None:
        """Отмена таймеров и отписка от хранилища"""
        if self.machine.is_stopped:
            return

        self._debouncer.cancel()
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self.machine.dispatch(SyncEvent.STOPPED)
        self.events.emit("engine.stopped", owner_id=self.owner_id)

    # Гидратация

    async def hydrate(self) -> bool:
        """Загрузка сохранённого пакета и воспроизведение в хранилище.

        Флаг гидратации держится всё время асинхронной операции и снимается
        в finally, даже при ошибке. Ошибки не прерывают сессию.
        """
        self.machine.dispatch(SyncEvent.HYDRATION_STARTED)
        self.events.emit("hydration.started", owner_id=self.owner_id)

        loaded = False
        try:
            loaded = await self._hydrate()
        except Exception as e:
            logger.error(f"Hydration failed for owner {self.owner_id}: {e}")
            self.events.emit("hydration.failed", owner_id=self.owner_id, error=str(e))
        finally:
            self._dispatch(SyncEvent.HYDRATION_FINISHED)
        return loaded

    async def _hydrate(self) -> bool:
        state = await self.repository.fetch_by_owner(self.owner_id)
        if state is None:
            logger.info(f"No saved canvas for owner {self.owner_id}, starting fresh")
            self.events.emit("hydration.first_use", owner_id=self.owner_id)
            return False

        try:
            package = validate_package(state.data)
        except InvalidPackageError as e:
            logger.warning(f"Discarding invalid canvas package for owner {self.owner_id}: {e}")
            self.events.emit("hydration.discarded", owner_id=self.owner_id, reason=str(e))
            return False

        # снимок целиком не загружается: это затирает состояние вида редактора
        assets, entities = replay_batches(package)
        if assets:
            self.store.load_assets(assets)
        if entities:
            self.store.load_entities(entities)

        self.events.emit(
            "hydration.loaded",
            owner_id=self.owner_id,
            entities=len(entities),
            assets=len(assets),
        )
        return True

    async def _settle(self) -> None:
        await asyncio.sleep(self.config.settle_delay)
        if self.machine.state == SyncState.SETTLING:
            self.machine.dispatch(SyncEvent.SETTLE_ELAPSED)
            self.events.emit("engine.ready", owner_id=self.owner_id)

    # Отслеживание изменений

    def _on_change(self, change: StoreChange) -> None:
        if self.machine.is_stopped or not change.touches_entities():
            return

        self.machine.dispatch(SyncEvent.CHANGE_DETECTED)
        self._adjust_timing()
        self.events.emit("change.detected", pending=self.machine.pending_changes)
        self._debouncer.trigger()

    def _adjust_timing(self) -> None:
        """При частых правках период тишины и минимальный интервал растут"""
        now = time.monotonic()
        window = self.config.relaxed_quiet_period
        self._recent_changes.append(now)
        while self._recent_changes and now - self._recent_changes[0] > window:
            self._recent_changes.popleft()

        bursting = (
            self.config.burst_threshold > 0
            and len(self._recent_changes) >= self.config.burst_threshold
        )
        if bursting:
            self._debouncer.quiet_period = self.config.relaxed_quiet_period
            self._debouncer.min_interval = max(self.config.min_save_interval, self.config.relaxed_quiet_period)
        else:
            self._debouncer.quiet_period = self.config.debounce_quiet_period
            self._debouncer.min_interval = self.config.min_save_interval

    # Сохранение

    def _save_blocked(self) -> bool:
        blocked = self.machine.is_hydrating or not self.machine.is_ready
        if blocked:
            self.events.emit("save.suppressed", state=self.machine.state.value)
        return blocked

    async def save_now(self) -> Optional[SaveOutcome]:
        """Ручное сохранение без ожидания (повтор после ошибки)"""
        if await self._debouncer.flush():
            return self.last_outcome
        return None

    async def _flush(self) -> None:
        async with self._save_lock:
            if self._save_blocked():
                return

            self.machine.dispatch(SyncEvent.FLUSH_STARTED)
            self.last_outcome = None
            # всегда текущий снимок, а не снимок на момент планирования
            package = filter_snapshot(self.store.get_snapshot())
            counts = package.metadata.counts

            if package.is_empty:
                self.last_outcome = SaveOutcome.SKIPPED
                self._dispatch(SyncEvent.FLUSH_SUCCEEDED)
                self.events.emit("save.skipped", reason="empty")
                return

            try:
                outcome = await upsert_canvas_state(self.repository, self.owner_id, package)
            except Exception as e:
                logger.error(f"Failed to save canvas for owner {self.owner_id}: {e}")
                self._dispatch(SyncEvent.FLUSH_FAILED)
                self.events.emit("save.failed", owner_id=self.owner_id, error=str(e))
                return

            self.last_outcome = outcome
            self._dispatch(SyncEvent.FLUSH_SUCCEEDED)
            self.events.emit(
                "save.succeeded",
                owner_id=self.owner_id,
                outcome=outcome.value,
                entities=counts.entities,
                assets=counts.assets,
            )

    def _dispatch(self, event: SyncEvent) -> None:
        # сессию могли остановить, пока шла асинхронная операция
        if not self.machine.is_stopped:
            self.machine.dispatch(event)
