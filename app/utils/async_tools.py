"""Асинхронные примитивы: ожидание условия и отложенный запуск с защитой"""
import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def await_condition(
    predicate: Callable[[], Union[T, Awaitable[T]]],
    max_attempts: int,
    interval: float,
) -> Optional[T]:
    """Опрос условия с ограниченным числом попыток.

    Возвращает первое истинное значение predicate() или None, если попытки
    закончились. Predicate может быть как обычной функцией, так и корутиной.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return result
        if attempt < max_attempts - 1:
            await asyncio.sleep(interval)
    return None


class DebouncedGuardedTask:
    """Отложенный запуск действия после периода тишины.

    trigger() перезапускает таймер. Когда таймер срабатывает, guard() может
    отменить запуск. min_interval ограничивает частоту запусков: следующий
    запуск откладывается, пока с предыдущего не пройдёт min_interval.
    """

    def __init__(
        self,
        action: Callable[[], Awaitable[Any]],
        quiet_period: float,
        min_interval: float = 0.0,
        guard: Optional[Callable[[], bool]] = None,
    ):
        self._action = action
        self.quiet_period = quiet_period
        self.min_interval = min_interval
        self._guard = guard
        self._timer: Optional[asyncio.Task] = None
        self._last_run: Optional[float] = None
        self.runs = 0
        self.skipped = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        """Отменяет ожидающий таймер и запускает новый"""
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_and_run())

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> bool:
        """Немедленный запуск без ожидания (с проверкой guard)"""
        self.cancel()
        return await self._run()

    async def _wait_and_run(self) -> None:
        await asyncio.sleep(self.quiet_period)
        if self._last_run is not None and self.min_interval > 0:
            remaining = self.min_interval - (time.monotonic() - self._last_run)
            if remaining > 0:
                await asyncio.sleep(remaining)
        # таймер уже отработал, повторный trigger() не должен его отменять
        self._timer = None
        await self._run()

    async def _run(self) -> bool:
        if self._guard is not None and self._guard():
            self.skipped += 1
            return False

        self._last_run = time.monotonic()
        self.runs += 1
        try:
            await self._action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Debounced action failed: {e}")
            return False
        return True
