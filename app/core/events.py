"""Структурированные события синхронизации и обогащения.

Ядро не знает ничего об отображении: движок и конвейер только отправляют
события в приёмник, а логирование или отладочная панель подписываются на них.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class Event:
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class EventSink(Protocol):
    def emit(self, name: str, **fields: Any) -> None:
        ...


class LoggingEventSink:
    """Приёмник, пишущий события в стандартный logging"""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self._logger = log or logger
        self._level = level

    def emit(self, name: str, **fields: Any) -> None:
        self._logger.log(self._level, "%s %s", name, fields, extra={"event": name, "fields": fields})


class MemoryEventSink:
    """Хранит последние события в памяти (отладочная панель, тесты)"""

    def __init__(self, maxlen: int = 200):
        self._events: Deque[Event] = deque(maxlen=maxlen)

    def emit(self, name: str, **fields: Any) -> None:
        self._events.append(Event(name=name, fields=fields))

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    def names(self) -> List[str]:
        return [event.name for event in self._events]

    def count(self, name: str) -> int:
        return sum(1 for event in self._events if event.name == name)

    def clear(self) -> None:
        self._events.clear()


class CompositeEventSink:
    """Рассылает событие в несколько приёмников"""

    def __init__(self, *sinks: EventSink):
        self._sinks = list(sinks)

    def emit(self, name: str, **fields: Any) -> None:
        for sink in self._sinks:
            sink.emit(name, **fields)
