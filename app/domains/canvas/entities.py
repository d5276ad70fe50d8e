from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

Record = Dict[str, Any]
Snapshot = Dict[str, Record]

LINK_REFERENCE_TYPE = "bookmark"


class RecordKind(str, Enum):
    """Пространства имён ключей записей хранилища"""
    ENTITY = "entity"
    ASSET = "asset"
    VIEW = "view"
    SESSION = "session"
    HISTORY = "history"


class ChangeOrigin(str, Enum):
    USER = "user"
    REMOTE = "remote"
    ANY = "any"


class ChangeScope(str, Enum):
    DOCUMENT = "document"
    SESSION = "session"
    ALL = "all"


PERSISTED_KINDS = frozenset({RecordKind.ENTITY.value, RecordKind.ASSET.value})


def record_kind(key: str) -> str:
    """Вид записи по префиксу ключа: 'entity:abc' -> 'entity'"""
    kind, sep, _ = key.partition(":")
    return kind if sep else ""


def is_link_reference(record: Optional[Record]) -> bool:
    return (
        record is not None
        and record_kind(record.get("id", "")) == RecordKind.ENTITY.value
        and record.get("type") == LINK_REFERENCE_TYPE
    )


@dataclass
class StoreChange:
    """Пакет изменений хранилища документа"""
    added: Dict[str, Record] = field(default_factory=dict)
    updated: Dict[str, Record] = field(default_factory=dict)
    removed: Dict[str, Record] = field(default_factory=dict)
    origin: ChangeOrigin = ChangeOrigin.USER
    scope: ChangeScope = ChangeScope.DOCUMENT

    def touches_entities(self) -> bool:
        """Есть ли среди добавленных/обновлённых записей хотя бы одна сущность"""
        return any(
            record_kind(key) == RecordKind.ENTITY.value
            for key in list(self.added) + list(self.updated)
        )

    def added_link_references(self) -> List[Record]:
        return [record for record in self.added.values() if is_link_reference(record)]

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)


@dataclass
class CanvasState:
    """Сохранённое состояние холста владельца (одна строка на владельца)"""
    owner_id: str
    data: Dict[str, Any]
    updated_at: datetime
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    def __repr__(self) -> str:
        return f"CanvasState(owner_id={self.owner_id}, updated_at={self.updated_at})"
