"""Хранилище документа редактора.

Сам редактор (отрисовка, ввод, геометрия) живёт снаружи; здесь описан только
контракт хранилища, которым пользуются синхронизация и обогащение, и его
реализация в памяти для серверных сессий и тестов.
"""
import asyncio
import copy
import itertools
import logging
import uuid
from collections.abc import Mapping
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from app.domains.canvas.entities import (
    ChangeOrigin, ChangeScope, Record, RecordKind, Snapshot, StoreChange,
    PERSISTED_KINDS, is_link_reference, record_kind
)

logger = logging.getLogger(__name__)

Listener = Callable[[StoreChange], None]
Unsubscribe = Callable[[], None]


class InvalidRecordError(ValueError):
    """Запись пакета не является объектом с непустым id"""


class DocumentStore(Protocol):
    def get_snapshot(self) -> Snapshot: ...

    def load_entities(self, batch: Iterable[Record]) -> None: ...

    def load_assets(self, batch: Iterable[Record]) -> None: ...

    def update_asset(self, asset: Record) -> None: ...

    def update_entity(self, entity_id: str, patch: Dict) -> None: ...

    def subscribe(
        self,
        callback: Listener,
        origin: ChangeOrigin = ChangeOrigin.USER,
        scope: ChangeScope = ChangeScope.DOCUMENT,
    ) -> Unsubscribe: ...

    def get_entity(self, entity_id: str) -> Optional[Record]: ...

    def get_asset(self, asset_id: str) -> Optional[Record]: ...


def _merge_patch(record: Record, patch: Dict) -> Record:
    merged = copy.deepcopy(record)
    for key, value in patch.items():
        if key == "props" and isinstance(value, dict):
            merged.setdefault("props", {}).update(copy.deepcopy(value))
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def new_asset_id() -> str:
    return f"{RecordKind.ASSET.value}:{uuid.uuid4().hex}"


class InMemoryDocumentStore:
    """Хранилище записей в памяти с подпиской на изменения.

    Все мутации синхронные; одна публичная мутация = один атомарный пакет и
    одно уведомление. Ассет ссылки создаётся асинхронно, спустя
    asset_materialize_delay после добавления сущности (None — никогда).
    replay_origin — источник, которым помечаются программные вызовы
    load_*/update_*; реальный редактор может помечать их как 'user'.
    """

    def __init__(
        self,
        records: Optional[Iterable[Record]] = None,
        replay_origin: ChangeOrigin = ChangeOrigin.REMOTE,
        asset_materialize_delay: Optional[float] = 0.0,
    ):
        self._records: Dict[str, Record] = {}
        self._listeners: Dict[int, tuple] = {}
        self._ids = itertools.count()
        self._pending_materializations: Dict[str, asyncio.TimerHandle] = {}
        self.replay_origin = replay_origin
        self.asset_materialize_delay = asset_materialize_delay

        for record in records or ():
            self._records[record["id"]] = copy.deepcopy(record)

    # Чтение

    def get_snapshot(self) -> Snapshot:
        return copy.deepcopy(self._records)

    def get_entity(self, entity_id: str) -> Optional[Record]:
        record = self._records.get(entity_id)
        return copy.deepcopy(record) if record is not None else None

    def get_asset(self, asset_id: str) -> Optional[Record]:
        if not asset_id:
            return None
        record = self._records.get(asset_id)
        return copy.deepcopy(record) if record is not None else None

    def __len__(self) -> int:
        return len(self._records)

    # Подписка

    def subscribe(
        self,
        callback: Listener,
        origin: ChangeOrigin = ChangeOrigin.USER,
        scope: ChangeScope = ChangeScope.DOCUMENT,
    ) -> Unsubscribe:
        listener_id = next(self._ids)
        self._listeners[listener_id] = (callback, ChangeOrigin(origin), ChangeScope(scope))

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    # Мутации

    def put(self, records: Iterable[Record], origin: ChangeOrigin = ChangeOrigin.USER) -> StoreChange:
        """Добавление или замена записей (правки пользователя)

        Пакет проверяется целиком до записи: при ошибке хранилище не меняется.
        """
        batch = list(records)
        for record in batch:
            if not isinstance(record, Mapping) or not isinstance(record.get("id"), str) or not record["id"]:
                raise InvalidRecordError(f"Record without id: {record!r}")

        added: Dict[str, Record] = {}
        updated: Dict[str, Record] = {}
        for record in batch:
            key = record["id"]
            target = updated if key in self._records else added
            self._records[key] = copy.deepcopy(record)
            target[key] = copy.deepcopy(record)

        change = self._commit(added=added, updated=updated, origin=origin)
        for record in added.values():
            if is_link_reference(record) and not record.get("props", {}).get("assetId"):
                self._schedule_materialization(record["id"])
        return change

    def remove(self, ids: Iterable[str], origin: ChangeOrigin = ChangeOrigin.USER) -> StoreChange:
        removed = {}
        for key in ids:
            record = self._records.pop(key, None)
            if record is not None:
                removed[key] = record
            handle = self._pending_materializations.pop(key, None)
            if handle is not None:
                handle.cancel()
        return self._commit(removed=removed, origin=origin)

    def load_assets(self, batch: Iterable[Record], origin: Optional[ChangeOrigin] = None) -> StoreChange:
        return self.put(batch, origin=origin or self.replay_origin)

    def load_entities(self, batch: Iterable[Record], origin: Optional[ChangeOrigin] = None) -> StoreChange:
        return self.put(batch, origin=origin or self.replay_origin)

    def update_asset(self, asset: Record, origin: Optional[ChangeOrigin] = None) -> StoreChange:
        return self.put([asset], origin=origin or self.replay_origin)

    def update_entity(self, entity_id: str, patch: Dict, origin: Optional[ChangeOrigin] = None) -> StoreChange:
        record = self._records.get(entity_id)
        if record is None:
            raise KeyError(entity_id)
        return self.put([_merge_patch(record, patch)], origin=origin or self.replay_origin)

    def close(self) -> None:
        """Отмена отложенных созданий ассетов"""
        for handle in self._pending_materializations.values():
            handle.cancel()
        self._pending_materializations.clear()
        self._listeners.clear()

    # Внутреннее

    def _commit(
        self,
        added: Optional[Dict[str, Record]] = None,
        updated: Optional[Dict[str, Record]] = None,
        removed: Optional[Dict[str, Record]] = None,
        origin: ChangeOrigin = ChangeOrigin.USER,
    ) -> StoreChange:
        change = StoreChange(
            added=added or {}, updated=updated or {}, removed=removed or {},
            origin=ChangeOrigin(origin), scope=ChangeScope.ALL,
        )
        if change.is_empty():
            return change

        document_part = self._split(change, ChangeScope.DOCUMENT)
        session_part = self._split(change, ChangeScope.SESSION)

        for callback, origin_filter, scope_filter in list(self._listeners.values()):
            if origin_filter != ChangeOrigin.ANY and origin_filter != change.origin:
                continue
            if scope_filter == ChangeScope.DOCUMENT:
                delivered = document_part
            elif scope_filter == ChangeScope.SESSION:
                delivered = session_part
            else:
                delivered = change
            if delivered.is_empty():
                continue
            try:
                callback(delivered)
            except Exception as e:
                logger.error(f"Store listener failed: {e}")
        return change

    @staticmethod
    def _split(change: StoreChange, scope: ChangeScope) -> StoreChange:
        def pick(records: Dict[str, Record]) -> Dict[str, Record]:
            in_document = scope == ChangeScope.DOCUMENT
            return {
                key: value for key, value in records.items()
                if (record_kind(key) in PERSISTED_KINDS) == in_document
            }

        return StoreChange(
            added=pick(change.added), updated=pick(change.updated), removed=pick(change.removed),
            origin=change.origin, scope=scope,
        )

    def _schedule_materialization(self, entity_id: str) -> None:
        if self.asset_materialize_delay is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._materialize_asset(entity_id)
            return
        self._pending_materializations[entity_id] = loop.call_later(
            self.asset_materialize_delay, self._materialize_asset, entity_id
        )

    def _materialize_asset(self, entity_id: str) -> None:
        self._pending_materializations.pop(entity_id, None)
        entity = self._records.get(entity_id)
        if entity is None or entity.get("props", {}).get("assetId"):
            return

        url = entity.get("props", {}).get("url", "")
        asset = {
            "id": new_asset_id(),
            "typeName": RecordKind.ASSET.value,
            "type": entity.get("type"),
            "props": {"src": url, "title": "", "description": "", "image": "", "favicon": ""},
            "meta": {"entityId": entity_id},
        }
        entity = _merge_patch(entity, {"props": {"assetId": asset["id"]}})
        self._records[asset["id"]] = copy.deepcopy(asset)
        self._records[entity_id] = copy.deepcopy(entity)
        self._commit(added={asset["id"]: asset}, updated={entity_id: entity}, origin=ChangeOrigin.USER)
