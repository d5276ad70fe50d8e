"""Отбор пользовательского содержимого из снимка документа"""
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from app.domains.canvas.entities import PERSISTED_KINDS, Record, RecordKind, record_kind
from app.domains.canvas.schemas import (
    PackageCounts, PackageMetadata, UserContentPackage, utcnow
)


class InvalidPackageError(ValueError):
    """Сохранённый пакет структурно некорректен"""


def filter_snapshot(
    snapshot: Mapping[str, Record],
    saved_at: Optional[datetime] = None,
) -> UserContentPackage:
    """Оставляет только сущности и ассеты; состояние вида и сессии отбрасывается"""
    entities: Dict[str, Record] = {}
    assets: Dict[str, Record] = {}

    for key, record in snapshot.items():
        kind = record_kind(key)
        if kind not in PERSISTED_KINDS:
            continue
        if kind == RecordKind.ENTITY.value:
            entities[key] = record
        else:
            assets[key] = record

    return UserContentPackage(
        entities=entities,
        assets=assets,
        metadata=PackageMetadata(
            counts=PackageCounts(entities=len(entities), assets=len(assets)),
            saved_at=saved_at or utcnow(),
        ),
    )


def _check_records(records: Any, kind: str) -> None:
    if not isinstance(records, Mapping):
        raise InvalidPackageError(f"'{kind}' records must be a mapping")
    for key, record in records.items():
        if record_kind(key) != kind:
            raise InvalidPackageError(f"Unexpected key {key!r} in {kind} records")
        if not isinstance(record, Mapping) or record.get("id") != key:
            raise InvalidPackageError(f"Record {key!r} has no matching id")


def validate_package(data: Any) -> UserContentPackage:
    """Проверка структуры сохранённого пакета перед воспроизведением"""
    if not isinstance(data, Mapping):
        raise InvalidPackageError("Package must be a mapping")

    for section in ("entities", "assets"):
        if section not in data:
            raise InvalidPackageError(f"Package has no '{section}' section")

    _check_records(data["entities"], RecordKind.ENTITY.value)
    _check_records(data["assets"], RecordKind.ASSET.value)

    if not data["entities"] and not data["assets"]:
        raise InvalidPackageError("Package is empty")

    try:
        package = UserContentPackage.model_validate(data)
    except ValidationError as e:
        raise InvalidPackageError(str(e)) from e

    # счётчики пересчитываются по факту, сохранённым не доверяем
    package.metadata.counts = PackageCounts(
        entities=len(package.entities), assets=len(package.assets)
    )
    return package


def replay_batches(package: UserContentPackage) -> Tuple[List[Record], List[Record]]:
    """Пакеты для воспроизведения: сначала ассеты, затем сущности"""
    return list(package.assets.values()), list(package.entities.values())
