from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PackageCounts(BaseModel):
    """Сводка по количеству записей пакета"""
    entities: int = 0
    assets: int = 0


class PackageMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    counts: PackageCounts = Field(default_factory=PackageCounts)
    saved_at: datetime = Field(default_factory=utcnow, alias="savedAt")


class UserContentPackage(BaseModel):
    """Сохраняемое содержимое пользователя: только сущности и ассеты"""
    entities: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    assets: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    metadata: PackageMetadata = Field(default_factory=PackageMetadata)

    @property
    def is_empty(self) -> bool:
        return not self.entities

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CanvasStatePayload(BaseModel):
    """Полезная нагрузка записи в удалённое хранилище"""
    data: UserContentPackage
    updated_at: datetime = Field(default_factory=utcnow)


class CanvasStateResponse(BaseModel):
    """Схема ответа с сохранённым состоянием холста"""
    owner_id: str
    data: Dict[str, Any]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CanvasSaveRequest(BaseModel):
    """Полный снимок документа от клиента; фильтруется перед записью"""
    snapshot: Dict[str, Dict[str, Any]]


class CanvasSaveResponse(BaseModel):
    owner_id: str
    outcome: str
    counts: PackageCounts
    saved_at: Optional[datetime] = None
