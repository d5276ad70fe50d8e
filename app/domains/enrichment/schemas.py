import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EnrichmentRequest(BaseModel):
    """Запрос к сервису метаданных ссылок"""
    model_config = ConfigDict(populate_by_name=True)

    url: str
    entity_id: Optional[str] = Field(None, alias="entityId")
    platform: str


class EnrichmentResult(BaseModel):
    """Метаданные ссылки от внешнего сервиса"""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    image: Optional[str] = None
    favicon: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None

    @field_validator("width", "height", mode="before")
    @classmethod
    def positive_dimension(cls, v: Any) -> Optional[float]:
        # неизвестный или неположительный размер считается отсутствующим
        if v is None or isinstance(v, bool):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value) or value <= 0:
            return None
        return value

    @property
    def has_text(self) -> bool:
        return bool((self.title or "").strip() or (self.description or "").strip())

    @property
    def natural_size(self) -> Optional[tuple]:
        if self.width and self.height:
            return max(1, round(self.width)), max(1, round(self.height))
        return None
