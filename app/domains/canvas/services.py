import logging
from enum import Enum
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repositories.canvas_repository import CanvasStateRepository, RemoteRecordRepository
from app.domains.canvas.entities import CanvasState
from app.domains.canvas.schemas import CanvasStatePayload, UserContentPackage
from app.domains.canvas.snapshot_filter import filter_snapshot

logger = logging.getLogger(__name__)


class SaveOutcome(str, Enum):
    UPDATED = "updated"
    INSERTED = "inserted"
    SKIPPED = "skipped"


async def upsert_canvas_state(
    repository: RemoteRecordRepository,
    owner_id: str,
    package: UserContentPackage,
) -> SaveOutcome:
    """Идемпотентная запись без нативного upsert: update, затем insert.

    Если update не затронул ни одной строки, выполняется ровно один insert.
    Между двумя шагами есть окно гонки, но владелец пишет только из одной
    сессии.
    """
    payload = CanvasStatePayload(data=package, updated_at=package.metadata.saved_at)

    affected = await repository.update_by_owner(owner_id, payload)
    if affected:
        return SaveOutcome.UPDATED

    await repository.insert_for_owner(owner_id, payload)
    return SaveOutcome.INSERTED


class CanvasStateService:
    """Сервис для работы с сохранённым состоянием холста"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = CanvasStateRepository(session)

    async def get_state(self, owner_id: str) -> Optional[CanvasState]:
        """Получение состояния холста владельца"""
        return await self.repository.fetch_by_owner(owner_id)

    async def save_snapshot(self, owner_id: str, snapshot: Mapping[str, Any]) -> tuple:
        """Сохранение снимка документа: фильтрация и запись"""
        package = filter_snapshot(snapshot)
        if package.is_empty:
            logger.info(f"Nothing to persist for owner {owner_id}")
            return SaveOutcome.SKIPPED, package

        outcome = await upsert_canvas_state(self.repository, owner_id, package)
        logger.info(
            f"Canvas state {outcome.value} for owner {owner_id}: "
            f"{package.metadata.counts.entities} entities, {package.metadata.counts.assets} assets"
        )
        return outcome, package
