from typing import TYPE_CHECKING, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.canvas import CanvasStateModel

if TYPE_CHECKING:
    from app.domains.canvas.entities import CanvasState
    from app.domains.canvas.schemas import CanvasStatePayload


class RemoteRecordRepository(Protocol):
    async def fetch_by_owner(self, owner_id: str) -> Optional["CanvasState"]: ...

    async def update_by_owner(self, owner_id: str, payload: "CanvasStatePayload") -> int: ...

    async def insert_for_owner(self, owner_id: str, payload: "CanvasStatePayload") -> "CanvasState": ...


class CanvasStateRepository:
    """Репозиторий состояния холста (одна строка на владельца)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def fetch_by_owner(self, owner_id: str) -> Optional["CanvasState"]:
        """Получение состояния владельца"""
        result = await self.session.execute(
            select(CanvasStateModel).where(CanvasStateModel.owner_id == owner_id)
        )
        db_state = result.scalar_one_or_none()
        return self._to_domain(db_state) if db_state else None

    async def update_by_owner(self, owner_id: str, payload: "CanvasStatePayload") -> int:
        """Обновление состояния; возвращает число затронутых строк (0 или 1)"""
        stmt = (
            update(CanvasStateModel)
            .where(CanvasStateModel.owner_id == owner_id)
            .values(data=payload.data.to_json(), updated_at=payload.updated_at)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount

    async def insert_for_owner(self, owner_id: str, payload: "CanvasStatePayload") -> "CanvasState":
        """Создание первой записи владельца"""
        db_state = CanvasStateModel(
            owner_id=owner_id,
            data=payload.data.to_json(),
            updated_at=payload.updated_at,
        )
        self.session.add(db_state)
        await self.session.commit()
        await self.session.refresh(db_state)
        return self._to_domain(db_state)

    def _to_domain(self, db_state: CanvasStateModel) -> "CanvasState":
        """Преобразование модели БД в доменную сущность"""
        from app.domains.canvas.entities import CanvasState

        return CanvasState(
            id=db_state.id,
            owner_id=db_state.owner_id,
            data=db_state.data,
            updated_at=db_state.updated_at,
            created_at=db_state.created_at,
        )


class SessionScopedCanvasRepository:
    """Открывает отдельную сессию БД на каждый вызов.

    Движок синхронизации живёт дольше одного запроса, поэтому не держит
    сессию открытой между сохранениями.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def fetch_by_owner(self, owner_id: str) -> Optional["CanvasState"]:
        async with self._session_factory() as session:
            return await CanvasStateRepository(session).fetch_by_owner(owner_id)

    async def update_by_owner(self, owner_id: str, payload: "CanvasStatePayload") -> int:
        async with self._session_factory() as session:
            return await CanvasStateRepository(session).update_by_owner(owner_id, payload)

    async def insert_for_owner(self, owner_id: str, payload: "CanvasStatePayload") -> "CanvasState":
        async with self._session_factory() as session:
            return await CanvasStateRepository(session).insert_for_owner(owner_id, payload)
