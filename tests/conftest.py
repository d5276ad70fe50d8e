"""Общие фикстуры тестов: тестовые записи, фейковый репозиторий, БД в памяти"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import EnrichmentSettings, SyncSettings
from app.core.events import MemoryEventSink
from app.db.base import Base
import app.db.models  # noqa: F401
from app.domains.canvas.entities import CanvasState


def make_entity(
    entity_id: str,
    shape_type: str = "geo",
    w: float = 100,
    h: float = 100,
    url: Optional[str] = None,
    asset_id: Optional[str] = None,
) -> Dict[str, Any]:
    props: Dict[str, Any] = {"w": w, "h": h}
    if shape_type == "bookmark":
        props.update({"url": url or "", "assetId": asset_id})
    return {
        "id": entity_id,
        "typeName": "entity",
        "type": shape_type,
        "x": 0,
        "y": 0,
        "props": props,
    }


def make_asset(asset_id: str, entity_id: Optional[str] = None, **props) -> Dict[str, Any]:
    base = {"src": "", "title": "", "description": "", "image": "", "favicon": ""}
    base.update(props)
    return {
        "id": asset_id,
        "typeName": "asset",
        "type": "bookmark",
        "props": base,
        "meta": {"entityId": entity_id},
    }


def make_view(view_id: str = "view:camera", **fields) -> Dict[str, Any]:
    record = {"id": view_id, "typeName": "view", "x": 0, "y": 0, "z": 1}
    record.update(fields)
    return record


class FakeRepository:
    """Репозиторий в памяти с журналом вызовов"""

    def __init__(self):
        self.rows: Dict[str, CanvasState] = {}
        self.calls: List[tuple] = []
        self.fetch_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.fetch_gate: Optional[asyncio.Event] = None

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)

    @property
    def writes(self) -> int:
        return self.count("update") + self.count("insert")

    def seed(self, owner_id: str, data: Dict[str, Any]) -> None:
        from app.domains.canvas.schemas import utcnow
        self.rows[owner_id] = CanvasState(owner_id=owner_id, data=data, updated_at=utcnow())

    async def fetch_by_owner(self, owner_id):
        self.calls.append(("fetch", owner_id))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.rows.get(owner_id)

    async def update_by_owner(self, owner_id, payload):
        self.calls.append(("update", owner_id))
        if self.update_error is not None:
            raise self.update_error
        if owner_id not in self.rows:
            return 0
        self.rows[owner_id] = CanvasState(
            owner_id=owner_id, data=payload.data.to_json(), updated_at=payload.updated_at
        )
        return 1

    async def insert_for_owner(self, owner_id, payload):
        self.calls.append(("insert", owner_id))
        state = CanvasState(owner_id=owner_id, data=payload.data.to_json(), updated_at=payload.updated_at)
        self.rows[owner_id] = state
        return state


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def events() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def sync_config() -> SyncSettings:
    return SyncSettings(
        debounce_quiet_period=0.05,
        relaxed_quiet_period=0.2,
        min_save_interval=0.0,
        burst_threshold=0,
        settle_delay=0.1,
    )


@pytest.fixture
def enrichment_config() -> EnrichmentSettings:
    return EnrichmentSettings(
        service_url="http://enrichment.test/link-preview",
        asset_poll_attempts=10,
        asset_poll_interval=0.01,
        image_probe_attempts=1,
        image_probe_interval=0.01,
        loading_height=120,
    )


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
