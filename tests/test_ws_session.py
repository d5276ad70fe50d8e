import asyncio
import json

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.ws import sync
from app.core.config import settings
from app.core.security import create_access_token
from app.db.repositories.canvas_repository import SessionScopedCanvasRepository
from app.domains.canvas.schemas import CanvasStatePayload
from app.domains.canvas.snapshot_filter import filter_snapshot
from conftest import make_entity


class _FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    def messages(self, message_type):
        return [message for message in self.sent if message["type"] == message_type]


@pytest.fixture
def fast_settings(monkeypatch, session_factory):
    monkeypatch.setattr(sync, "SessionLocal", session_factory)
    monkeypatch.setattr(settings, "debounce_quiet_period", 0.05)
    monkeypatch.setattr(settings, "settle_delay", 0.05)
    monkeypatch.setattr(settings, "burst_threshold", 0)
    return settings


async def _drain():
    await asyncio.sleep(0.02)


async def test_session_hydrates_and_persists_user_edits(fast_settings, session_factory):
    repository = SessionScopedCanvasRepository(session_factory)
    package = filter_snapshot({"entity:saved": make_entity("entity:saved")})
    await repository.insert_for_owner("owner-1", CanvasStatePayload(data=package))

    websocket = _FakeWebSocket()
    session = sync.CanvasSession("owner-1", websocket)
    await session.start()
    await _drain()

    hydrated = websocket.messages("hydrated")[0]["data"]
    assert set(hydrated["snapshot"]) == {"entity:saved"}

    await session.engine.wait_ready()
    await session.handle_message({"type": "put", "data": {"records": [make_entity("entity:new")]}})
    await asyncio.sleep(0.15)

    state = await repository.fetch_by_owner("owner-1")
    assert set(state.data["entities"]) == {"entity:saved", "entity:new"}

    await session.handle_message({"type": "ping"})
    await session.handle_message({"type": "sync_request"})
    await session.handle_message({"type": "debug_events"})
    await _drain()

    assert websocket.messages("pong")[0]["data"]["ready"] is True
    assert websocket.messages("sync_response")[0]["data"]["state"] == "idle"
    names = [event["name"] for event in websocket.messages("debug_events")[0]["data"]]
    assert "hydration.loaded" in names
    assert "save.succeeded" in names

    await session.close()


async def test_manual_save_and_unknown_messages(fast_settings, session_factory):
    websocket = _FakeWebSocket()
    session = sync.CanvasSession("owner-2", websocket)
    await session.start()
    await session.engine.wait_ready()

    await session.handle_message({"type": "put", "data": {"records": [make_entity("entity:a")]}})
    await session.handle_message({"type": "save"})
    await session.handle_message({"type": "whatever"})
    await _drain()

    assert websocket.messages("saved")[0]["data"]["outcome"] == "inserted"
    await session.close()


async def test_invalid_records_get_an_error_reply_and_keep_the_session(fast_settings, session_factory):
    websocket = _FakeWebSocket()
    session = sync.CanvasSession("owner-3", websocket)
    await session.start()
    await session.engine.wait_ready()

    await session.handle_message({
        "type": "put",
        "data": {"records": [make_entity("entity:half"), {"typeName": "entity"}]},
    })
    await session.handle_message({"type": "put", "data": {"records": [make_entity("entity:whole")]}})
    await session.handle_message({"type": "save"})
    await _drain()

    assert len(websocket.messages("error")) == 1
    assert session.store.get_entity("entity:half") is None
    state = await SessionScopedCanvasRepository(session_factory).fetch_by_owner("owner-3")
    assert set(state.data["entities"]) == {"entity:whole"}
    await session.close()


class _HandshakeStub:
    def __init__(self, query_params=None, headers=None):
        self.query_params = query_params or {}
        self.headers = headers or {}


def test_owner_is_read_from_query_token_or_bearer_header():
    token = create_access_token({"sub": "owner-1"})

    assert sync.websocket_owner(_HandshakeStub(query_params={"token": token})) == "owner-1"
    assert sync.websocket_owner(_HandshakeStub(headers={"authorization": f"Bearer {token}"})) == "owner-1"
    assert sync.websocket_owner(_HandshakeStub(headers={"authorization": token})) is None
    assert sync.websocket_owner(_HandshakeStub()) is None


@pytest.mark.parametrize(
    "query",
    ["", "?token=garbage", f"?token={create_access_token({'sub': 'someone-else'})}"],
)
def test_websocket_without_owner_token_is_rejected(query):
    app = FastAPI()
    app.include_router(sync.router)
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/canvas/ws/owner-1{query}"):
            pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION
    assert "owner-1" not in sync.manager.active_sessions
