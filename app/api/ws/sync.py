from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from typing import Any, Dict, Optional
import asyncio
import json
import logging

from app.core.config import settings
from app.core.db import SessionLocal
from app.core.events import CompositeEventSink, LoggingEventSink, MemoryEventSink
from app.core.security import extract_token_from_header, owner_from_token
from app.db.repositories.canvas_repository import SessionScopedCanvasRepository
from app.domains.canvas.entities import ChangeOrigin, ChangeScope, StoreChange
from app.domains.canvas.store import InMemoryDocumentStore, InvalidRecordError
from app.domains.canvas.sync_engine import SyncEngine
from app.domains.enrichment.client import EnrichmentClient
from app.domains.enrichment.images import ImageProbe
from app.domains.enrichment.pipeline import EnrichmentPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


class CanvasSession:
    """Серверная сессия холста: хранилище, синхронизация и обогащение"""

    def __init__(self, owner_id: str, websocket: WebSocket):
        self.owner_id = owner_id
        self.websocket = websocket
        self.debug_events = MemoryEventSink()
        events = CompositeEventSink(LoggingEventSink(logger), self.debug_events)

        self.store = InMemoryDocumentStore()
        self.engine = SyncEngine(
            self.store,
            SessionScopedCanvasRepository(SessionLocal),
            owner_id,
            config=settings.sync_settings(),
            events=events,
        )
        enrichment_config = settings.enrichment_settings()
        self.client = EnrichmentClient(enrichment_config.service_url, timeout=enrichment_config.timeout)
        self.image_probe = ImageProbe(
            attempts=enrichment_config.image_probe_attempts,
            interval=enrichment_config.image_probe_interval,
        )
        self.pipeline = EnrichmentPipeline(
            self.store, self.client, config=enrichment_config, events=events, image_probe=self.image_probe
        )

        # изменения, сделанные сервером, отправляются клиенту
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._sender: Optional[asyncio.Task] = None
        self._unsubscribe = self.store.subscribe(
            self._forward_change, origin=ChangeOrigin.REMOTE, scope=ChangeScope.ALL
        )

    async def start(self) -> None:
        self._sender = asyncio.get_running_loop().create_task(self._send_loop())
        await self.engine.start()
        self.pipeline.start()
        await self.send({
            "type": "hydrated",
            "data": {"snapshot": self.store.get_snapshot(), "ready": self.engine.is_ready}
        })

    async def close(self) -> None:
        self.engine.stop()
        self.pipeline.stop()
        self._unsubscribe()
        if self._sender is not None:
            self._sender.cancel()
        await self.client.close()
        await self.image_probe.close()
        self.store.close()

    async def send(self, message: Dict[str, Any]) -> None:
        await self._outgoing.put(message)

    def _forward_change(self, change: StoreChange) -> None:
        self._outgoing.put_nowait({
            "type": "changes",
            "data": {
                "added": change.added,
                "updated": change.updated,
                "removed": list(change.removed),
            }
        })

    async def _send_loop(self) -> None:
        while True:
            message = await self._outgoing.get()
            try:
                await self.websocket.send_text(json.dumps(message, default=str))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Could not send to owner {self.owner_id}: {e}")
                return

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Обработка сообщения клиента"""
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == "put":
            try:
                self.store.put(data.get("records", []), origin=ChangeOrigin.USER)
            except InvalidRecordError as e:
                logger.warning(f"Rejected records from owner {self.owner_id}: {e}")
                await self.send({"type": "error", "data": {"message": str(e)}})

        elif message_type == "remove":
            self.store.remove(data.get("ids", []), origin=ChangeOrigin.USER)

        elif message_type == "save":
            # ручной повтор сохранения
            outcome = await self.engine.save_now()
            await self.send({
                "type": "saved",
                "data": {"outcome": outcome.value if outcome else None}
            })

        elif message_type == "reapply":
            applied = await self.pipeline.reapply(data.get("entity_id", ""))
            await self.send({"type": "reapplied", "data": {"applied": applied}})

        elif message_type == "ping":
            # Ответ на ping для поддержания соединения
            await self.send({"type": "pong", "data": {"ready": self.engine.is_ready}})

        elif message_type == "sync_request":
            await self.send({
                "type": "sync_response",
                "data": {
                    "snapshot": self.store.get_snapshot(),
                    "state": self.engine.state.value,
                    "pending_changes": self.engine.pending_changes,
                }
            })

        elif message_type == "debug_events":
            await self.send({
                "type": "debug_events",
                "data": [
                    {"name": event.name, "fields": event.fields, "timestamp": event.timestamp}
                    for event in self.debug_events.events
                ]
            })

        else:
            logger.warning(f"Unknown message type {message_type!r} from owner {self.owner_id}")


class ConnectionManager:
    def __init__(self):
        # Активные сессии: {owner_id: CanvasSession}, один писатель на владельца
        self.active_sessions: Dict[str, CanvasSession] = {}

    async def connect(self, websocket: WebSocket, owner_id: str) -> CanvasSession:
        """Подключение владельца к своему холсту"""
        await websocket.accept()
        logger.info(f"WebSocket accepted for owner {owner_id}")

        previous = self.active_sessions.pop(owner_id, None)
        if previous is not None:
            logger.info(f"Replacing previous session of owner {owner_id}")
            await previous.close()

        session = CanvasSession(owner_id, websocket)
        self.active_sessions[owner_id] = session
        await session.start()
        return session

    async def disconnect(self, owner_id: str, session: CanvasSession) -> None:
        """Отключение владельца"""
        if self.active_sessions.get(owner_id) is session:
            del self.active_sessions[owner_id]
        await session.close()
        logger.info(f"Owner {owner_id} disconnected")


manager = ConnectionManager()


def websocket_owner(websocket: WebSocket) -> Optional[str]:
    """Владелец из токена: параметр token или заголовок Authorization"""
    token = websocket.query_params.get("token") or extract_token_from_header(
        websocket.headers.get("authorization", "")
    )
    return owner_from_token(token)


@router.websocket("/canvas/ws/{owner_id}")
async def websocket_endpoint(websocket: WebSocket, owner_id: str):
    """WebSocket эндпоинт сессии холста"""
    if websocket_owner(websocket) != owner_id:
        logger.warning(f"Rejected WebSocket for owner {owner_id}: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = await manager.connect(websocket, owner_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from owner {owner_id}")
                continue
            await session.handle_message(message)

    except WebSocketDisconnect:
        await manager.disconnect(owner_id, session)

    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        await manager.disconnect(owner_id, session)
