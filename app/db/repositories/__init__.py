from app.db.repositories.canvas_repository import (
    CanvasStateRepository, RemoteRecordRepository, SessionScopedCanvasRepository
)

__all__ = [
    "CanvasStateRepository",
    "RemoteRecordRepository",
    "SessionScopedCanvasRepository",
]
