from app.domains.canvas.entities import (
    CanvasState, ChangeOrigin, ChangeScope, RecordKind, StoreChange,
    LINK_REFERENCE_TYPE, is_link_reference, record_kind
)
from app.domains.canvas.schemas import (
    CanvasSaveRequest, CanvasSaveResponse, CanvasStatePayload, CanvasStateResponse,
    PackageCounts, PackageMetadata, UserContentPackage
)
from app.domains.canvas.snapshot_filter import (
    InvalidPackageError, filter_snapshot, replay_batches, validate_package
)
from app.domains.canvas.store import DocumentStore, InMemoryDocumentStore, InvalidRecordError
from app.domains.canvas.state_machine import (
    InvalidTransitionError, SyncEvent, SyncState, SyncStateMachine
)
from app.domains.canvas.services import CanvasStateService, SaveOutcome, upsert_canvas_state
from app.domains.canvas.sync_engine import SyncEngine

__all__ = [
    "CanvasState", "ChangeOrigin", "ChangeScope", "RecordKind", "StoreChange",
    "LINK_REFERENCE_TYPE", "is_link_reference", "record_kind",
    "CanvasSaveRequest", "CanvasSaveResponse", "CanvasStatePayload", "CanvasStateResponse",
    "PackageCounts", "PackageMetadata", "UserContentPackage",
    "InvalidPackageError", "filter_snapshot", "replay_batches", "validate_package",
    "DocumentStore", "InMemoryDocumentStore", "InvalidRecordError",
    "InvalidTransitionError", "SyncEvent", "SyncState", "SyncStateMachine",
    "CanvasStateService", "SaveOutcome", "upsert_canvas_state",
    "SyncEngine",
]
