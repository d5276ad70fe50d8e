from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_owner
from app.core.db import get_db
from app.domains.canvas.schemas import (
    CanvasSaveRequest, CanvasSaveResponse, CanvasStateResponse
)
from app.domains.canvas.services import CanvasStateService, SaveOutcome

router = APIRouter(prefix="/canvas", tags=["canvas"])


@router.get("/state", response_model=CanvasStateResponse)
async def get_canvas_state(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db)
):
    """Получение сохранённого холста текущего владельца"""
    canvas_service = CanvasStateService(db)

    state = await canvas_service.get_state(owner_id)

    if not state:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Canvas state not found"
        )

    return CanvasStateResponse(
        owner_id=state.owner_id,
        data=state.data,
        updated_at=state.updated_at
    )


@router.put("/state", response_model=CanvasSaveResponse)
async def save_canvas_state(
    request: CanvasSaveRequest,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db)
):
    """Сохранение снимка холста (в хранилище попадают только сущности и ассеты)"""
    canvas_service = CanvasStateService(db)

    outcome, package = await canvas_service.save_snapshot(owner_id, request.snapshot)

    return CanvasSaveResponse(
        owner_id=owner_id,
        outcome=outcome.value,
        counts=package.metadata.counts,
        saved_at=package.metadata.saved_at if outcome != SaveOutcome.SKIPPED else None
    )
