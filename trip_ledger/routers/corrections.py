from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trip_ledger.api import deps
from trip_ledger.api.errors import to_http_exception
from trip_ledger.core.db import get_session_factory
from trip_ledger.core.errors import LedgerError
from trip_ledger.schemas.correction import (
    AffectedTripResponse,
    CorrectionApplyResponse,
    CorrectionPreviewItem,
    CorrectionPreviewRequest,
    CorrectionPreviewResponse,
    CorrectionRequest,
    TripCorrectionResponse,
)
from trip_ledger.services.correction import CascadeCorrectionService

router = APIRouter()


async def _service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CascadeCorrectionService:
    return CascadeCorrectionService(session_factory)


@router.post("/{trip_id}/corrections/preview", response_model=CorrectionPreviewResponse)
async def preview_correction(
    trip_id: str,
    payload: CorrectionPreviewRequest,
    actor_id: deps.ActorIdDep,
    service: CascadeCorrectionService = Depends(_service),
) -> CorrectionPreviewResponse:
    """Show how later trips would shift. Writes nothing."""
    delta, items = await service.preview(trip_id, payload.new_end_odometer, actor_id)
    return CorrectionPreviewResponse(
        trip_id=trip_id,
        delta=delta,
        affected=[CorrectionPreviewItem.model_validate(item) for item in items],
    )


@router.post(
    "/{trip_id}/corrections",
    response_model=CorrectionApplyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_correction(
    trip_id: str,
    payload: CorrectionRequest,
    actor_id: deps.ActorIdDep,
    service: CascadeCorrectionService = Depends(_service),
) -> CorrectionApplyResponse:
    """Correct a trip's end km and shift every later trip of the vehicle atomically."""
    try:
        outcome = await service.apply(trip_id, payload.new_end_odometer, payload.reason, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return CorrectionApplyResponse(
        trip_id=outcome.trip_id,
        delta=outcome.delta,
        affected=[AffectedTripResponse.model_validate(item) for item in outcome.affected],
    )


@router.get("/{trip_id}/corrections", response_model=List[TripCorrectionResponse])
async def list_corrections(
    trip_id: str,
    actor_id: deps.ActorIdDep,
    service: CascadeCorrectionService = Depends(_service),
) -> List[TripCorrectionResponse]:
    try:
        records = await service.history(trip_id, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return [TripCorrectionResponse.model_validate(record) for record in records]
