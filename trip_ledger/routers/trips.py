from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.api import deps
from trip_ledger.api.errors import to_http_exception
from trip_ledger.core.db import get_db
from trip_ledger.core.errors import LedgerError
from trip_ledger.schemas.trip import (
    ContinuityWarningResponse,
    MileageRecalculationResponse,
    TripCreate,
    TripDeletionResponse,
    TripListResponse,
    TripRecoverRequest,
    TripResponse,
    TripUpdate,
    TripWriteResponse,
)
from trip_ledger.services.continuity import ContinuityWarning
from trip_ledger.services.deletion import DeletionGuard
from trip_ledger.services.trip import TripService

router = APIRouter()


async def _service(db: AsyncSession = Depends(get_db)) -> TripService:
    return TripService(db)


async def _guard(db: AsyncSession = Depends(get_db)) -> DeletionGuard:
    return DeletionGuard(db)


def _write_response(trip, warnings: List[ContinuityWarning]) -> TripWriteResponse:
    return TripWriteResponse(
        trip=TripResponse.model_validate(trip),
        warnings=[ContinuityWarningResponse.model_validate(w) for w in warnings],
    )


# ==================== TRIP CRUD ====================


@router.post("", response_model=TripWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    payload: TripCreate,
    actor: deps.ActorDep,
    service: TripService = Depends(_service),
) -> TripWriteResponse:
    """Log a trip. Odometer continuity is checked before it is stored."""
    try:
        trip, warnings = await service.create_trip(payload, actor.id, actor.organization_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return _write_response(trip, warnings)


@router.get("", response_model=TripListResponse)
async def list_trips(
    actor_id: deps.ActorIdDep,
    vehicle_id: Optional[str] = Query(None, description="Filter by vehicle"),
    include_deleted: bool = Query(False, description="Include soft-deleted trips"),
    service: TripService = Depends(_service),
) -> TripListResponse:
    trips = await service.list_trips(actor_id, vehicle_id=vehicle_id, include_deleted=include_deleted)
    return TripListResponse(
        trips=[TripResponse.model_validate(trip) for trip in trips],
        total=len(trips),
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: str,
    actor_id: deps.ActorIdDep,
    service: TripService = Depends(_service),
) -> TripResponse:
    """Get a trip by ID. Soft-deleted trips are still returned."""
    try:
        trip = await service.get_trip(trip_id, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return TripResponse.model_validate(trip)


@router.patch("/{trip_id}", response_model=TripWriteResponse)
async def update_trip(
    trip_id: str,
    payload: TripUpdate,
    actor_id: deps.ActorIdDep,
    service: TripService = Depends(_service),
) -> TripWriteResponse:
    try:
        trip, warnings = await service.update_trip(trip_id, payload, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return _write_response(trip, warnings)


# ==================== DELETION ====================


@router.delete("/{trip_id}", response_model=TripDeletionResponse)
async def delete_trip(
    trip_id: str,
    actor_id: deps.ActorIdDep,
    guard: DeletionGuard = Depends(_guard),
) -> TripDeletionResponse:
    """Delete a trip; refuelling trips other trips depend on are soft deleted instead."""
    try:
        result = await guard.delete(trip_id, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return TripDeletionResponse(
        trip_id=result.trip_id,
        status=result.outcome.value,
        dependent_trips=result.dependent_trips,
        message=result.message,
    )


@router.post("/{trip_id}/recover", response_model=TripWriteResponse)
async def recover_trip(
    trip_id: str,
    payload: TripRecoverRequest,
    actor_id: deps.ActorIdDep,
    guard: DeletionGuard = Depends(_guard),
) -> TripWriteResponse:
    try:
        result = await guard.recover(trip_id, payload.reason, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return _write_response(result.trip, result.warnings)


# ==================== MILEAGE ====================


@router.post("/{trip_id}/mileage/recalculate", response_model=MileageRecalculationResponse)
async def recalculate_mileage(
    trip_id: str,
    actor_id: deps.ActorIdDep,
    service: TripService = Depends(_service),
) -> MileageRecalculationResponse:
    try:
        old_value, result = await service.recalculate_mileage(trip_id, actor_id)
    except LedgerError as exc:
        raise to_http_exception(exc)
    return MileageRecalculationResponse(
        trip_id=trip_id,
        old_mileage=old_value,
        new_mileage=result.value,
        calculation_method=result.method,
        reference_trip_serial=result.reference_trip_serial,
        changed=old_value != result.value,
    )
