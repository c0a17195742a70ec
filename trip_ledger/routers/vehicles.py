from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.api import deps
from trip_ledger.core.db import get_db
from trip_ledger.schemas.chain import ChainIntegrityReport, ChainIssueResponse
from trip_ledger.services.chain_integrity import ChainIntegrityService

router = APIRouter()


async def _service(db: AsyncSession = Depends(get_db)) -> ChainIntegrityService:
    return ChainIntegrityService(db)


@router.get("/{vehicle_id}/chain-integrity", response_model=ChainIntegrityReport)
async def check_chain_integrity(
    vehicle_id: str,
    actor_id: deps.ActorIdDep,
    auto_fix: bool = Query(False, description="Apply safe repairs"),
    date_from: Optional[date] = Query(None, description="First trip day to include"),
    date_to: Optional[date] = Query(None, description="Last trip day to include"),
    service: ChainIntegrityService = Depends(_service),
) -> ChainIntegrityReport:
    """
    Audit the vehicle's odometer chain and tank-to-tank mileage.

    With ``auto_fix`` regressed start readings are pulled up to the previous
    trip's end and missing or stale mileage is recalculated.
    """
    report = await service.inspect(
        vehicle_id,
        actor_id,
        auto_fix=auto_fix,
        date_from=date_from,
        date_to=date_to,
    )
    return ChainIntegrityReport(
        vehicle_id=report.vehicle_id,
        date_from=report.date_from,
        date_to=report.date_to,
        trips_checked=report.trips_checked,
        issues=[ChainIssueResponse.model_validate(issue) for issue in report.issues],
    )
