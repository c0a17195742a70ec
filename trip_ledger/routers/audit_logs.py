"""
Audit Logs Router - read access to the ledger audit channel.

Entries are written by the trip, deletion, correction and chain services;
this router only lists the caller's own entries.
"""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.api import deps
from trip_ledger.core.db import get_db
from trip_ledger.schemas.audit_log import LedgerAuditLogFilter, LedgerAuditLogListResponse
from trip_ledger.services.audit_log_service import LedgerAuditService

router = APIRouter()


async def _service(db: AsyncSession = Depends(get_db)) -> LedgerAuditService:
    return LedgerAuditService(db)


@router.get("", response_model=LedgerAuditLogListResponse)
async def list_audit_logs(
    actor_id: deps.ActorIdDep,
    service: LedgerAuditService = Depends(_service),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    vehicle_id: Optional[str] = Query(None, description="Filter by vehicle"),
    resource_id: Optional[str] = Query(None, description="Filter by trip or vehicle ID"),
    status: Optional[Literal["success", "warning", "blocked"]] = Query(None, description="Filter by status"),
    start_date: Optional[datetime] = Query(None, description="Start date filter"),
    end_date: Optional[datetime] = Query(None, description="End date filter"),
) -> LedgerAuditLogListResponse:
    """List ledger audit entries recorded for the current actor, newest first."""
    filters = LedgerAuditLogFilter(
        event_type=event_type,
        vehicle_id=vehicle_id,
        resource_id=resource_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )

    return await service.list_audit_logs(
        user_id=actor_id,
        filters=filters,
        page=page,
        page_size=page_size,
    )
