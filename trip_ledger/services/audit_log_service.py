"""
Ledger audit log service.

Provides methods for:
- Recording advisory ledger events inside the caller's transaction
- Listing ledger events with filtering and pagination
"""

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.models.audit_log import LedgerAuditLog
from trip_ledger.models.base import utcnow
from trip_ledger.schemas.audit_log import (
    LedgerAuditLogFilter,
    LedgerAuditLogListResponse,
    LedgerAuditLogResponse,
)

logger = logging.getLogger(__name__)


class LedgerAuditService:
    """Service for the ledger audit channel."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        event_type: str,
        action: str,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = "trip",
        resource_id: Optional[str] = None,
        vehicle_id: Optional[str] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
        message: Optional[str] = None,
    ) -> LedgerAuditLog:
        """Stage an audit entry; it commits or rolls back with the caller's transaction."""
        log = LedgerAuditLog(
            id=str(uuid4()),
            timestamp=utcnow(),
            user_id=user_id,
            event_type=event_type,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            vehicle_id=vehicle_id,
            status=status,
            extra_data=metadata,
            message=message,
        )
        self.db.add(log)
        return log

    async def list_audit_logs(
        self,
        user_id: str,
        filters: Optional[LedgerAuditLogFilter] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> LedgerAuditLogListResponse:
        """
        List the actor's ledger events with filtering and pagination.

        Args:
            user_id: Actor whose events are listed
            filters: Additional filter criteria
            page: Page number (1-indexed)
            page_size: Number of items per page
        """
        conditions = [LedgerAuditLog.user_id == user_id]

        if filters:
            if filters.event_type:
                conditions.append(LedgerAuditLog.event_type == filters.event_type)
            if filters.vehicle_id:
                conditions.append(LedgerAuditLog.vehicle_id == filters.vehicle_id)
            if filters.resource_id:
                conditions.append(LedgerAuditLog.resource_id == filters.resource_id)
            if filters.status:
                conditions.append(LedgerAuditLog.status == filters.status)
            if filters.start_date:
                conditions.append(LedgerAuditLog.timestamp >= filters.start_date)
            if filters.end_date:
                conditions.append(LedgerAuditLog.timestamp <= filters.end_date)

        total_result = await self.db.execute(select(func.count(LedgerAuditLog.id)).where(*conditions))
        total = total_result.scalar() or 0

        offset = (page - 1) * page_size
        result = await self.db.execute(
            select(LedgerAuditLog)
            .where(*conditions)
            .order_by(desc(LedgerAuditLog.timestamp), desc(LedgerAuditLog.id))
            .offset(offset)
            .limit(page_size)
        )
        logs = result.scalars().all()

        total_pages = (total + page_size - 1) // page_size if total > 0 else 1

        return LedgerAuditLogListResponse(
            items=[LedgerAuditLogResponse.model_validate(log) for log in logs],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )
