"""
Ledger audit log schemas for API responses.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class LedgerAuditLogResponse(BaseModel):
    """Response schema for a single ledger audit entry."""
    id: str
    timestamp: datetime
    user_id: Optional[str] = None
    event_type: str
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    status: str
    metadata: Optional[dict] = Field(None, validation_alias="extra_data")
    message: Optional[str] = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class LedgerAuditLogFilter(BaseModel):
    """Filter parameters for querying the ledger audit log."""
    event_type: Optional[str] = None
    vehicle_id: Optional[str] = None
    resource_id: Optional[str] = None
    status: Optional[Literal["success", "warning", "blocked"]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class LedgerAuditLogListResponse(BaseModel):
    """Paginated list of ledger audit entries."""
    items: List[LedgerAuditLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
