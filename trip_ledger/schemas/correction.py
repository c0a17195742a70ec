from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CorrectionPreviewRequest(BaseModel):
    new_end_odometer: int = Field(..., ge=0)


class CorrectionPreviewItem(BaseModel):
    serial_number: str
    current_start_odometer: int
    projected_start_odometer: int

    model_config = {"from_attributes": True}


class CorrectionPreviewResponse(BaseModel):
    trip_id: str
    delta: int
    affected: List[CorrectionPreviewItem]


class CorrectionRequest(BaseModel):
    """Retroactive end-odometer correction, cascaded to later trips."""
    new_end_odometer: int = Field(..., ge=0)
    reason: str = Field(..., min_length=1, description="Why the reading is being corrected")


class AffectedTripResponse(BaseModel):
    trip_id: str
    serial_number: str
    old_start_odometer: int
    new_start_odometer: int
    old_end_odometer: int
    new_end_odometer: int

    model_config = {"from_attributes": True}


class CorrectionApplyResponse(BaseModel):
    trip_id: str
    delta: int
    affected: List[AffectedTripResponse]


class TripCorrectionResponse(BaseModel):
    """One audit row of a trip's correction history."""
    id: str
    trip_id: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    affects_subsequent_trips: bool
    corrected_by: str
    corrected_at: datetime

    model_config = {"from_attributes": True}
