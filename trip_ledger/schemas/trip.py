from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


LedgerTime = Annotated[datetime, AfterValidator(_naive_utc)]


# ==================== TRIP WRITE SCHEMAS ====================


class TripCreate(BaseModel):
    """Log a new trip for a vehicle."""
    vehicle_id: str = Field(..., min_length=1)
    start_odometer: int = Field(..., ge=0, description="Odometer at trip start (km)")
    end_odometer: int = Field(..., ge=0, description="Odometer at trip end (km)")
    trip_start_time: LedgerTime
    trip_end_time: LedgerTime
    refueling_done: bool = False
    fuel_quantity: Optional[float] = Field(None, gt=0, description="Litres filled, refuelling trips only")

    @model_validator(mode="after")
    def _drop_fuel_without_refueling(self) -> "TripCreate":
        if not self.refueling_done:
            self.fuel_quantity = None
        return self


class TripUpdate(BaseModel):
    """Edit a trip. Serial number, vehicle and owner cannot be changed."""
    start_odometer: Optional[int] = Field(None, ge=0)
    end_odometer: Optional[int] = Field(None, ge=0)
    trip_start_time: Optional[LedgerTime] = None
    trip_end_time: Optional[LedgerTime] = None
    refueling_done: Optional[bool] = None
    fuel_quantity: Optional[float] = Field(None, gt=0)


# ==================== TRIP READ SCHEMAS ====================


class TripResponse(BaseModel):
    id: str
    vehicle_id: str
    organization_id: str
    serial_number: str
    start_odometer: int
    end_odometer: int
    trip_start_time: datetime
    trip_end_time: datetime
    refueling_done: bool
    fuel_quantity: Optional[float] = None
    calculated_mileage: Optional[float] = None
    deleted_at: Optional[datetime] = None
    deletion_reason: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TripListResponse(BaseModel):
    trips: List[TripResponse]
    total: int


class ContinuityWarningResponse(BaseModel):
    """Non-blocking continuity advisory."""
    kind: Literal["large_gap"]
    message: str
    gap_km: int
    related_trip_serial: Optional[str] = None

    model_config = {"from_attributes": True}


class TripWriteResponse(BaseModel):
    """A committed trip plus any continuity advisories raised while writing it."""
    trip: TripResponse
    warnings: List[ContinuityWarningResponse] = Field(default_factory=list)


# ==================== DELETION / RECOVERY ====================


class TripDeletionResponse(BaseModel):
    trip_id: str
    status: Literal["deleted", "soft_deleted"]
    dependent_trips: int = 0
    message: str


class TripRecoverRequest(BaseModel):
    reason: str = Field(..., min_length=1)


# ==================== MILEAGE ====================


class MileageRecalculationResponse(BaseModel):
    trip_id: str
    old_mileage: Optional[float] = None
    new_mileage: Optional[float] = None
    calculation_method: str
    reference_trip_serial: Optional[str] = None
    changed: bool
