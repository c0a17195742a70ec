"""Exceptions raised by the trip ledger services.

Routers translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from datetime import datetime
from typing import Optional


class LedgerError(Exception):
    """Base exception for trip ledger errors."""

    def __init__(self, message: str, *, trip_id: Optional[str] = None, field: Optional[str] = None):
        self.message = message
        self.trip_id = trip_id
        self.field = field
        super().__init__(self.message)

    def to_detail(self) -> dict:
        detail = {"error": type(self).__name__, "message": self.message}
        if self.trip_id:
            detail["trip_id"] = self.trip_id
        if self.field:
            detail["field"] = self.field
        return detail


class InvalidOdometerRange(LedgerError):
    """Raised when a trip's end odometer is not greater than its start odometer."""

    def __init__(self, start_odometer: int, end_odometer: int, *, serial_number: Optional[str] = None,
                 trip_id: Optional[str] = None):
        self.start_odometer = start_odometer
        self.end_odometer = end_odometer
        self.serial_number = serial_number
        label = f"trip {serial_number}" if serial_number else "trip"
        super().__init__(
            f"Invalid odometer reading for {label}: end km ({end_odometer}) must be greater "
            f"than start km ({start_odometer}). Distance cannot be zero or negative.",
            trip_id=trip_id,
            field="end_odometer",
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(start_odometer=self.start_odometer, end_odometer=self.end_odometer)
        return detail


class InvalidTripTimes(LedgerError):
    """Raised when a trip ends before it starts."""

    def __init__(self, trip_start_time: datetime, trip_end_time: datetime, *, trip_id: Optional[str] = None):
        self.trip_start_time = trip_start_time
        self.trip_end_time = trip_end_time
        super().__init__(
            f"Trip end time ({trip_end_time.isoformat()}) is before its start time "
            f"({trip_start_time.isoformat()}).",
            trip_id=trip_id,
            field="trip_end_time",
        )


class ContinuityViolation(LedgerError):
    """Raised when a trip starts below the end odometer of the trip before it."""

    def __init__(
        self,
        start_odometer: int,
        previous_end_odometer: int,
        previous_serial_number: str,
        previous_end_time: datetime,
        *,
        trip_id: Optional[str] = None,
    ):
        self.start_odometer = start_odometer
        self.previous_end_odometer = previous_end_odometer
        self.previous_serial_number = previous_serial_number
        self.previous_end_time = previous_end_time
        self.gap = start_odometer - previous_end_odometer
        super().__init__(
            f"Odometer continuity violation: start km {start_odometer} is less than the end km "
            f"{previous_end_odometer} of previous trip {previous_serial_number} which ended on "
            f"{previous_end_time.strftime('%d-%m-%Y %H:%M')} (gap {self.gap} km).",
            trip_id=trip_id,
            field="start_odometer",
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail.update(
            gap_km=self.gap,
            previous_trip_serial=self.previous_serial_number,
            previous_end_odometer=self.previous_end_odometer,
            previous_end_time=self.previous_end_time.isoformat(),
        )
        return detail


class NextTripConflict(ContinuityViolation):
    """Raised when a later trip already starts below the candidate's end odometer.

    Moving an end reading past the next trip's start has to go through a
    cascade correction, which shifts the later trips along with it.
    """

    def __init__(
        self,
        end_odometer: int,
        next_start_odometer: int,
        next_serial_number: str,
        next_start_time: datetime,
        *,
        trip_id: Optional[str] = None,
    ):
        self.end_odometer = end_odometer
        self.next_start_odometer = next_start_odometer
        self.next_serial_number = next_serial_number
        self.next_start_time = next_start_time
        self.gap = next_start_odometer - end_odometer
        LedgerError.__init__(
            self,
            f"Odometer continuity violation: end km {end_odometer} is above the start km "
            f"{next_start_odometer} of later trip {next_serial_number} which started on "
            f"{next_start_time.strftime('%d-%m-%Y %H:%M')} (gap {self.gap} km). "
            "Apply a cascade correction (POST /api/trips/{id}/corrections) to shift the later trips.",
            trip_id=trip_id,
            field="end_odometer",
        )

    def to_detail(self) -> dict:
        detail = LedgerError.to_detail(self)
        detail.update(
            gap_km=self.gap,
            next_trip_serial=self.next_serial_number,
            next_start_odometer=self.next_start_odometer,
            next_start_time=self.next_start_time.isoformat(),
        )
        return detail


class TripNotFound(LedgerError):
    """Raised when a trip does not exist or belongs to another actor."""

    def __init__(self, trip_id: str):
        super().__init__("Trip not found", trip_id=trip_id)


class RetryableCorrectionError(LedgerError):
    """Raised when a cascade correction lost a concurrency race; retry the whole call."""

    def __init__(self, trip_id: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Correction conflicted with a concurrent write after {attempts} attempt(s); retry the request.",
            trip_id=trip_id,
        )


class LedgerStorageError(LedgerError):
    """Raised when the store fails during a multi-row operation. Nothing was committed."""
