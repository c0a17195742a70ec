"""
Odometer continuity validation.

Runs before every insert or update that touches a trip's odometer readings or
times. A trip may never start below the end reading of the trip before it;
gaps above the configured threshold are accepted but reported as warnings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.core.config import Settings, get_settings
from trip_ledger.core.errors import (
    ContinuityViolation,
    InvalidOdometerRange,
    InvalidTripTimes,
    NextTripConflict,
)
from trip_ledger.models.trip import Trip
from trip_ledger.services import ledger_queries

logger = logging.getLogger(__name__)

LARGE_GAP = "large_gap"


@dataclass
class ContinuityWarning:
    kind: str
    message: str
    gap_km: int
    related_trip_serial: Optional[str] = None


@dataclass
class ContinuityResult:
    previous_trip: Optional[Trip] = None
    gap_km: Optional[int] = None
    warnings: List[ContinuityWarning] = field(default_factory=list)

    @property
    def is_first_trip(self) -> bool:
        return self.previous_trip is None


def check_odometer_range(trip: Trip) -> None:
    if trip.end_odometer <= trip.start_odometer:
        raise InvalidOdometerRange(
            trip.start_odometer,
            trip.end_odometer,
            serial_number=trip.serial_number,
            trip_id=trip.id,
        )


def check_trip_times(trip: Trip) -> None:
    if trip.trip_end_time < trip.trip_start_time:
        raise InvalidTripTimes(trip.trip_start_time, trip.trip_end_time, trip_id=trip.id)


class ContinuityValidator:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def validate(self, trip: Trip) -> ContinuityResult:
        """Accept or reject ``trip`` against the rest of its ledger.

        ``trip`` may be pending or already persistent with unflushed edits; its
        own row is excluded from every lookup.

        Raises:
            InvalidOdometerRange: end reading is not above the start reading.
            InvalidTripTimes: the trip ends before it starts.
            ContinuityViolation: the trip starts below the previous trip's end.
            NextTripConflict: a later trip starts below this trip's end.
        """
        check_odometer_range(trip)
        check_trip_times(trip)

        with self.db.no_autoflush:
            previous = await ledger_queries.previous_trip(self.db, trip)
            following = await ledger_queries.next_trip(self.db, trip)

        result = ContinuityResult(previous_trip=previous)

        if previous is not None:
            gap = trip.start_odometer - previous.end_odometer
            result.gap_km = gap

            if gap < 0:
                raise ContinuityViolation(
                    trip.start_odometer,
                    previous.end_odometer,
                    previous.serial_number,
                    previous.trip_end_time,
                    trip_id=trip.id,
                )

            if gap > self.settings.ledger_gap_warning_km:
                result.warnings.append(
                    ContinuityWarning(
                        kind=LARGE_GAP,
                        gap_km=gap,
                        related_trip_serial=previous.serial_number,
                        message=(
                            f"Large odometer gap detected: {gap} km between trips. Previous trip "
                            f"{previous.serial_number} ended at {previous.end_odometer} km on "
                            f"{previous.trip_end_time.strftime('%d-%m-%Y %H:%M')}. Current trip starts at "
                            f"{trip.start_odometer} km. This may indicate maintenance, personal use, "
                            f"or a data entry error."
                        ),
                    )
                )

        if following is not None and following.start_odometer < trip.end_odometer:
            raise NextTripConflict(
                trip.end_odometer,
                following.start_odometer,
                following.serial_number,
                following.trip_start_time,
                trip_id=trip.id,
            )

        for warning in result.warnings:
            logger.warning("Continuity warning for vehicle %s: %s", trip.vehicle_id, warning.message)

        return result
