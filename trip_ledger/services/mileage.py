"""
Tank-to-tank fuel efficiency.

Mileage of a refuelling trip is the distance driven since the previous full
tank divided by the litres added now, which makes it independent of how many
non-refuelling trips were logged in between. The first refuelling event of a
vehicle falls back to the trip's own distance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.models.trip import Trip
from trip_ledger.services import ledger_queries

logger = logging.getLogger(__name__)

METHOD_TANK_TO_TANK = "tank_to_tank"
METHOD_FIRST_REFUELING = "first_refueling"
METHOD_NOT_APPLICABLE = "not_applicable"
METHOD_MISSING_FUEL = "missing_fuel_quantity"


@dataclass
class MileageResult:
    value: Optional[float]
    method: str
    distance_km: Optional[int] = None
    reference_trip: Optional[Trip] = None

    @property
    def reference_trip_serial(self) -> Optional[str]:
        return self.reference_trip.serial_number if self.reference_trip is not None else None


def tank_to_tank_mileage(distance_km: int, fuel_quantity: Optional[float]) -> Optional[float]:
    """km/L for ``distance_km`` on ``fuel_quantity`` litres; None when there is no usable fuel figure."""
    if not fuel_quantity or fuel_quantity <= 0:
        return None
    return distance_km / fuel_quantity


class MileageCalculator:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def calculate(self, trip: Trip) -> MileageResult:
        """Work out ``trip``'s mileage without writing it."""
        if not trip.refueling_done:
            return MileageResult(value=None, method=METHOD_NOT_APPLICABLE)

        if not trip.fuel_quantity or trip.fuel_quantity <= 0:
            return MileageResult(value=None, method=METHOD_MISSING_FUEL)

        reference = await ledger_queries.previous_refueling(self.db, trip)
        if reference is not None:
            distance = trip.end_odometer - reference.end_odometer
            method = METHOD_TANK_TO_TANK
        else:
            distance = trip.end_odometer - trip.start_odometer
            method = METHOD_FIRST_REFUELING

        return MileageResult(
            value=tank_to_tank_mileage(distance, trip.fuel_quantity),
            method=method,
            distance_km=distance,
            reference_trip=reference,
        )

    async def recalculate(self, trip: Trip) -> MileageResult:
        """Derive and store ``trip.calculated_mileage``. Only ``trip`` is written."""
        result = await self.calculate(trip)
        trip.calculated_mileage = result.value
        logger.debug(
            "Mileage for trip %s: %s km/L (%s)",
            trip.serial_number,
            result.value,
            result.method,
        )
        return result

    async def recalculate_following(self, trip: Trip) -> Optional[MileageResult]:
        """Re-derive the mileage of the next refuelling trip, whose baseline ``trip`` may be.

        Needed whenever ``trip`` enters, leaves or changes inside the ledger.
        """
        following = await ledger_queries.next_refueling(self.db, trip)
        if following is None:
            return None
        return await self.recalculate(following)
