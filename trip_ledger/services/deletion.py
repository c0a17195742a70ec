"""
Guarded trip deletion.

A refuelling trip is the tank-to-tank baseline of the non-refuelling trips
logged after it. Deleting it outright would leave their fuel efficiency
unrecoverable, so such deletes are turned into soft deletes: the row stays,
marked with ``deleted_at``, and drops out of every continuity and mileage
lookup. The next refuelling trip's mileage is re-derived against the
baseline that remains. Callers get a distinct ``SOFT_DELETED`` outcome
instead of a bare success. Soft-deleted trips can be recovered.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.core.config import Settings, get_settings
from trip_ledger.core.errors import TripNotFound
from trip_ledger.models.base import utcnow
from trip_ledger.models.trip import Trip
from trip_ledger.services import ledger_queries
from trip_ledger.services.audit_log_service import LedgerAuditService
from trip_ledger.services.continuity import ContinuityValidator, ContinuityWarning
from trip_ledger.services.mileage import MileageCalculator

logger = logging.getLogger(__name__)

DEPENDENT_TRIPS_REASON = "has dependent non-refueling trips"


class DeletionOutcome(str, enum.Enum):
    DELETED = "deleted"
    SOFT_DELETED = "soft_deleted"


@dataclass
class DeletionResult:
    trip_id: str
    outcome: DeletionOutcome
    dependent_trips: int = 0

    @property
    def message(self) -> str:
        if self.outcome is DeletionOutcome.SOFT_DELETED:
            return (
                f"Trip kept as soft deleted: {self.dependent_trips} later non-refuelling trip(s) "
                f"depend on it for tank-to-tank mileage"
            )
        return "Trip deleted"


@dataclass
class RecoveryResult:
    trip: Trip
    warnings: List[ContinuityWarning] = field(default_factory=list)


class DeletionGuard:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.audit = LedgerAuditService(db)

    async def delete(self, trip_id: str, actor_id: str) -> DeletionResult:
        trip = await ledger_queries.get_owned_trip(self.db, trip_id, actor_id, for_update=True)
        if trip is None:
            raise TripNotFound(trip_id)

        dependent = 0
        if trip.refueling_done:
            dependent = await ledger_queries.count_dependent_trips(self.db, trip)

        if dependent > 0:
            if trip.deleted_at is None:
                trip.deleted_at = utcnow()
                trip.deletion_reason = DEPENDENT_TRIPS_REASON
                trip.deleted_by = actor_id
                await MileageCalculator(self.db).recalculate_following(trip)
                self.audit.record(
                    "trip.soft_deleted",
                    f"Refuelling trip {trip.serial_number} soft deleted",
                    user_id=actor_id,
                    resource_id=trip.id,
                    vehicle_id=trip.vehicle_id,
                    status="warning",
                    metadata={
                        "trip_serial": trip.serial_number,
                        "dependent_trips": dependent,
                        "fuel_quantity": trip.fuel_quantity,
                    },
                    message="Soft deleted to preserve mileage chain integrity",
                )
                logger.warning(
                    "Delete of refuelling trip %s converted to soft delete (%s dependent trip(s))",
                    trip.serial_number,
                    dependent,
                )
            await self.db.commit()
            return DeletionResult(trip_id=trip_id, outcome=DeletionOutcome.SOFT_DELETED, dependent_trips=dependent)

        remaining = len(await ledger_queries.later_trips(self.db, trip))
        if remaining:
            self.audit.record(
                "trip.deleted",
                f"Trip {trip.serial_number} deleted",
                user_id=actor_id,
                resource_id=trip.id,
                vehicle_id=trip.vehicle_id,
                status="warning" if trip.refueling_done else "success",
                metadata={
                    "trip_serial": trip.serial_number,
                    "start_odometer": trip.start_odometer,
                    "end_odometer": trip.end_odometer,
                    "refueling_done": trip.refueling_done,
                    "affected_trips": remaining,
                },
                message=f"{remaining} subsequent trip(s) may need odometer adjustment",
            )

        following = await ledger_queries.next_refueling(self.db, trip) if trip.refueling_done else None
        await self.db.delete(trip)
        if following is not None:
            await self.db.flush()
            await MileageCalculator(self.db).recalculate(following)
        await self.db.commit()
        logger.info("Trip %s deleted", trip.serial_number)
        return DeletionResult(trip_id=trip_id, outcome=DeletionOutcome.DELETED)

    async def recover(self, trip_id: str, reason: str, actor_id: str) -> RecoveryResult:
        """Bring a soft-deleted trip back into the ledger.

        The trip must still fit the ledger as it is now, so it passes the
        continuity validator again before the markers are cleared.
        """
        trip = await ledger_queries.get_owned_trip(self.db, trip_id, actor_id, for_update=True)
        if trip is None or trip.deleted_at is None:
            raise TripNotFound(trip_id)

        continuity = await ContinuityValidator(self.db, self.settings).validate(trip)

        deleted_at, deletion_reason = trip.deleted_at, trip.deletion_reason
        trip.deleted_at = None
        trip.deletion_reason = None
        trip.deleted_by = None
        calculator = MileageCalculator(self.db)
        await calculator.recalculate(trip)
        if trip.refueling_done:
            await calculator.recalculate_following(trip)

        self.audit.record(
            "trip.recovered",
            f"Trip {trip.serial_number} recovered",
            user_id=actor_id,
            resource_id=trip.id,
            vehicle_id=trip.vehicle_id,
            metadata={
                "deleted_at": deleted_at.isoformat(),
                "deletion_reason": deletion_reason,
                "recovery_reason": reason,
            },
            message=reason,
        )
        await self.db.commit()
        await self.db.refresh(trip)
        logger.info("Trip %s recovered: %s", trip.serial_number, reason)
        return RecoveryResult(trip=trip, warnings=continuity.warnings)
