from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.core.config import Settings, get_settings
from trip_ledger.core.errors import TripNotFound
from trip_ledger.models.trip import Trip
from trip_ledger.schemas.trip import TripCreate, TripUpdate
from trip_ledger.services import ledger_queries
from trip_ledger.services.audit_log_service import LedgerAuditService
from trip_ledger.services.continuity import ContinuityValidator, ContinuityWarning
from trip_ledger.services.mileage import MileageCalculator, MileageResult
from trip_ledger.services.number_generator import next_trip_serial

logger = logging.getLogger(__name__)

# Fields whose change must pass the continuity validator again.
CONTINUITY_FIELDS = ("start_odometer", "end_odometer", "trip_start_time", "trip_end_time")


class TripService:
    """Trip writes and reads.

    Every write runs the continuity validator and, for refuelling trips, the
    mileage calculator before it is committed.
    """

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.audit = LedgerAuditService(db)

    async def create_trip(
        self,
        payload: TripCreate,
        actor_id: str,
        organization_id: Optional[str] = None,
    ) -> Tuple[Trip, List[ContinuityWarning]]:
        organization_id = organization_id or actor_id
        trip = Trip(
            id=str(uuid.uuid4()),
            vehicle_id=payload.vehicle_id,
            organization_id=organization_id,
            serial_number=await next_trip_serial(
                self.db,
                organization_id,
                self.settings.ledger_serial_format,
                vehicle_id=payload.vehicle_id,
            ),
            start_odometer=payload.start_odometer,
            end_odometer=payload.end_odometer,
            trip_start_time=payload.trip_start_time,
            trip_end_time=payload.trip_end_time,
            refueling_done=payload.refueling_done,
            fuel_quantity=payload.fuel_quantity,
            created_by=actor_id,
        )

        continuity = await ContinuityValidator(self.db, self.settings).validate(trip)

        self.db.add(trip)
        calculator = MileageCalculator(self.db)
        await calculator.recalculate(trip)
        if trip.refueling_done:
            await calculator.recalculate_following(trip)
        self._record_warnings(trip, continuity.warnings, actor_id)

        await self.db.commit()
        await self.db.refresh(trip)
        logger.info("Trip %s logged for vehicle %s", trip.serial_number, trip.vehicle_id)
        return trip, continuity.warnings

    async def update_trip(
        self,
        trip_id: str,
        payload: TripUpdate,
        actor_id: str,
    ) -> Tuple[Trip, List[ContinuityWarning]]:
        trip = await self.get_trip(trip_id, actor_id)
        if trip.deleted_at is not None:
            raise TripNotFound(trip_id)

        changes = payload.model_dump(exclude_unset=True)
        for key, value in changes.items():
            if value is None and key != "fuel_quantity":
                continue
            setattr(trip, key, value)
        if not trip.refueling_done:
            trip.fuel_quantity = None

        warnings: List[ContinuityWarning] = []
        if any(key in changes for key in CONTINUITY_FIELDS):
            continuity = await ContinuityValidator(self.db, self.settings).validate(trip)
            warnings = continuity.warnings
            self._record_warnings(trip, warnings, actor_id)

        calculator = MileageCalculator(self.db)
        await calculator.recalculate(trip)
        if trip.refueling_done or "refueling_done" in changes:
            await calculator.recalculate_following(trip)

        await self.db.commit()
        await self.db.refresh(trip)
        return trip, warnings

    async def get_trip(self, trip_id: str, actor_id: str) -> Trip:
        """Trip by id, soft-deleted ones included."""
        trip = await ledger_queries.get_owned_trip(self.db, trip_id, actor_id)
        if trip is None:
            raise TripNotFound(trip_id)
        return trip

    async def list_trips(
        self,
        actor_id: str,
        vehicle_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Trip]:
        query = select(Trip).where(Trip.created_by == actor_id)
        if vehicle_id:
            query = query.where(Trip.vehicle_id == vehicle_id)
        if not include_deleted:
            query = query.where(Trip.deleted_at.is_(None))
        query = query.order_by(Trip.vehicle_id, Trip.trip_start_time.asc(), Trip.id.asc())

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def recalculate_mileage(self, trip_id: str, actor_id: str) -> Tuple[Optional[float], MileageResult]:
        """Re-derive one trip's mileage on request. Returns the old value and the new result."""
        trip = await self.get_trip(trip_id, actor_id)
        if trip.deleted_at is not None:
            raise TripNotFound(trip_id)

        old_value = trip.calculated_mileage
        result = await MileageCalculator(self.db).recalculate(trip)

        if old_value != result.value:
            self.audit.record(
                "trip.mileage_recalculated",
                f"Mileage of trip {trip.serial_number} recalculated",
                user_id=actor_id,
                resource_id=trip.id,
                vehicle_id=trip.vehicle_id,
                metadata={
                    "old_kmpl": old_value,
                    "new_kmpl": result.value,
                    "calculation_method": result.method,
                    "distance_km": result.distance_km,
                    "fuel_quantity": trip.fuel_quantity,
                },
            )
        await self.db.commit()
        return old_value, result

    def _record_warnings(self, trip: Trip, warnings: List[ContinuityWarning], actor_id: str) -> None:
        for warning in warnings:
            self.audit.record(
                "trip.continuity_warning",
                f"Continuity warning on trip {trip.serial_number}",
                user_id=actor_id,
                resource_id=trip.id,
                vehicle_id=trip.vehicle_id,
                status="warning",
                metadata={
                    "kind": warning.kind,
                    "gap_km": warning.gap_km,
                    "related_trip_serial": warning.related_trip_serial,
                },
                message=warning.message,
            )
