"""
Cascade correction of retroactive odometer edits.

When a trip's end reading turns out to be wrong (a misread odometer photo,
a typo), every later trip of the same vehicle and owner was logged against the
wrong baseline. Applying a correction shifts all of them by the same delta in
one transaction, re-derives mileage for the refuelling trips among them and
writes one correction record per touched trip.

Each apply attempt opens its own session so that a serialization failure can
be retried from a clean state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trip_ledger.core.config import Settings, get_settings
from trip_ledger.core.errors import (
    InvalidOdometerRange,
    LedgerError,
    LedgerStorageError,
    RetryableCorrectionError,
    TripNotFound,
)
from trip_ledger.models.base import utcnow
from trip_ledger.models.trip import Trip, TripCorrection
from trip_ledger.services import ledger_queries
from trip_ledger.services.mileage import MileageCalculator

logger = logging.getLogger(__name__)

FIELD_END_KM = "end_km"
FIELD_ODOMETER_CASCADE = "odometer_cascade"

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass
class PreviewItem:
    serial_number: str
    current_start_odometer: int
    projected_start_odometer: int


@dataclass
class AffectedTrip:
    trip_id: str
    serial_number: str
    old_start_odometer: int
    new_start_odometer: int
    old_end_odometer: int
    new_end_odometer: int


@dataclass
class CorrectionOutcome:
    trip_id: str
    delta: int
    affected: List[AffectedTrip]


def format_range(start: int, end: int) -> str:
    return f"{start}-{end}"


def is_retryable(exc: DBAPIError) -> bool:
    """True for errors that mean "lost a race, try again"."""
    if exc.connection_invalidated:
        return False
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


class CascadeCorrectionService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def preview(self, trip_id: str, new_end_odometer: int, actor_id: str) -> Tuple[int, List[PreviewItem]]:
        """Projected start readings of the later trips. Read-only.

        A trip that does not exist or belongs to someone else yields an empty
        preview rather than an error.
        """
        async with self.session_factory() as session:
            trip = await ledger_queries.get_owned_trip(session, trip_id, actor_id)
            if trip is None:
                return 0, []

            delta = new_end_odometer - trip.end_odometer
            later = await ledger_queries.later_trips(
                session, trip, limit=self.settings.ledger_preview_limit
            )
            return delta, [
                PreviewItem(
                    serial_number=t.serial_number,
                    current_start_odometer=t.start_odometer,
                    projected_start_odometer=t.start_odometer + delta,
                )
                for t in later
            ]

    async def apply(
        self,
        trip_id: str,
        new_end_odometer: int,
        reason: str,
        actor_id: str,
    ) -> CorrectionOutcome:
        """Correct ``trip_id``'s end reading and cascade the delta, all or nothing.

        Retries the whole operation on serialization failures up to
        ``ledger_correction_max_retries`` times.

        Raises:
            TripNotFound: missing trip, or owned by another actor.
            InvalidOdometerRange: the new end reading is not above the trip's start.
            RetryableCorrectionError: still conflicting after the last retry.
            LedgerStorageError: any other storage failure. Nothing was committed.
        """
        max_attempts = max(1, self.settings.ledger_correction_max_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._apply_once(trip_id, new_end_odometer, reason, actor_id)
            except DBAPIError as exc:
                if not is_retryable(exc):
                    logger.exception("Correction of trip %s failed and was rolled back", trip_id)
                    raise LedgerStorageError(
                        f"Correction could not be stored: {exc.orig}", trip_id=trip_id
                    ) from exc
                if attempt >= max_attempts:
                    logger.warning(
                        "Correction of trip %s still conflicting after %s attempt(s)", trip_id, attempt
                    )
                    raise RetryableCorrectionError(trip_id, attempt) from exc
                logger.info("Correction of trip %s hit a write conflict, retrying (attempt %s)", trip_id, attempt)
                await asyncio.sleep(self.settings.ledger_retry_backoff_seconds * attempt)

    async def _apply_once(
        self,
        trip_id: str,
        new_end_odometer: int,
        reason: str,
        actor_id: str,
    ) -> CorrectionOutcome:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    return await self.apply_in_session(session, trip_id, new_end_odometer, reason, actor_id)
            except (LedgerError, DBAPIError):
                raise
            except SQLAlchemyError as exc:
                logger.exception("Correction of trip %s failed and was rolled back", trip_id)
                raise LedgerStorageError(f"Correction could not be stored: {exc}", trip_id=trip_id) from exc

    async def apply_in_session(
        self,
        session: AsyncSession,
        trip_id: str,
        new_end_odometer: int,
        reason: str,
        actor_id: str,
    ) -> CorrectionOutcome:
        """Run the correction inside the caller's open transaction."""
        trip = await ledger_queries.get_owned_trip(session, trip_id, actor_id, for_update=True)
        if trip is None:
            raise TripNotFound(trip_id)

        if new_end_odometer <= trip.start_odometer:
            raise InvalidOdometerRange(
                trip.start_odometer,
                new_end_odometer,
                serial_number=trip.serial_number,
                trip_id=trip.id,
            )

        old_end = trip.end_odometer
        delta = new_end_odometer - old_end
        corrected_at = utcnow()
        calculator = MileageCalculator(session)

        later: List[Trip] = []
        if delta != 0:
            later = await ledger_queries.later_trips(session, trip, for_update=True)

        trip.end_odometer = new_end_odometer
        if trip.refueling_done:
            await calculator.recalculate(trip)

        session.add(
            TripCorrection(
                id=str(uuid.uuid4()),
                trip_id=trip.id,
                field_name=FIELD_END_KM,
                old_value=str(old_end),
                new_value=str(new_end_odometer),
                reason=reason,
                affects_subsequent_trips=bool(later),
                corrected_by=actor_id,
                corrected_at=corrected_at,
            )
        )

        if delta == 0:
            logger.info("Correction of trip %s recorded with no odometer change", trip.serial_number)
            return CorrectionOutcome(trip_id=trip.id, delta=0, affected=[])

        affected: List[AffectedTrip] = []
        for later_trip in later:
            old_start, old_end_km = later_trip.start_odometer, later_trip.end_odometer
            later_trip.start_odometer = old_start + delta
            later_trip.end_odometer = old_end_km + delta

            session.add(
                TripCorrection(
                    id=str(uuid.uuid4()),
                    trip_id=later_trip.id,
                    field_name=FIELD_ODOMETER_CASCADE,
                    old_value=format_range(old_start, old_end_km),
                    new_value=format_range(later_trip.start_odometer, later_trip.end_odometer),
                    reason=reason,
                    affects_subsequent_trips=True,
                    corrected_by=actor_id,
                    corrected_at=corrected_at,
                )
            )
            affected.append(
                AffectedTrip(
                    trip_id=later_trip.id,
                    serial_number=later_trip.serial_number,
                    old_start_odometer=old_start,
                    new_start_odometer=later_trip.start_odometer,
                    old_end_odometer=old_end_km,
                    new_end_odometer=later_trip.end_odometer,
                )
            )

        # Reference refuelling trips must already carry shifted readings.
        await session.flush()
        for later_trip in later:
            if later_trip.refueling_done:
                await calculator.recalculate(later_trip)

        logger.info(
            "Corrected end km of trip %s by %+d km; %s later trip(s) shifted",
            trip.serial_number,
            delta,
            len(affected),
        )
        return CorrectionOutcome(trip_id=trip.id, delta=delta, affected=affected)

    async def history(self, trip_id: str, actor_id: str) -> List[TripCorrection]:
        """Correction records of one trip, oldest first."""
        async with self.session_factory() as session:
            trip = await ledger_queries.get_owned_trip(session, trip_id, actor_id)
            if trip is None:
                raise TripNotFound(trip_id)
            result = await session.execute(
                select(TripCorrection)
                .where(TripCorrection.trip_id == trip.id)
                .order_by(TripCorrection.corrected_at.asc(), TripCorrection.id.asc())
            )
            return list(result.scalars().all())
