"""Shared trip lookups.

Every query is scoped to one ledger partition, i.e. the trips of one vehicle
created by one owner, and ignores soft-deleted rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.models.trip import Trip


def partition(vehicle_id: str, owner_id: str) -> Select:
    return select(Trip).where(
        Trip.vehicle_id == vehicle_id,
        Trip.created_by == owner_id,
        Trip.deleted_at.is_(None),
    )


async def get_owned_trip(
    db: AsyncSession,
    trip_id: str,
    owner_id: str,
    *,
    for_update: bool = False,
) -> Optional[Trip]:
    query = select(Trip).where(Trip.id == trip_id, Trip.created_by == owner_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def previous_trip(db: AsyncSession, trip: Trip) -> Optional[Trip]:
    """Most recent trip that ended before ``trip`` started."""
    result = await db.execute(
        partition(trip.vehicle_id, trip.created_by)
        .where(Trip.id != trip.id, Trip.trip_end_time < trip.trip_start_time)
        .order_by(Trip.trip_end_time.desc(), Trip.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def next_trip(db: AsyncSession, trip: Trip) -> Optional[Trip]:
    """Earliest trip that starts after ``trip`` ended."""
    result = await db.execute(
        partition(trip.vehicle_id, trip.created_by)
        .where(Trip.id != trip.id, Trip.trip_start_time > trip.trip_end_time)
        .order_by(Trip.trip_start_time.asc(), Trip.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def previous_refueling(db: AsyncSession, trip: Trip) -> Optional[Trip]:
    """Most recent other refuelling trip that ended strictly before ``trip`` ended."""
    result = await db.execute(
        partition(trip.vehicle_id, trip.created_by)
        .where(
            Trip.id != trip.id,
            Trip.refueling_done.is_(True),
            Trip.trip_end_time < trip.trip_end_time,
        )
        .order_by(Trip.trip_end_time.desc(), Trip.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def next_refueling(db: AsyncSession, trip: Trip) -> Optional[Trip]:
    """Earliest other refuelling trip that ended strictly after ``trip`` ended."""
    result = await db.execute(
        partition(trip.vehicle_id, trip.created_by)
        .where(
            Trip.id != trip.id,
            Trip.refueling_done.is_(True),
            Trip.trip_end_time > trip.trip_end_time,
        )
        .order_by(Trip.trip_end_time.asc(), Trip.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def later_trips_query(trip: Trip, *, limit: Optional[int] = None, for_update: bool = False) -> Select:
    """Trips starting after ``trip`` ended, in cascade order (start time, then id)."""
    query = (
        partition(trip.vehicle_id, trip.created_by)
        .where(Trip.id != trip.id, Trip.trip_start_time > trip.trip_end_time)
        .order_by(Trip.trip_start_time.asc(), Trip.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    if for_update:
        query = query.with_for_update()
    return query


async def later_trips(
    db: AsyncSession,
    trip: Trip,
    *,
    limit: Optional[int] = None,
    for_update: bool = False,
) -> List[Trip]:
    result = await db.execute(later_trips_query(trip, limit=limit, for_update=for_update))
    return list(result.scalars().all())


async def count_dependent_trips(db: AsyncSession, trip: Trip) -> int:
    """Non-refuelling trips after ``trip`` whose tank-to-tank baseline it provides."""
    result = await db.execute(
        select(func.count(Trip.id)).where(
            Trip.vehicle_id == trip.vehicle_id,
            Trip.created_by == trip.created_by,
            Trip.deleted_at.is_(None),
            Trip.id != trip.id,
            Trip.refueling_done.is_(False),
            Trip.trip_start_time > trip.trip_end_time,
        )
    )
    return int(result.scalar() or 0)


async def trips_in_window(
    db: AsyncSession,
    vehicle_id: str,
    owner_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Trip]:
    query = partition(vehicle_id, owner_id)
    if start is not None:
        query = query.where(Trip.trip_start_time >= start)
    if end is not None:
        query = query.where(Trip.trip_start_time <= end)
    result = await db.execute(query.order_by(Trip.trip_start_time.asc(), Trip.id.asc()))
    return list(result.scalars().all())
