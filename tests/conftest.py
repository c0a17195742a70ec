"""
Test configuration and fixtures for the trip ledger.

Every test gets its own SQLite file database, created from the model metadata.
DATABASE_URL must be set before any ``trip_ledger`` module is imported because
the settings and the default engine are built at import time.
"""
import itertools
import os
import uuid
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./trip_ledger_test.db")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trip_ledger.core.config import Settings
from trip_ledger.core.db import build_engine
from trip_ledger.models.base import Base
from trip_ledger.models.trip import Trip
from trip_ledger.schemas.trip import TripCreate
from trip_ledger.services.trip import TripService
import trip_ledger.models  # noqa: F401

VEHICLE = "VH-100"
OWNER = "driver-1"
OTHER_OWNER = "driver-2"
DAY_ONE = datetime(2025, 3, 1, 8, 0)

_serials = itertools.count(1)


@pytest.fixture
def settings():
    """Default settings without retry backoff."""
    return Settings(database_url=os.environ["DATABASE_URL"], ledger_retry_backoff_seconds=0)


@pytest.fixture
async def db_engine(tmp_path):
    """Create a fresh database for one test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


def trip_payload(start, end, hour, *, vehicle_id=VEHICLE, refueling_done=False, fuel_quantity=None, hours=1):
    """Trip starting ``hour`` hours after DAY_ONE and lasting ``hours`` hours."""
    start_time = DAY_ONE + timedelta(hours=hour)
    return TripCreate(
        vehicle_id=vehicle_id,
        start_odometer=start,
        end_odometer=end,
        trip_start_time=start_time,
        trip_end_time=start_time + timedelta(hours=hours),
        refueling_done=refueling_done,
        fuel_quantity=fuel_quantity,
    )


async def log_trip(session: AsyncSession, settings: Settings, start, end, hour, *, owner=OWNER, **kwargs) -> Trip:
    """Log a trip through the service, continuity checks included."""
    trip, _ = await TripService(session, settings).create_trip(trip_payload(start, end, hour, **kwargs), owner)
    return trip


def build_trip(start, end, hour, *, vehicle_id=VEHICLE, owner=OWNER, refueling_done=False,
               fuel_quantity=None, calculated_mileage=None, deleted_at=None) -> Trip:
    """Raw trip row that bypasses every ledger check; used to seed broken chains."""
    start_time = DAY_ONE + timedelta(hours=hour)
    return Trip(
        id=str(uuid.uuid4()),
        vehicle_id=vehicle_id,
        organization_id=owner,
        serial_number=f"RAW-{next(_serials):05d}",
        start_odometer=start,
        end_odometer=end,
        trip_start_time=start_time,
        trip_end_time=start_time + timedelta(hours=1),
        refueling_done=refueling_done,
        fuel_quantity=fuel_quantity,
        calculated_mileage=calculated_mileage,
        deleted_at=deleted_at,
        created_by=owner,
    )


async def fetch_trip(session_factory, trip_id: str) -> Trip:
    """Load a trip in a fresh session so no identity-map state leaks in."""
    async with session_factory() as session:
        return await session.get(Trip, trip_id)
