"""
Unit tests for tank-to-tank mileage.
"""
import pytest

from trip_ledger.models.base import utcnow
from trip_ledger.services.mileage import (
    METHOD_FIRST_REFUELING,
    METHOD_MISSING_FUEL,
    METHOD_NOT_APPLICABLE,
    METHOD_TANK_TO_TANK,
    MileageCalculator,
    tank_to_tank_mileage,
)
from tests.conftest import OTHER_OWNER, build_trip, log_trip


def test_tank_to_tank_mileage_formula():
    assert tank_to_tank_mileage(80, 16) == pytest.approx(5.0)
    assert tank_to_tank_mileage(100, None) is None
    assert tank_to_tank_mileage(100, 0) is None


async def test_first_refueling_uses_own_distance(db_session, settings):
    trip = await log_trip(db_session, settings, 100, 200, 0, refueling_done=True, fuel_quantity=20)

    assert trip.calculated_mileage == pytest.approx(5.0)
    result = await MileageCalculator(db_session).calculate(trip)
    assert result.method == METHOD_FIRST_REFUELING
    assert result.distance_km == 100
    assert result.reference_trip_serial is None


async def test_distance_runs_from_previous_refueling(db_session, settings):
    anchor = await log_trip(db_session, settings, 200, 300, 0, refueling_done=True, fuel_quantity=20)
    await log_trip(db_session, settings, 300, 340, 2)
    trip = await log_trip(db_session, settings, 340, 380, 4, refueling_done=True, fuel_quantity=16)

    assert trip.calculated_mileage == pytest.approx(5.0)
    result = await MileageCalculator(db_session).calculate(trip)
    assert result.method == METHOD_TANK_TO_TANK
    assert result.distance_km == 80
    assert result.reference_trip_serial == anchor.serial_number


async def test_non_refueling_trip_has_no_mileage(db_session, settings):
    trip = await log_trip(db_session, settings, 100, 200, 0)

    assert trip.calculated_mileage is None
    result = await MileageCalculator(db_session).calculate(trip)
    assert result.method == METHOD_NOT_APPLICABLE


async def test_refueling_without_fuel_quantity(db_session, settings):
    trip = await log_trip(db_session, settings, 100, 200, 0, refueling_done=True)

    assert trip.calculated_mileage is None
    result = await MileageCalculator(db_session).calculate(trip)
    assert result.method == METHOD_MISSING_FUEL


async def test_soft_deleted_refueling_is_not_an_anchor(db_session, settings):
    anchor = await log_trip(db_session, settings, 200, 300, 0, refueling_done=True, fuel_quantity=20)
    trip = await log_trip(db_session, settings, 300, 380, 2, refueling_done=True, fuel_quantity=16)
    anchor.deleted_at = utcnow()
    await db_session.commit()

    result = await MileageCalculator(db_session).recalculate(trip)

    assert result.method == METHOD_FIRST_REFUELING
    assert trip.calculated_mileage == pytest.approx(80 / 16)


async def test_other_owners_refuelings_are_not_anchors(db_session, settings):
    await log_trip(db_session, settings, 200, 300, 0, owner=OTHER_OWNER, refueling_done=True, fuel_quantity=20)
    trip = await log_trip(db_session, settings, 300, 380, 2, refueling_done=True, fuel_quantity=16)

    result = await MileageCalculator(db_session).calculate(trip)

    assert result.method == METHOD_FIRST_REFUELING


async def test_recalculate_only_writes_the_given_trip(db_session, settings):
    anchor = build_trip(0, 100, 0, refueling_done=True, fuel_quantity=10, calculated_mileage=99.0)
    trip = build_trip(100, 150, 2, refueling_done=True, fuel_quantity=10)
    db_session.add_all([anchor, trip])
    await db_session.commit()

    await MileageCalculator(db_session).recalculate(trip)

    assert trip.calculated_mileage == pytest.approx(5.0)
    assert anchor.calculated_mileage == 99.0
