"""
Unit tests for odometer continuity validation.
"""
from datetime import timedelta

import pytest

from trip_ledger.core.errors import (
    ContinuityViolation,
    InvalidOdometerRange,
    InvalidTripTimes,
    NextTripConflict,
)
from trip_ledger.models.base import utcnow
from trip_ledger.services.continuity import LARGE_GAP, ContinuityValidator
from tests.conftest import OTHER_OWNER, build_trip, log_trip


async def test_first_trip_has_no_previous(db_session, settings):
    candidate = build_trip(100, 200, 0)

    result = await ContinuityValidator(db_session, settings).validate(candidate)

    assert result.is_first_trip
    assert result.gap_km is None
    assert result.warnings == []


@pytest.mark.parametrize("start,end", [(100, 100), (100, 90), (0, 0)])
async def test_end_not_above_start_is_rejected(db_session, settings, start, end):
    with pytest.raises(InvalidOdometerRange) as exc_info:
        await ContinuityValidator(db_session, settings).validate(build_trip(start, end, 0))

    assert exc_info.value.field == "end_odometer"


async def test_trip_ending_before_it_starts_is_rejected(db_session, settings):
    candidate = build_trip(100, 200, 0)
    candidate.trip_end_time = candidate.trip_start_time - timedelta(minutes=5)

    with pytest.raises(InvalidTripTimes):
        await ContinuityValidator(db_session, settings).validate(candidate)


async def test_start_below_previous_end_is_rejected(db_session, settings):
    previous = await log_trip(db_session, settings, 1000, 1100, 0)

    with pytest.raises(ContinuityViolation) as exc_info:
        await ContinuityValidator(db_session, settings).validate(build_trip(1090, 1150, 2))

    error = exc_info.value
    assert error.gap == -10
    assert error.previous_serial_number == previous.serial_number
    assert previous.serial_number in error.message
    assert previous.trip_end_time.strftime("%d-%m-%Y %H:%M") in error.message


async def test_contiguous_trip_is_accepted(db_session, settings):
    previous = await log_trip(db_session, settings, 1000, 1100, 0)

    result = await ContinuityValidator(db_session, settings).validate(build_trip(1100, 1150, 2))

    assert result.previous_trip.id == previous.id
    assert result.gap_km == 0
    assert result.warnings == []


async def test_gap_at_threshold_is_silent(db_session, settings):
    await log_trip(db_session, settings, 1000, 1100, 0)

    result = await ContinuityValidator(db_session, settings).validate(
        build_trip(1100 + settings.ledger_gap_warning_km, 1200, 2)
    )

    assert result.warnings == []


async def test_large_gap_is_accepted_with_warning(db_session, settings):
    previous = await log_trip(db_session, settings, 1000, 1100, 0)

    result = await ContinuityValidator(db_session, settings).validate(build_trip(1200, 1300, 2))

    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.kind == LARGE_GAP
    assert warning.gap_km == 100
    assert warning.related_trip_serial == previous.serial_number


async def test_later_trip_starting_below_candidate_end_is_rejected(db_session, settings):
    later = await log_trip(db_session, settings, 1000, 1100, 10)

    with pytest.raises(NextTripConflict) as exc_info:
        await ContinuityValidator(db_session, settings).validate(build_trip(900, 1050, 0))

    error = exc_info.value
    assert isinstance(error, ContinuityViolation)
    assert error.gap == -50
    assert error.next_serial_number == later.serial_number
    assert error.next_start_odometer == 1000
    assert error.field == "end_odometer"
    assert "corrections" in error.message


async def test_later_trip_starting_at_candidate_end_is_accepted(db_session, settings):
    await log_trip(db_session, settings, 1050, 1100, 10)

    result = await ContinuityValidator(db_session, settings).validate(build_trip(900, 1050, 0))

    assert result.warnings == []


async def test_previous_trip_is_the_latest_ending_one(db_session, settings):
    await log_trip(db_session, settings, 1000, 1100, 0)
    latest = await log_trip(db_session, settings, 1100, 1200, 2)

    result = await ContinuityValidator(db_session, settings).validate(build_trip(1200, 1250, 4))

    assert result.previous_trip.id == latest.id


async def test_overlapping_trip_is_not_the_previous_one(db_session, settings):
    # Ends after the candidate starts, so it does not precede it.
    await log_trip(db_session, settings, 1000, 1100, 0, hours=5)

    result = await ContinuityValidator(db_session, settings).validate(build_trip(500, 600, 2))

    assert result.is_first_trip


async def test_soft_deleted_trips_are_ignored(db_session, settings):
    previous = await log_trip(db_session, settings, 1000, 1100, 0)
    previous.deleted_at = utcnow()
    await db_session.commit()

    result = await ContinuityValidator(db_session, settings).validate(build_trip(500, 600, 2))

    assert result.is_first_trip


async def test_other_owners_and_vehicles_are_separate_ledgers(db_session, settings):
    await log_trip(db_session, settings, 1000, 1100, 0, owner=OTHER_OWNER)
    await log_trip(db_session, settings, 1000, 1100, 0, vehicle_id="VH-200")

    result = await ContinuityValidator(db_session, settings).validate(build_trip(10, 20, 2))

    assert result.is_first_trip
