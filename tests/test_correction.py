"""
Tests for cascade corrections: preview, apply, retries and rollback.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from trip_ledger.core.errors import (
    InvalidOdometerRange,
    LedgerStorageError,
    RetryableCorrectionError,
    TripNotFound,
)
from trip_ledger.models.base import utcnow
from trip_ledger.models.trip import Trip, TripCorrection
from trip_ledger.services import correction as correction_module
from trip_ledger.services.correction import (
    FIELD_END_KM,
    FIELD_ODOMETER_CASCADE,
    CascadeCorrectionService,
    is_retryable,
)
from tests.conftest import OTHER_OWNER, OWNER, fetch_trip, log_trip


class _DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def _dbapi_error(message, sqlstate=None):
    return DBAPIError("UPDATE trips SET end_odometer=?", {}, _DriverError(message, sqlstate))


@pytest.fixture
async def ledger(db_session, settings):
    """Refuel, drive, refuel, drive: four contiguous trips."""
    return [
        await log_trip(db_session, settings, 1000, 1100, 0, refueling_done=True, fuel_quantity=20),
        await log_trip(db_session, settings, 1100, 1200, 2),
        await log_trip(db_session, settings, 1200, 1300, 4, refueling_done=True, fuel_quantity=10),
        await log_trip(db_session, settings, 1300, 1400, 6),
    ]


async def _correction_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(TripCorrection.id)))).scalar()


async def test_positive_delta_shifts_every_later_trip(session_factory, settings, ledger):
    service = CascadeCorrectionService(session_factory, settings)

    outcome = await service.apply(ledger[0].id, 1110, "odometer photo misread", OWNER)

    assert outcome.delta == 10
    assert [a.serial_number for a in outcome.affected] == [t.serial_number for t in ledger[1:]]
    starts = []
    for original in ledger[1:]:
        trip = await fetch_trip(session_factory, original.id)
        assert trip.start_odometer == original.start_odometer + 10
        assert trip.end_odometer == original.end_odometer + 10
        starts.append(trip.start_odometer)
    assert starts == [1110, 1210, 1310]

    target = await fetch_trip(session_factory, ledger[0].id)
    assert target.end_odometer == 1110
    assert target.calculated_mileage == pytest.approx(110 / 20)
    refuel = await fetch_trip(session_factory, ledger[2].id)
    assert refuel.calculated_mileage == pytest.approx((1310 - 1110) / 10)


async def test_correction_records_are_written_per_trip(session_factory, settings, ledger):
    service = CascadeCorrectionService(session_factory, settings)
    await service.apply(ledger[0].id, 1110, "typo", OWNER)

    target_history = await service.history(ledger[0].id, OWNER)
    assert len(target_history) == 1
    record = target_history[0]
    assert record.field_name == FIELD_END_KM
    assert (record.old_value, record.new_value) == ("1100", "1110")
    assert record.affects_subsequent_trips is True
    assert record.corrected_by == OWNER

    cascade_history = await service.history(ledger[1].id, OWNER)
    assert len(cascade_history) == 1
    assert cascade_history[0].field_name == FIELD_ODOMETER_CASCADE
    assert (cascade_history[0].old_value, cascade_history[0].new_value) == ("1100-1200", "1110-1210")
    assert cascade_history[0].reason == "typo"
    assert await _correction_count(session_factory) == 4


async def test_negative_delta_shifts_later_trips_down(session_factory, settings, ledger):
    outcome = await CascadeCorrectionService(session_factory, settings).apply(ledger[1].id, 1195, "typo", OWNER)

    assert outcome.delta == -5
    assert [a.new_start_odometer for a in outcome.affected] == [1195, 1295]


async def test_zero_delta_writes_one_record_and_shifts_nothing(session_factory, settings, ledger):
    outcome = await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, 1100, "checked", OWNER)

    assert outcome.delta == 0
    assert outcome.affected == []
    assert await _correction_count(session_factory) == 1
    for original in ledger[1:]:
        trip = await fetch_trip(session_factory, original.id)
        assert trip.start_odometer == original.start_odometer


async def test_applying_the_same_value_twice_is_a_no_op(session_factory, settings, ledger):
    service = CascadeCorrectionService(session_factory, settings)
    await service.apply(ledger[0].id, 1110, "typo", OWNER)

    second = await service.apply(ledger[0].id, 1110, "typo", OWNER)

    assert second.delta == 0
    trip = await fetch_trip(session_factory, ledger[1].id)
    assert trip.start_odometer == 1110


async def test_last_trip_correction_touches_only_itself(session_factory, settings, ledger):
    outcome = await CascadeCorrectionService(session_factory, settings).apply(ledger[3].id, 1420, "typo", OWNER)

    assert outcome.delta == 20
    assert outcome.affected == []
    assert await _correction_count(session_factory) == 1


async def test_preview_matches_apply_and_writes_nothing(session_factory, settings, ledger):
    service = CascadeCorrectionService(session_factory, settings)

    delta, items = await service.preview(ledger[0].id, 1110, OWNER)

    assert delta == 10
    assert [(i.current_start_odometer, i.projected_start_odometer) for i in items] == [
        (1100, 1110),
        (1200, 1210),
        (1300, 1310),
    ]
    assert await _correction_count(session_factory) == 0
    assert (await fetch_trip(session_factory, ledger[1].id)).start_odometer == 1100

    outcome = await service.apply(ledger[0].id, 1110, "typo", OWNER)
    assert [a.new_start_odometer for a in outcome.affected] == [i.projected_start_odometer for i in items]


async def test_preview_is_capped(session_factory, settings, ledger):
    settings.ledger_preview_limit = 2

    _, items = await CascadeCorrectionService(session_factory, settings).preview(ledger[0].id, 1110, OWNER)

    assert [i.serial_number for i in items] == [ledger[1].serial_number, ledger[2].serial_number]


async def test_foreign_or_missing_trip_previews_empty(session_factory, settings, ledger):
    service = CascadeCorrectionService(session_factory, settings)

    assert await service.preview(ledger[0].id, 1110, OTHER_OWNER) == (0, [])
    assert await service.preview("missing", 1110, OWNER) == (0, [])


async def test_foreign_trip_cannot_be_corrected(session_factory, settings, ledger):
    with pytest.raises(TripNotFound):
        await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, 1110, "typo", OTHER_OWNER)

    assert await _correction_count(session_factory) == 0


async def test_other_owners_trips_are_not_cascaded(db_session, session_factory, settings, ledger):
    foreign = await log_trip(db_session, settings, 5000, 5100, 8, owner=OTHER_OWNER)

    await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, 1110, "typo", OWNER)

    assert (await fetch_trip(session_factory, foreign.id)).start_odometer == 5000


@pytest.mark.parametrize("new_end", [1000, 900])
async def test_new_end_must_exceed_start(session_factory, settings, ledger, new_end):
    with pytest.raises(InvalidOdometerRange):
        await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, new_end, "typo", OWNER)

    assert (await fetch_trip(session_factory, ledger[0].id)).end_odometer == 1100


async def test_failure_mid_cascade_rolls_everything_back(session_factory, settings, ledger, monkeypatch):
    original = correction_module.MileageCalculator.recalculate

    async def failing_recalculate(self, trip):
        if trip.id == ledger[2].id:
            raise SQLAlchemyError("disk full")
        return await original(self, trip)

    monkeypatch.setattr(correction_module.MileageCalculator, "recalculate", failing_recalculate)

    with pytest.raises(LedgerStorageError):
        await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, 1110, "typo", OWNER)

    assert await _correction_count(session_factory) == 0
    for original_trip in ledger:
        trip = await fetch_trip(session_factory, original_trip.id)
        assert (trip.start_odometer, trip.end_odometer) == (
            original_trip.start_odometer,
            original_trip.end_odometer,
        )


def test_retryable_error_detection():
    assert is_retryable(_dbapi_error("could not serialize access", sqlstate="40001"))
    assert is_retryable(_dbapi_error("deadlock detected", sqlstate="40P01"))
    assert is_retryable(OperationalError("UPDATE trips", {}, _DriverError("database is locked")))
    assert not is_retryable(_dbapi_error("value too long", sqlstate="22001"))


async def test_conflicts_are_retried_then_reported(session_factory, settings, monkeypatch):
    calls = []

    async def always_conflicting(*args):
        calls.append(args)
        raise _dbapi_error("could not serialize access", sqlstate="40001")

    service = CascadeCorrectionService(session_factory, settings)
    monkeypatch.setattr(service, "_apply_once", always_conflicting)

    with pytest.raises(RetryableCorrectionError) as exc_info:
        await service.apply("trip-1", 1110, "typo", OWNER)

    assert len(calls) == settings.ledger_correction_max_retries
    assert exc_info.value.attempts == settings.ledger_correction_max_retries


async def test_conflict_then_success(session_factory, settings, ledger, monkeypatch):
    service = CascadeCorrectionService(session_factory, settings)
    real_apply_once = service._apply_once
    attempts = []

    async def flaky(*args):
        attempts.append(args)
        if len(attempts) == 1:
            raise _dbapi_error("deadlock detected", sqlstate="40P01")
        return await real_apply_once(*args)

    monkeypatch.setattr(service, "_apply_once", flaky)

    outcome = await service.apply(ledger[0].id, 1110, "typo", OWNER)

    assert len(attempts) == 2
    assert outcome.delta == 10


async def test_non_retryable_storage_error(session_factory, settings, monkeypatch):
    async def broken(*args):
        raise _dbapi_error("value too long", sqlstate="22001")

    service = CascadeCorrectionService(session_factory, settings)
    monkeypatch.setattr(service, "_apply_once", broken)

    with pytest.raises(LedgerStorageError):
        await service.apply("trip-1", 1110, "typo", OWNER)


async def test_history_of_foreign_trip(session_factory, settings, ledger):
    with pytest.raises(TripNotFound):
        await CascadeCorrectionService(session_factory, settings).history(ledger[0].id, OTHER_OWNER)


async def test_soft_deleted_trips_are_not_cascaded(session_factory, settings, ledger):
    async with session_factory() as session:
        trip = await session.get(Trip, ledger[3].id)
        trip.deleted_at = utcnow()
        await session.commit()

    outcome = await CascadeCorrectionService(session_factory, settings).apply(ledger[0].id, 1110, "typo", OWNER)

    assert len(outcome.affected) == 2
    assert (await fetch_trip(session_factory, ledger[3].id)).start_odometer == 1300
