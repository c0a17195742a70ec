"""
Mileage chain integrity audit.

Walks a vehicle's ledger in trip order and reports anything that breaks the
odometer continuum or the mileage chain. With ``auto_fix`` the safe repairs
(pulling a regressed start reading up to the previous end, recalculating a
missing or stale mileage) are applied in the same transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.core.config import Settings, get_settings
from trip_ledger.models.trip import Trip
from trip_ledger.services import ledger_queries
from trip_ledger.services.audit_log_service import LedgerAuditService
from trip_ledger.services.mileage import MileageCalculator

logger = logging.getLogger(__name__)

# km/L difference below which a stored mileage counts as current.
MILEAGE_TOLERANCE = 0.01


@dataclass
class ChainIssue:
    issue_type: str
    severity: str
    description: str
    trip_id: Optional[str] = None
    trip_serial: Optional[str] = None
    suggested_fix: Optional[str] = None
    auto_fixed: bool = False
    fix_result: Optional[str] = None


@dataclass
class ChainReport:
    vehicle_id: str
    trips_checked: int
    issues: List[ChainIssue]
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @property
    def fixed_count(self) -> int:
        return sum(1 for issue in self.issues if issue.auto_fixed)


class ChainIntegrityService:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def inspect(
        self,
        vehicle_id: str,
        actor_id: str,
        auto_fix: bool = False,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> ChainReport:
        start = datetime.combine(date_from, time.min) if date_from else None
        end = datetime.combine(date_to, time.max) if date_to else None
        trips = await ledger_queries.trips_in_window(self.db, vehicle_id, actor_id, start, end)

        calculator = MileageCalculator(self.db)
        issues: List[ChainIssue] = []
        previous: Optional[Trip] = None

        for trip in trips:
            if trip.end_odometer <= trip.start_odometer:
                issues.append(
                    ChainIssue(
                        issue_type="negative_distance",
                        severity="critical",
                        trip_id=trip.id,
                        trip_serial=trip.serial_number,
                        description=(
                            f"End km ({trip.end_odometer}) is not greater than start km ({trip.start_odometer})"
                        ),
                        suggested_fix="Correct the start and end km readings",
                        fix_result="Manual intervention required",
                    )
                )

            if previous is not None:
                gap = trip.start_odometer - previous.end_odometer
                if gap < 0:
                    issue = self._regression(trip, previous, auto_fix)
                    if issue.auto_fixed and trip.refueling_done:
                        await calculator.recalculate(trip)
                    issues.append(issue)
                elif gap > self.settings.ledger_chain_gap_report_km:
                    issues.append(
                        ChainIssue(
                            issue_type="large_odometer_gap",
                            severity="medium",
                            trip_id=trip.id,
                            trip_serial=trip.serial_number,
                            description=f"Large gap of {gap} km from previous trip {previous.serial_number}",
                            suggested_fix="Check for missing trips",
                            fix_result="Manual verification required",
                        )
                    )

            if trip.refueling_done and trip.fuel_quantity and trip.fuel_quantity > 0:
                if trip.calculated_mileage is None:
                    issue = ChainIssue(
                        issue_type="missing_mileage_calculation",
                        severity="low",
                        trip_id=trip.id,
                        trip_serial=trip.serial_number,
                        description="Mileage not calculated for refuelling trip",
                        suggested_fix="Recalculate mileage",
                    )
                    if auto_fix:
                        result = await calculator.recalculate(trip)
                        issue.auto_fixed = result.value is not None
                        issue.fix_result = f"Recalculated mileage: {result.value} km/L ({result.method})"
                    issues.append(issue)
                else:
                    expected = (await calculator.calculate(trip)).value
                    if expected is not None and abs(expected - trip.calculated_mileage) > MILEAGE_TOLERANCE:
                        issues.append(self._mismatch(trip, expected, auto_fix))
                    elif not (
                        self.settings.ledger_min_realistic_kmpl
                        <= trip.calculated_mileage
                        <= self.settings.ledger_max_realistic_kmpl
                    ):
                        issues.append(
                            ChainIssue(
                                issue_type="unrealistic_mileage",
                                severity="medium",
                                trip_id=trip.id,
                                trip_serial=trip.serial_number,
                                description=f"Unrealistic mileage: {trip.calculated_mileage:.2f} km/L",
                                suggested_fix="Verify fuel quantity and odometer readings",
                                fix_result="Manual verification required",
                            )
                        )

            previous = trip

        report = ChainReport(
            vehicle_id=vehicle_id,
            trips_checked=len(trips),
            issues=issues,
            date_from=date_from,
            date_to=date_to,
        )

        if report.fixed_count:
            LedgerAuditService(self.db).record(
                "chain.repaired",
                f"Mileage chain of vehicle {vehicle_id} repaired",
                user_id=actor_id,
                resource_type="vehicle",
                resource_id=vehicle_id,
                vehicle_id=vehicle_id,
                metadata={"fixed_issues": report.fixed_count, "trips_checked": report.trips_checked},
            )
            await self.db.commit()
            logger.info("Repaired %s chain issue(s) on vehicle %s", report.fixed_count, vehicle_id)

        if not issues:
            report.issues.append(
                ChainIssue(
                    issue_type="no_issues",
                    severity="info",
                    description="Mileage chain validation complete - no issues found",
                    fix_result="All checks passed",
                )
            )
        return report

    def _regression(self, trip: Trip, previous: Trip, auto_fix: bool) -> ChainIssue:
        issue = ChainIssue(
            issue_type="odometer_regression",
            severity="high",
            trip_id=trip.id,
            trip_serial=trip.serial_number,
            description=(
                f"Start km ({trip.start_odometer}) is less than previous trip {previous.serial_number} "
                f"end km ({previous.end_odometer})"
            ),
            suggested_fix=f"Adjust start km to {previous.end_odometer}",
        )
        if auto_fix:
            if previous.end_odometer < trip.end_odometer:
                issue.fix_result = f"Adjusted start km from {trip.start_odometer} to {previous.end_odometer}"
                trip.start_odometer = previous.end_odometer
                issue.auto_fixed = True
            else:
                issue.fix_result = "Not fixed: trip would have no distance left"
        return issue

    def _mismatch(self, trip: Trip, expected: float, auto_fix: bool) -> ChainIssue:
        issue = ChainIssue(
            issue_type="mileage_mismatch",
            severity="medium",
            trip_id=trip.id,
            trip_serial=trip.serial_number,
            description=(
                f"Stored mileage {trip.calculated_mileage:.2f} km/L does not match the "
                f"tank-to-tank value {expected:.2f} km/L"
            ),
            suggested_fix="Recalculate mileage",
        )
        if auto_fix:
            issue.fix_result = f"Recalculated mileage: {trip.calculated_mileage:.2f} -> {expected:.2f} km/L"
            trip.calculated_mileage = expected
            issue.auto_fixed = True
        return issue
