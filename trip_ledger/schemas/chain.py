from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel


class ChainIssueResponse(BaseModel):
    issue_type: Literal[
        "negative_distance",
        "odometer_regression",
        "large_odometer_gap",
        "missing_mileage_calculation",
        "mileage_mismatch",
        "unrealistic_mileage",
        "no_issues",
    ]
    severity: Literal["critical", "high", "medium", "low", "info"]
    trip_id: Optional[str] = None
    trip_serial: Optional[str] = None
    description: str
    suggested_fix: Optional[str] = None
    auto_fixed: bool = False
    fix_result: Optional[str] = None

    model_config = {"from_attributes": True}


class ChainIntegrityReport(BaseModel):
    vehicle_id: str
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    trips_checked: int
    issues: List[ChainIssueResponse]
