"""
Trip serial numbers.

A serial is rendered from a template such as ``TRP-{YEAR}-{NUMBER:05}``.
Tokens:

    {YEAR}  {MONTH}  {DAY}   date the trip is logged (UTC)
    {NUMBER[:width]}         sequence within the organisation, zero-padded
    {VEHICLE_PREFIX[:len]}   leading alphanumerics of the vehicle id, default 3

Unknown tokens are left in place.
"""

import re
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trip_ledger.models.base import utcnow
from trip_ledger.models.trip import Trip

TOKEN = re.compile(r"\{([A-Z_]+)(?::(\d+))?\}")

DEFAULT_VEHICLE_PREFIX = "VEH"


def vehicle_prefix(vehicle_id: Optional[str], length: int = 3) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9]", "", vehicle_id or "")
    return cleaned[:length].upper() or DEFAULT_VEHICLE_PREFIX


class NumberGenerator:
    @staticmethod
    def generate(
        format_template: str,
        sequence_number: int,
        vehicle_id: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> str:
        """Render ``format_template`` for the ``sequence_number``-th trip."""
        date = date or utcnow()

        def render(match: "re.Match[str]") -> str:
            name, width = match.group(1), match.group(2)
            if name == "YEAR":
                return str(date.year)
            if name == "MONTH":
                return f"{date.month:02d}"
            if name == "DAY":
                return f"{date.day:02d}"
            if name == "NUMBER":
                return str(sequence_number).zfill(int(width or 0))
            if name == "VEHICLE_PREFIX":
                return vehicle_prefix(vehicle_id, int(width) if width else 3)
            return match.group(0)

        return TOKEN.sub(render, format_template)


async def next_trip_serial(
    db: AsyncSession,
    organization_id: str,
    format_template: str,
    vehicle_id: Optional[str] = None,
) -> str:
    """Next unused serial within ``organization_id``.

    Starts from the organisation's trip count and skips forward past serials
    that are still taken, which happens once trips have been hard-deleted.
    """
    count_result = await db.execute(
        select(func.count(Trip.id)).where(Trip.organization_id == organization_id)
    )
    sequence = int(count_result.scalar() or 0) + 1

    while True:
        serial = NumberGenerator.generate(format_template, sequence, vehicle_id=vehicle_id)
        taken = await db.execute(
            select(Trip.id).where(
                Trip.organization_id == organization_id,
                Trip.serial_number == serial,
            )
        )
        if taken.first() is None:
            return serial
        sequence += 1
