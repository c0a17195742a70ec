"""SQLAlchemy models for the trip ledger."""

from trip_ledger.models.audit_log import LedgerAuditLog  # noqa: F401
from trip_ledger.models.trip import Trip, TripCorrection  # noqa: F401
