"""
Ledger audit log.

Advisory events raised by the trip ledger that do not block a write but must
stay visible to operators:
- Continuity warnings (large odometer gaps, conflicts with a later trip)
- Guarded deletions (soft deletes that protect a mileage chain)
- Recoveries of soft-deleted trips
- Mileage recalculations
"""

from sqlalchemy import Column, DateTime, Index, JSON, String, Text

from trip_ledger.models.base import Base, utcnow


class LedgerAuditLog(Base):
    __tablename__ = "ledger_audit_log"

    id = Column(String, primary_key=True)

    # When
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Who
    user_id = Column(String, nullable=True, index=True)

    # What
    event_type = Column(String, nullable=False, index=True)
    # Event types:
    # - trip.continuity_warning
    # - trip.deleted, trip.soft_deleted, trip.recovered
    # - trip.mileage_recalculated
    # - chain.repaired

    action = Column(String, nullable=False)  # Human-readable action
    resource_type = Column(String, nullable=True)  # trip, vehicle
    resource_id = Column(String, nullable=True)
    vehicle_id = Column(String, nullable=True, index=True)

    # Status
    status = Column(String, nullable=False, default="success")  # success, warning, blocked

    # Additional context
    extra_data = Column("metadata", JSON, nullable=True)  # Named 'metadata' in DB, 'extra_data' in Python
    message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_ledger_audit_vehicle_timestamp", "vehicle_id", "timestamp"),
        Index("idx_ledger_audit_event_timestamp", "event_type", "timestamp"),
    )
