from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from trip_ledger.models.base import Base, utcnow


class Trip(Base):
    """One ledger entry: a vehicle's odometer readings over a single trip."""

    __tablename__ = "trips"
    __table_args__ = (
        UniqueConstraint("organization_id", "serial_number", name="uq_trips_organization_serial"),
        Index("ix_trips_vehicle_owner_start", "vehicle_id", "created_by", "trip_start_time"),
        Index("ix_trips_vehicle_owner_end", "vehicle_id", "created_by", "trip_end_time"),
    )

    id = Column(String, primary_key=True)
    vehicle_id = Column(String, nullable=False, index=True)
    organization_id = Column(String, nullable=False, index=True)  # Owner id when no organization is known
    serial_number = Column(String, nullable=False)  # Immutable once assigned

    start_odometer = Column(Integer, nullable=False)  # km
    end_odometer = Column(Integer, nullable=False)  # km
    trip_start_time = Column(DateTime, nullable=False)
    trip_end_time = Column(DateTime, nullable=False)

    refueling_done = Column(Boolean, nullable=False, default=False)
    fuel_quantity = Column(Float, nullable=True)  # litres
    calculated_mileage = Column(Float, nullable=True)  # km/L, derived

    # Soft delete
    deleted_at = Column(DateTime, nullable=True, index=True)
    deletion_reason = Column(Text, nullable=True)
    deleted_by = Column(String, nullable=True)

    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    corrections = relationship(
        "TripCorrection",
        back_populates="trip",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TripCorrection.corrected_at",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def distance(self) -> int:
        return self.end_odometer - self.start_odometer


class TripCorrection(Base):
    """Immutable audit row written for every trip touched by a correction."""

    __tablename__ = "trip_corrections"

    id = Column(String, primary_key=True)
    trip_id = Column(String, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    field_name = Column(String, nullable=False)  # end_km, odometer_cascade
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    affects_subsequent_trips = Column(Boolean, nullable=False, default=False)
    corrected_by = Column(String, nullable=False)
    corrected_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    trip = relationship("Trip", back_populates="corrections")
