"""Create trip ledger tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 09:00:00

"""

from alembic import op
import sqlalchemy as sa


revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "trips",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("vehicle_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("serial_number", sa.String(), nullable=False),
        sa.Column("start_odometer", sa.Integer(), nullable=False),
        sa.Column("end_odometer", sa.Integer(), nullable=False),
        sa.Column("trip_start_time", sa.DateTime(), nullable=False),
        sa.Column("trip_end_time", sa.DateTime(), nullable=False),
        sa.Column("refueling_done", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fuel_quantity", sa.Float(), nullable=True),
        sa.Column("calculated_mileage", sa.Float(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deletion_reason", sa.Text(), nullable=True),
        sa.Column("deleted_by", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_trips"),
        sa.UniqueConstraint("organization_id", "serial_number", name="uq_trips_organization_serial"),
    )
    op.create_index("ix_trips_vehicle_id", "trips", ["vehicle_id"])
    op.create_index("ix_trips_organization_id", "trips", ["organization_id"])
    op.create_index("ix_trips_created_by", "trips", ["created_by"])
    op.create_index("ix_trips_deleted_at", "trips", ["deleted_at"])
    op.create_index("ix_trips_vehicle_owner_start", "trips", ["vehicle_id", "created_by", "trip_start_time"])
    op.create_index("ix_trips_vehicle_owner_end", "trips", ["vehicle_id", "created_by", "trip_end_time"])

    op.create_table(
        "trip_corrections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column(
            "trip_id",
            sa.String(),
            sa.ForeignKey("trips.id", ondelete="CASCADE", name="fk_trip_corrections_trip_id_trips"),
            nullable=False,
        ),
        sa.Column("field_name", sa.String(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("affects_subsequent_trips", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("corrected_by", sa.String(), nullable=False),
        sa.Column("corrected_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_trip_corrections"),
    )
    op.create_index("ix_trip_corrections_trip_id", "trip_corrections", ["trip_id"])
    op.create_index("ix_trip_corrections_corrected_at", "trip_corrections", ["corrected_at"])

    op.create_table(
        "ledger_audit_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=True),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("vehicle_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="success"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_audit_log"),
    )
    op.create_index("ix_ledger_audit_log_timestamp", "ledger_audit_log", ["timestamp"])
    op.create_index("ix_ledger_audit_log_user_id", "ledger_audit_log", ["user_id"])
    op.create_index("ix_ledger_audit_log_event_type", "ledger_audit_log", ["event_type"])
    op.create_index("ix_ledger_audit_log_vehicle_id", "ledger_audit_log", ["vehicle_id"])
    op.create_index("idx_ledger_audit_vehicle_timestamp", "ledger_audit_log", ["vehicle_id", "timestamp"])
    op.create_index("idx_ledger_audit_event_timestamp", "ledger_audit_log", ["event_type", "timestamp"])


def downgrade() -> None:
    op.drop_table("ledger_audit_log")
    op.drop_table("trip_corrections")
    op.drop_table("trips")
