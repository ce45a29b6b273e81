"""Initial schema: users, vehicles, recurring series, rides, events, strike counters.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _status(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


RIDE_STATUSES = (
    "pending",
    "approved",
    "denied",
    "scheduled",
    "driver_on_the_way",
    "driver_arrived",
    "completed",
    "no_show",
    "cancelled",
)

RIDE_EVENT_TYPES = (
    "requested",
    "approved",
    "denied",
    "claimed",
    "unassigned",
    "reassigned",
    "driver_on_the_way",
    "driver_arrived",
    "completed",
    "no_show",
    "cancelled",
    "cancelled_by_office",
)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column(
            "role",
            _status("userrole", "rider", "driver", "office"),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(80), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="4"),
        sa.Column(
            "wheelchair_accessible",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "status",
            _status("vehiclestatus", "available", "in_use", "maintenance", "retired"),
            nullable=False,
            server_default="available",
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_vehicles_status", "vehicles", ["status"])

    # ── recurring_rides ───────────────────────────────────────────────
    op.create_table(
        "recurring_rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("rider_name", sa.String(120), nullable=False),
        sa.Column("rider_email", sa.String(255), nullable=False),
        sa.Column("rider_phone", sa.String(40), nullable=True),
        sa.Column("pickup_location", sa.String(120), nullable=False),
        sa.Column("dropoff_location", sa.String(120), nullable=False),
        sa.Column("time_of_day", sa.Time, nullable=False),
        sa.Column("days_of_week", sa.JSON, nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column(
            "status",
            _status("seriesstatus", "active", "paused", "cancelled"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_recurring_rider_email", "recurring_rides", ["rider_email"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("rider_name", sa.String(120), nullable=False),
        sa.Column("rider_email", sa.String(255), nullable=False),
        sa.Column("rider_phone", sa.String(40), nullable=True),
        sa.Column("pickup_location", sa.String(120), nullable=False),
        sa.Column("dropoff_location", sa.String(120), nullable=False),
        sa.Column("requested_time", sa.DateTime, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column(
            "status",
            _status("ridestatus", *RIDE_STATUSES),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "assigned_driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=True),
        sa.Column("grace_start_time", sa.DateTime, nullable=True),
        sa.Column(
            "consecutive_misses", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column(
            "cancelled_by", _status("cancelledby", "rider", "office"), nullable=True
        ),
        sa.Column(
            "recurring_id",
            sa.Integer,
            sa.ForeignKey("recurring_rides.id"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider_email", "rides", ["rider_email"])
    op.create_index("idx_rides_driver", "rides", ["assigned_driver_id"])
    op.create_index("idx_rides_recurring", "rides", ["recurring_id"])
    op.create_index("idx_rides_requested_time", "rides", ["requested_time"])

    # ── ride_events ───────────────────────────────────────────────────
    op.create_table(
        "ride_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id",
            sa.Integer,
            sa.ForeignKey("rides.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "event_type", _status("rideeventtype", *RIDE_EVENT_TYPES), nullable=False
        ),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_ride_events_ride", "ride_events", ["ride_id"])

    # ── rider_miss_counts ─────────────────────────────────────────────
    op.create_table(
        "rider_miss_counts",
        sa.Column("email", sa.String(255), primary_key=True),
        sa.Column(
            "consecutive_misses", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("rider_miss_counts")
    op.drop_table("ride_events")
    op.drop_table("rides")
    op.drop_table("recurring_rides")
    op.drop_table("vehicles")
    op.drop_table("users")
