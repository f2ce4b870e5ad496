"""Initial schema: trip catalog, seat inventory, bookings and payments.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Catalog tables (owned by the catalog service, read-only here)
    op.create_table(
        "buses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("license_plate", sa.String(20), nullable=False, unique=True),
        sa.Column("bus_type", sa.String(100), nullable=True),
        sa.Column("seat_count", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_buses_id", "buses", ["id"])
    op.create_index("ix_buses_created_at", "buses", ["created_at"])

    op.create_table(
        "routes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("from_city", sa.String(255), nullable=True),
        sa.Column("to_city", sa.String(255), nullable=True),
        sa.Column("total_distance_km", sa.Float(), nullable=True),
        sa.Column("estimated_duration_min", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_routes_id", "routes", ["id"])
    op.create_index("ix_routes_created_at", "routes", ["created_at"])

    op.create_table(
        "route_stops",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("route_id", sa.Integer(), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("stop_name", sa.String(255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default=sa.text("'both'")),
        sa.Column("km_from_start", sa.Float(), nullable=True),
        sa.CheckConstraint("type IN ('pickup', 'dropoff', 'both')", name="check_route_stop_type"),
    )
    op.create_index("ix_route_stops_id", "route_stops", ["id"])
    op.create_index("ix_route_stops_route_id", "route_stops", ["route_id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("route_id", sa.Integer(), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("bus_id", sa.Integer(), sa.ForeignKey("buses.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("base_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'scheduled'")),
        *_timestamps(),
        sa.CheckConstraint("base_price >= 0", name="check_trip_base_price_non_negative"),
    )
    op.create_index("ix_trips_id", "trips", ["id"])
    op.create_index("ix_trips_created_at", "trips", ["created_at"])
    op.create_index("ix_trips_start_time", "trips", ["start_time"])

    # Seat inventory
    op.create_table(
        "trip_seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("seat_label", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("holder_booking_id", sa.String(36), nullable=True),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # UNIQUE (trip_id, seat_label): seeding is INSERT ... ON CONFLICT DO NOTHING
        # against this constraint, so concurrent seeders never duplicate a seat.
        sa.UniqueConstraint("trip_id", "seat_label", name="uq_trip_seat_label"),
        sa.CheckConstraint(
            "status IN ('available', 'held', 'sold', 'checked_in')",
            name="check_seat_status",
        ),
        sa.CheckConstraint(
            "status = 'available' OR holder_booking_id IS NOT NULL",
            name="check_seat_holder_present",
        ),
    )
    op.create_index("ix_trip_seats_id", "trip_seats", ["id"])
    op.create_index("ix_trip_seats_created_at", "trip_seats", ["created_at"])
    op.create_index("ix_trip_seats_holder", "trip_seats", ["holder_booking_id"])
    # Expired-hold sweep: WHERE status = 'held' AND hold_expires_at < now
    op.create_index("ix_trip_seats_status_expiry", "trip_seats", ["status", "hold_expires_at"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("seat_labels", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("passenger_name", sa.String(255), nullable=False),
        sa.Column("passenger_phone", sa.String(32), nullable=False),
        sa.Column("passenger_email", sa.String(255), nullable=True),
        sa.Column("passenger_note", sa.String(1000), nullable=True),
        sa.Column("price_per_seat", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.String(36), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("route_from", sa.String(255), nullable=True),
        sa.Column("route_to", sa.String(255), nullable=True),
        sa.Column("route_duration_min", sa.Integer(), nullable=True),
        sa.Column("bus_type", sa.String(100), nullable=True),
        sa.Column("bus_seat_count", sa.Integer(), nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_passenger_phone", "bookings", ["passenger_phone"])
    op.create_index("ix_bookings_created_at", "bookings", ["created_at"])
    # Reaper: pending bookings older than the cutoff
    op.create_index("ix_bookings_status_created", "bookings", ["status", "created_at"])

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("transaction_code", sa.String(64), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("method IN ('banking', 'momo', 'cod')", name="check_payment_method"),
        sa.CheckConstraint("status IN ('success', 'pending', 'failed')", name="check_payment_status"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_created_at", "payments", ["created_at"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("trip_seats")
    op.drop_table("trips")
    op.drop_table("route_stops")
    op.drop_table("routes")
    op.drop_table("buses")
