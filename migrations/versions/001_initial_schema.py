"""Initial schema: customers, drivers, payments, requests, offers, receipts.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── customers ─────────────────────────────────────────────────────
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("license_plate", sa.String(32), nullable=True),
        sa.Column("vehicle_type", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "approval_status",
            sa.Enum("pending", "approved", "rejected", name="approval_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lon", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_drivers_approval", "drivers", ["approval_status"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum("Pending", "Completed", "Failed", name="payment_status"),
            nullable=False,
            server_default="Pending",
        ),
        sa.Column("payment_method_ref", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── requests ──────────────────────────────────────────────────────
    op.create_table(
        "requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lon", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("pickup_h3", sa.String(20), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lon", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("vehicle_type", sa.Integer, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "accepted",
                "completed",
                "cancelled",
                name="request_status",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("accepted_offer_id", sa.Integer, nullable=True),
        sa.Column(
            "payment_id", sa.Integer, sa.ForeignKey("payments.id"), nullable=True
        ),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_message", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_requests_status", "requests", ["status"])
    op.create_index("idx_requests_customer", "requests", ["customer_id"])
    op.create_index(
        "idx_requests_vehicle_status", "requests", ["vehicle_type", "status"]
    )
    op.create_index("idx_requests_pickup_h3", "requests", ["pickup_h3"])

    # ── offers ────────────────────────────────────────────────────────
    op.create_table(
        "offers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "request_id", sa.Integer, sa.ForeignKey("requests.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False
        ),
        sa.Column("offered_price", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "accepted", "rejected", name="offer_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "request_id", "driver_id", name="uq_offers_request_driver"
        ),
        sa.CheckConstraint("offered_price > 0", name="ck_offers_price_positive"),
    )
    # At most one accepted offer per request.
    op.create_index(
        "uq_offers_one_accepted",
        "offers",
        ["request_id"],
        unique=True,
        postgresql_where=sa.text("status = 'accepted'"),
    )
    op.create_index("idx_offers_driver_status", "offers", ["driver_id", "status"])
    op.create_index("idx_offers_request_status", "offers", ["request_id", "status"])

    # ── receipts ──────────────────────────────────────────────────────
    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "request_id",
            sa.Integer,
            sa.ForeignKey("requests.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("customer_id", sa.Integer, nullable=False),
        sa.Column("driver_id", sa.Integer, nullable=False),
        sa.Column("offer_id", sa.Integer, nullable=False),
        sa.Column("payment_id", sa.Integer, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lon", sa.Float, nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lon", sa.Float, nullable=False),
        sa.Column("vehicle_type", sa.Integer, nullable=False),
        sa.Column("service_price", sa.Float, nullable=False),
        sa.Column("payment_method_ref", sa.String(64), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("travel_time_minutes", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("receipts")
    op.drop_table("offers")
    op.drop_table("requests")
    op.drop_table("payments")
    op.drop_table("drivers")
    op.drop_table("customers")
    op.execute("DROP TYPE IF EXISTS offer_status")
    op.execute("DROP TYPE IF EXISTS request_status")
    op.execute("DROP TYPE IF EXISTS payment_status")
    op.execute("DROP TYPE IF EXISTS approval_status")
