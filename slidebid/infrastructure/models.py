"""
SQLAlchemy ORM models.

Tables
------
* ``customers``  -- people booking a slide (read-only for the core)
* ``drivers``    -- slide operators with approval status and location
* ``requests``   -- transport bookings and their lifecycle status
* ``offers``     -- driver price offers against a request
* ``payments``   -- minimal ledger rows created on acceptance
* ``receipts``   -- one immutable snapshot per completed request

Indexes
-------
* **Unique** ``(request_id, driver_id)`` on offers: a driver re-offers by
  reopening their row, never by inserting a second one.
* **Partial unique** on ``offers.request_id WHERE status = 'accepted'``:
  at most one accepted offer per request, enforced by the database.
* **Unique** ``receipts.request_id``: completion retries cannot create a
  second receipt.
* **B-Tree** on ``status``, ``customer_id``, ``driver_id`` and
  ``pickup_h3`` for the listing queries.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from .database import Base
from slidebid.domain.enums import (
    ApprovalStatus,
    OfferStatus,
    PaymentStatus,
    RequestStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_enum(enum_cls, name: str) -> Enum:
    """Persist enum *values* (``'pending'``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    license_plate = Column(String(32), nullable=True)
    vehicle_type = Column(Integer, nullable=False, default=1)
    approval_status = Column(
        _status_enum(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )
    current_lat = Column(Float, nullable=True)
    current_lon = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_drivers_approval", "approval_status"),)


class RequestModel(Base):
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)

    pickup_lat = Column(Float, nullable=False)
    pickup_lon = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=True)
    pickup_h3 = Column(String(20), nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lon = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=True)

    vehicle_type = Column(Integer, nullable=False)
    status = Column(
        _status_enum(RequestStatus, "request_status"),
        default=RequestStatus.PENDING,
        nullable=False,
    )
    # No FK: offers already reference requests, and the cycle would need
    # ALTER TABLE support on every backend.
    accepted_offer_id = Column(Integer, nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    booking_time = Column(DateTime(timezone=True), nullable=True)
    customer_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_requests_status", "status"),
        Index("idx_requests_customer", "customer_id"),
        Index("idx_requests_vehicle_status", "vehicle_type", "status"),
        Index("idx_requests_pickup_h3", "pickup_h3"),
    )


class OfferModel(Base):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("requests.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    offered_price = Column(Float, nullable=False)
    status = Column(
        _status_enum(OfferStatus, "offer_status"),
        default=OfferStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("request_id", "driver_id", name="uq_offers_request_driver"),
        CheckConstraint("offered_price > 0", name="ck_offers_price_positive"),
        Index(
            "uq_offers_one_accepted",
            "request_id",
            unique=True,
            postgresql_where=text("status = 'accepted'"),
            sqlite_where=text("status = 'accepted'"),
        ),
        Index("idx_offers_driver_status", "driver_id", "status"),
        Index("idx_offers_request_status", "request_id", "status"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(
        _status_enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_method_ref = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("requests.id"), unique=True, nullable=False)
    customer_id = Column(Integer, nullable=False)
    driver_id = Column(Integer, nullable=False)
    offer_id = Column(Integer, nullable=False)
    payment_id = Column(Integer, nullable=False)

    pickup_address = Column(String(255), nullable=True)
    dropoff_address = Column(String(255), nullable=True)
    pickup_lat = Column(Float, nullable=False)
    pickup_lon = Column(Float, nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lon = Column(Float, nullable=False)
    vehicle_type = Column(Integer, nullable=False)

    service_price = Column(Float, nullable=False)
    payment_method_ref = Column(String(64), nullable=False)
    payment_status = Column(String(16), nullable=False)
    distance_km = Column(Float, nullable=False)
    travel_time_minutes = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
