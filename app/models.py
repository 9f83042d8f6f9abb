import uuid

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
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique ID for services and appointments"""
    return str(uuid.uuid4())


class Barber(Base):
    __tablename__ = "barbers"

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(String(32), unique=True, index=True, nullable=False)  # BB_XXXXXYYY
    firebase_uid = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=False)
    shop_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    subscription_status = Column(
        String(20), default="trial", nullable=False
    )  # trial, active, cancelled, expired, pending
    subscription_expires = Column(DateTime(timezone=True), nullable=False)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    paypal_customer_id = Column(String(255), nullable=True)
    paypal_subscription_id = Column(String(255), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Working hours
    start_time = Column(String(5), default="09:00", nullable=False)
    end_time = Column(String(5), default="18:00", nullable=False)
    break_start = Column(String(5), default="14:00", nullable=False)
    break_end = Column(String(5), default="15:00", nullable=False)
    has_break = Column(Boolean, default=False, nullable=False)
    # Legacy per-service prices, superseded by the services table
    price_haircut = Column(Float, default=15.00, nullable=False)
    price_beard = Column(Float, default=10.00, nullable=False)
    price_complete = Column(Float, default=20.00, nullable=False)
    price_shave = Column(Float, default=8.00, nullable=False)
    # Renewal reminder bookkeeping
    last_notification_sent = Column(DateTime(timezone=True), nullable=True)
    last_notification_type = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    services = relationship("Service", back_populates="barber")
    appointments = relationship("Appointment", back_populates="barber")


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    barber_id = Column(
        String(32), ForeignKey("barbers.barber_id"), index=True, nullable=False
    )
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    duration = Column(Integer, default=30, nullable=False)  # minutes
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    barber = relationship("Barber", back_populates="services")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_barber_slot", "barber_id", "date", "time"),)

    id = Column(String(36), primary_key=True, default=generate_public_id)
    barber_id = Column(
        String(32), ForeignKey("barbers.barber_id"), index=True, nullable=False
    )
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(50), index=True, nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    time = Column(String(5), nullable=False)  # HH:MM
    service = Column(String(255), nullable=False)
    service_id = Column(String(36), nullable=True)
    price = Column(Float, nullable=False)
    status = Column(String(20), default="confirmed", nullable=False)  # confirmed, cancelled
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    barber = relationship("Barber", back_populates="appointments")


class ProcessedPayment(Base):
    """Ledger of applied PayPal orders, the order id is the idempotency key"""

    __tablename__ = "processed_payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(255), unique=True, index=True, nullable=False)
    barber_id = Column(
        String(32), ForeignKey("barbers.barber_id"), index=True, nullable=False
    )
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    payer_email = Column(String(255), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=False)
