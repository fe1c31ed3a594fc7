"""
Booking Domain Models

A booking captures a patient's visit to one lab: the tests and packages
picked (with name and price snapshots), the appointment, the payment and
the clinical results the lab attaches afterwards.
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Float, ForeignKey, JSON, Text, Enum, Index
)
from sqlalchemy.sql import func
from app.infrastructure.database import Base
import uuid
import enum


def gen_uuid():
    return str(uuid.uuid4())


class BookingStatus(str, enum.Enum):
    """Booking lifecycle status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    SAMPLE_COLLECTED = "sample_collected"
    REPORT_UPLOADED = "report_uploaded"
    RESULT_PUBLISHED = "result_published"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    PAY_NOW = "pay_now"
    PAY_LATER = "pay_later"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ResultValueType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"


class Booking(Base):
    """Lab booking aggregate"""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    lab_id = Column(String(36), ForeignKey("labs.id"), nullable=False)

    # Snapshots taken at creation: [{test_id, test_name, price}] / [{package_id, package_name, price}]
    selected_tests = Column(JSON, nullable=False, default=list)
    selected_packages = Column(JSON, nullable=False, default=list)

    appointment_date = Column(DateTime, nullable=False)
    appointment_time = Column(String(32), nullable=False)

    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    # Gateway correlation
    gateway_order_id = Column(String(100))
    gateway_payment_id = Column(String(100))
    gateway_signature = Column(String(255))

    total_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, default=0.0, nullable=False)
    payment_date = Column(DateTime)

    report_file = Column(String(500))
    report_upload_date = Column(DateTime)

    # [{test_id, values: [...], submitted_by, submitted_at}]
    test_results = Column(JSON, nullable=False, default=list)

    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING)

    notes = Column(Text, default="")
    # {latitude, longitude, address}
    user_location = Column(JSON)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_bookings_user_created", "user_id", "created_at"),
        Index("ix_bookings_lab_appointment", "lab_id", "appointment_date"),
        Index("ix_bookings_status_appointment", "status", "appointment_date"),
    )
