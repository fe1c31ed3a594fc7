# Bookings domain module
from app.domain.bookings.models import (
    Booking,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    ResultValueType,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "PaymentMethod",
    "PaymentStatus",
    "ResultValueType",
]
