from pydantic import Field
from typing import Optional, List, Any, Dict
from datetime import datetime

from app.domain.bookings.models import BookingStatus, PaymentMethod, PaymentStatus
from app.schemas.response import CamelModel


# ----- requests -----

class SelectedTestIn(CamelModel):
    test_id: str
    # Display fields sent by clients are ignored; names and prices come from the catalog
    test_name: Optional[str] = None
    price: Optional[float] = None


class SelectedPackageIn(CamelModel):
    package_id: str
    package_name: Optional[str] = None
    price: Optional[float] = None


class UserLocation(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class BookingCreate(CamelModel):
    lab_id: str
    selected_tests: List[SelectedTestIn] = Field(default_factory=list)
    selected_packages: List[SelectedPackageIn] = Field(default_factory=list)
    appointment_date: datetime
    appointment_time: str = Field(..., min_length=1, max_length=32)
    payment_method: PaymentMethod
    notes: Optional[str] = Field("", max_length=1000)
    user_location: Optional[UserLocation] = None


class BookingUpdate(CamelModel):
    """Owner update: cancel, reschedule or edit notes"""
    status: Optional[BookingStatus] = None
    appointment_date: Optional[datetime] = None
    appointment_time: Optional[str] = Field(None, min_length=1, max_length=32)
    notes: Optional[str] = Field(None, max_length=1000)


class StatusUpdate(CamelModel):
    status: BookingStatus


class PaymentConfirm(CamelModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class ResultValueIn(CamelModel):
    label: Optional[str] = ""
    value: Any = None
    unit: Optional[str] = ""
    reference_range: Optional[str] = ""
    type: Optional[str] = "text"
    required: Any = False


class TestResultIn(CamelModel):
    test_id: str
    values: List[ResultValueIn]


class TestResultsSubmit(CamelModel):
    test_results: List[TestResultIn]


# ----- responses -----

class SelectedTestOut(CamelModel):
    test_id: str
    test_name: str
    price: float


class SelectedPackageOut(CamelModel):
    package_id: str
    package_name: str
    price: float


class ResultValueOut(CamelModel):
    label: str
    value: Any = None
    unit: str = ""
    reference_range: str = ""
    type: str = "text"
    required: bool = False


class TestResultOut(CamelModel):
    test_id: str
    values: List[ResultValueOut]
    submitted_by: Optional[str] = None
    submitted_at: Optional[str] = None


class BookingResponse(CamelModel):
    id: str
    user_id: str
    lab_id: str
    selected_tests: List[SelectedTestOut]
    selected_packages: List[SelectedPackageOut]
    appointment_date: datetime
    appointment_time: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    total_amount: float
    paid_amount: float
    payment_date: Optional[datetime] = None
    report_file: Optional[str] = None
    report_upload_date: Optional[datetime] = None
    test_results: List[TestResultOut]
    status: BookingStatus
    notes: Optional[str] = None
    user_location: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentOrderResponse(CamelModel):
    order_id: str
    amount: int
    currency: str
    key_id: Optional[str] = None
    booking_id: str
