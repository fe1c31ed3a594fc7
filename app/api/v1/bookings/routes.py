from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from typing import List, Optional

from app.api.deps import get_booking_service, get_current_caller, get_payment_service
from app.core.config import settings
from app.core.permissions import Caller
from app.domain.bookings.models import BookingStatus
from app.domain.bookings.payments import PaymentService
from app.domain.bookings.service import BookingService
from app.api.v1.bookings.schemas import (
    BookingCreate,
    BookingUpdate,
    BookingResponse,
    StatusUpdate,
    PaymentConfirm,
    PaymentOrderResponse,
    TestResultsSubmit,
)
from app.schemas.response import ApiResponse, Pagination

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _page(bookings, page: int, limit: int, total: int, message: Optional[str] = None):
    return ApiResponse(
        message=message,
        data=[BookingResponse.model_validate(booking) for booking in bookings],
        pagination=Pagination.build(page, limit, total),
    )


# ----- admin -----

@router.get("/admin/all", response_model=ApiResponse[List[BookingResponse]])
async def admin_list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    lab_id: Optional[str] = Query(None, alias="labId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    """All bookings across labs, including deleted ones"""
    bookings, total = await service.admin_list_bookings(
        caller, status=status_filter, lab_id=lab_id, skip=(page - 1) * limit, limit=limit
    )
    return _page(bookings, page, limit, total)


@router.put("/admin/{booking_id}/status", response_model=ApiResponse[BookingResponse])
async def admin_override_status(
    booking_id: str,
    data: StatusUpdate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.admin_override_status(caller, booking_id, data.status)
    return ApiResponse(message="Booking status updated successfully", data=BookingResponse.model_validate(booking))


@router.delete("/admin/{booking_id}", response_model=ApiResponse[BookingResponse])
async def admin_delete_booking(
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.admin_delete_booking(caller, booking_id)
    return ApiResponse(message="Booking deleted successfully", data=BookingResponse.model_validate(booking))


# ----- lab -----

@router.get("/lab/{lab_id}", response_model=ApiResponse[List[BookingResponse]])
async def list_lab_bookings(
    lab_id: str,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    """Bookings of one lab, most recent appointment first"""
    bookings, total = await service.list_lab_bookings(
        caller, lab_id, status=status_filter, skip=(page - 1) * limit, limit=limit
    )
    return _page(bookings, page, limit, total)


@router.put("/{booking_id}/status", response_model=ApiResponse[BookingResponse])
async def update_booking_status(
    booking_id: str,
    data: StatusUpdate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.update_status(caller, booking_id, data.status)
    return ApiResponse(message="Booking status updated successfully", data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/upload-report", response_model=ApiResponse[BookingResponse])
async def upload_report(
    booking_id: str,
    report_file: Optional[UploadFile] = File(None, alias="reportFile"),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    """Upload a PDF, JPEG or PNG report and publish the results"""
    filename = content_type = content = None
    if report_file is not None:
        filename = report_file.filename
        content_type = report_file.content_type
        # one byte over the limit is enough to reject
        content = await report_file.read(settings.MAX_REPORT_SIZE_BYTES + 1)

    booking = await service.upload_report(caller, booking_id, filename, content_type, content)
    return ApiResponse(message="Report uploaded successfully", data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/results", response_model=ApiResponse[BookingResponse])
async def submit_results(
    booking_id: str,
    data: TestResultsSubmit,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.submit_results(caller, booking_id, data)
    return ApiResponse(message="Results saved successfully", data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/lab-payment", response_model=ApiResponse[BookingResponse])
async def process_lab_payment(
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Record a pay-later payment collected at the lab"""
    booking = await payment_service.process_lab_payment(caller, booking_id)
    return ApiResponse(message="Payment processed successfully", data=BookingResponse.model_validate(booking))


# ----- owner -----

@router.post("", response_model=ApiResponse[BookingResponse], status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.create_booking(caller, data)
    return ApiResponse(message="Booking created successfully", data=BookingResponse.model_validate(booking))


@router.get("", response_model=ApiResponse[List[BookingResponse]])
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    """Caller's own active bookings, newest first"""
    bookings, total = await service.list_user_bookings(
        caller, status=status_filter, skip=(page - 1) * limit, limit=limit
    )
    return _page(bookings, page, limit, total)


@router.get("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def get_booking(
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_user_booking(caller, booking_id)
    return ApiResponse(data=BookingResponse.model_validate(booking))


@router.put("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    """Cancel, reschedule or edit notes on an own booking"""
    booking = await service.update_user_booking(caller, booking_id, data)
    return ApiResponse(message="Booking updated successfully", data=BookingResponse.model_validate(booking))


@router.delete("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def cancel_booking(
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.cancel_booking(caller, booking_id)
    return ApiResponse(message="Booking cancelled successfully", data=BookingResponse.model_validate(booking))


@router.post("/{booking_id}/create-order", response_model=ApiResponse[PaymentOrderResponse])
async def create_payment_order(
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Create a gateway order for a pay-now booking"""
    order = await payment_service.create_order(caller, booking_id)
    return ApiResponse(message="Payment order created", data=PaymentOrderResponse(**order))


@router.post("/{booking_id}/payment", response_model=ApiResponse[BookingResponse])
async def confirm_payment(
    booking_id: str,
    data: PaymentConfirm,
    caller: Caller = Depends(get_current_caller),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Verify the gateway signature and mark the booking paid"""
    booking = await payment_service.confirm_payment(
        caller,
        booking_id,
        order_id=data.razorpay_order_id,
        payment_id=data.razorpay_payment_id,
        signature=data.razorpay_signature,
    )
    return ApiResponse(message="Payment processed successfully", data=BookingResponse.model_validate(booking))
