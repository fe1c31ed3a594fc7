"""
Bookings Service Layer

Booking creation, owner updates and cancellation, lab-side status changes,
report uploads, result entry and the admin overrides.

Every status write follows the same pattern: fresh read, authorization,
state machine check, then a conditional update that only succeeds if the
status read at the start is still the stored one.
"""

from typing import Optional, List, Dict, Any, Tuple
from datetime import timedelta
import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow, to_naive_utc
from app.core.config import settings
from app.core.exceptions import ValidationError, NotFoundError, ConflictError
from app.core.permissions import AuthorizationEngine, Caller, Operation, ResourceScope
from app.domain.bookings.models import Booking, BookingStatus, ResultValueType
from app.domain.bookings.repository import BookingRepository
from app.domain.bookings.state_machine import BookingAction, next_status
from app.domain.catalog.repository import CatalogRepository
from app.domain.identity.repository import UserRepository
from app.api.v1.bookings.schemas import (
    BookingCreate, BookingUpdate, TestResultsSubmit
)
from app.infrastructure.file_store import FileStore, StoredFile
from app.infrastructure.notifications import EmailDispatcher

logger = logging.getLogger(__name__)

ALLOWED_REPORT_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
}

CONCURRENT_UPDATE_MESSAGE = "Booking was modified by another request, please retry"


class BookingService:
    """Service layer for the booking lifecycle"""

    def __init__(
        self,
        db: AsyncSession,
        authz: AuthorizationEngine,
        notifier: EmailDispatcher,
        file_store: FileStore,
        clock: Clock = utcnow
    ):
        self.db = db
        self.booking_repo = BookingRepository(db)
        self.catalog_repo = CatalogRepository(db)
        self.user_repo = UserRepository(db)
        self.authz = authz
        self.notifier = notifier
        self.file_store = file_store
        self.clock = clock

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    async def create_booking(self, caller: Caller, data: BookingCreate) -> Booking:
        """Create a pending booking with server-side price snapshots"""
        if not data.selected_tests and not data.selected_packages:
            raise ValidationError(
                "At least one test or package must be selected",
                errors=["selectedTests or selectedPackages must not be empty"],
            )

        test_ids = [item.test_id for item in data.selected_tests]
        package_ids = [item.package_id for item in data.selected_packages]
        if len(set(test_ids)) != len(test_ids) or len(set(package_ids)) != len(package_ids):
            raise ValidationError("The same test or package cannot be selected twice")

        lab = await self.catalog_repo.find_lab(data.lab_id)
        if not lab or not lab.is_active:
            raise NotFoundError("Lab not found or inactive")

        await self.authz.ensure(caller, Operation.CREATE_BOOKING, ResourceScope.for_lab(lab.id))

        appointment_date = to_naive_utc(data.appointment_date)
        if appointment_date.date() < self.clock().date():
            raise ValidationError("Appointment date cannot be in the past")

        selected_tests = []
        for test_id in test_ids:
            test = await self.catalog_repo.find_test(test_id)
            if not test or not test.is_active:
                raise NotFoundError(f"Test {test_id} not found or inactive")
            if not lab.offers_test(test.id):
                raise ValidationError(f"Test '{test.name}' is not available at {lab.name}")
            selected_tests.append({"test_id": test.id, "test_name": test.name, "price": test.price})

        selected_packages = []
        for package_id in package_ids:
            package = await self.catalog_repo.find_package(package_id)
            if not package or not package.is_active:
                raise NotFoundError(f"Package {package_id} not found or inactive")
            if not lab.offers_package(package.id):
                raise ValidationError(f"Package '{package.name}' is not available at {lab.name}")
            selected_packages.append({
                "package_id": package.id, "package_name": package.name, "price": package.price
            })

        total_amount = round(
            sum(item["price"] for item in selected_tests)
            + sum(item["price"] for item in selected_packages),
            2,
        )

        booking = await self.booking_repo.create({
            "user_id": caller.id,
            "lab_id": lab.id,
            "selected_tests": selected_tests,
            "selected_packages": selected_packages,
            "appointment_date": appointment_date,
            "appointment_time": data.appointment_time,
            "payment_method": data.payment_method,
            "total_amount": total_amount,
            "notes": data.notes or "",
            "user_location": data.user_location.model_dump() if data.user_location else None,
        })
        logger.info(f"Booking {booking.id} created by {caller.id} at lab {lab.id} for {total_amount}")

        await self._notify_owner(booking, "booking_created", {
            "lab_name": lab.name,
            "appointment_date": booking.appointment_date.date().isoformat(),
            "appointment_time": booking.appointment_time,
            "total_amount": f"{booking.total_amount:.2f}",
            "payment_method": booking.payment_method.value,
        })
        return booking

    async def list_user_bookings(
        self,
        caller: Caller,
        status: Optional[BookingStatus] = None,
        skip: int = 0,
        limit: int = 10
    ) -> Tuple[List[Booking], int]:
        return await self.booking_repo.search(skip=skip, limit=limit, user_id=caller.id, status=status)

    async def get_user_booking(self, caller: Caller, booking_id: str) -> Booking:
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.VIEW_BOOKING, ResourceScope.for_booking(booking), hide_as_not_found=True
        )
        return booking

    async def update_user_booking(self, caller: Caller, booking_id: str, data: BookingUpdate) -> Booking:
        """Owner update: cancel, reschedule or edit notes"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.UPDATE_BOOKING, ResourceScope.for_booking(booking), hide_as_not_found=True
        )

        observed = booking.status
        values: Dict[str, Any] = {}

        if data.status is not None:
            if data.status != BookingStatus.CANCELLED:
                raise ConflictError("Invalid status update", error_code="INVALID_STATUS_UPDATE")
            values["status"] = next_status(BookingAction.CANCEL, observed)
            self._check_cancellation_window(booking)

        if data.appointment_date is not None or data.appointment_time is not None:
            if observed not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise ConflictError("Only pending or confirmed bookings can be rescheduled")
            if data.appointment_date is not None:
                appointment_date = to_naive_utc(data.appointment_date)
                if appointment_date <= self.clock():
                    raise ValidationError("Appointment date must be in the future")
                values["appointment_date"] = appointment_date
            if data.appointment_time is not None:
                values["appointment_time"] = data.appointment_time

        if data.notes is not None:
            values["notes"] = data.notes

        if not values:
            return booking

        updated = await self._guarded_update(booking, values)
        logger.info(f"Booking {booking.id} updated by owner {caller.id}: {sorted(values)}")

        if updated.status == BookingStatus.CANCELLED:
            await self._notify_cancelled(updated)
        return updated

    async def cancel_booking(self, caller: Caller, booking_id: str) -> Booking:
        """Owner cancellation, also removes the booking from active listings"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.CANCEL_BOOKING, ResourceScope.for_booking(booking), hide_as_not_found=True
        )

        target = next_status(BookingAction.CANCEL, booking.status)
        self._check_cancellation_window(booking)

        updated = await self._guarded_update(booking, {"status": target, "is_active": False})
        logger.info(f"Booking {booking.id} cancelled by owner {caller.id}")

        await self._notify_cancelled(updated)
        return updated

    # ------------------------------------------------------------------
    # Lab operations
    # ------------------------------------------------------------------

    async def list_lab_bookings(
        self,
        caller: Caller,
        lab_id: str,
        status: Optional[BookingStatus] = None,
        skip: int = 0,
        limit: int = 10
    ) -> Tuple[List[Booking], int]:
        await self.authz.ensure(caller, Operation.LIST_LAB_BOOKINGS, ResourceScope.for_lab(lab_id))
        return await self.booking_repo.search(
            skip=skip, limit=limit, lab_id=lab_id, status=status, order_by_appointment=True
        )

    async def update_status(self, caller: Caller, booking_id: str, status: BookingStatus) -> Booking:
        """Lab staff move a booking forward through the lifecycle"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.UPDATE_STATUS, ResourceScope.for_booking(booking), target_status=status
        )

        observed = booking.status
        target = next_status(BookingAction.STAFF_STATUS_UPDATE, observed, status)
        updated = await self._guarded_update(booking, {"status": target})
        logger.info(f"Booking {booking.id} moved {observed.value} -> {target.value} by {caller.id}")

        if target == BookingStatus.RESULT_PUBLISHED and observed != target:
            await self._notify_owner(updated, "results_published", {})
        return updated

    async def upload_report(
        self,
        caller: Caller,
        booking_id: str,
        filename: Optional[str],
        content_type: Optional[str],
        content: Optional[bytes]
    ) -> Booking:
        """Attach a report file and publish the booking's results"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(caller, Operation.UPLOAD_REPORT, ResourceScope.for_booking(booking))
        target = next_status(BookingAction.UPLOAD_REPORT, booking.status)

        extension = self._validate_report(filename, content_type, content)
        stored: StoredFile = await self.file_store.save(content, extension, content_type)

        try:
            updated = await self._guarded_update(booking, {
                "status": target,
                "report_file": stored.path,
                "report_upload_date": self.clock(),
            })
        except ConflictError:
            await self._discard_file(stored)
            raise

        logger.info(f"Report {stored.path} uploaded for booking {booking.id} by {caller.id}")
        await self._notify_owner(updated, "results_published", {})
        return updated

    async def submit_results(self, caller: Caller, booking_id: str, data: TestResultsSubmit) -> Booking:
        """Upsert structured results keyed by test id and publish them"""
        if not data.test_results:
            raise ValidationError("testResults must be a non-empty array")

        booking = await self._get_booking(booking_id)
        await self.authz.ensure(caller, Operation.SUBMIT_RESULTS, ResourceScope.for_booking(booking))
        target = next_status(BookingAction.SUBMIT_RESULTS, booking.status)

        submitted_at = self.clock().isoformat()
        by_test_id: Dict[str, Dict[str, Any]] = {
            str(entry["test_id"]): entry for entry in (booking.test_results or [])
        }
        for result in data.test_results:
            by_test_id[str(result.test_id)] = {
                "test_id": result.test_id,
                "values": [self._normalize_value(value) for value in result.values],
                "submitted_by": caller.id,
                "submitted_at": submitted_at,
            }

        updated = await self._guarded_update(booking, {
            "status": target,
            "test_results": list(by_test_id.values()),
        })
        logger.info(
            f"Results for {len(data.test_results)} test(s) saved on booking {booking.id} by {caller.id}"
        )
        await self._notify_owner(updated, "results_published", {})
        return updated

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def admin_list_bookings(
        self,
        caller: Caller,
        status: Optional[BookingStatus] = None,
        lab_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Booking], int]:
        await self.authz.ensure(caller, Operation.ADMIN_LIST_BOOKINGS, ResourceScope(lab_id=lab_id))
        return await self.booking_repo.search(
            skip=skip, limit=limit, lab_id=lab_id, status=status, active_only=False
        )

    async def admin_override_status(self, caller: Caller, booking_id: str, status: BookingStatus) -> Booking:
        booking = await self._get_booking(booking_id, active_only=False)
        await self.authz.ensure(caller, Operation.ADMIN_OVERRIDE_STATUS, ResourceScope.for_booking(booking))

        observed = booking.status
        target = next_status(BookingAction.ADMIN_STATUS_OVERRIDE, observed, status)
        updated = await self._guarded_update(booking, {"status": target})
        logger.warning(
            f"Admin {caller.id} overrode booking {booking.id} status {observed.value} -> {target.value}"
        )
        return updated

    async def admin_delete_booking(self, caller: Caller, booking_id: str) -> Booking:
        """Soft delete; the booking keeps its status"""
        booking = await self._get_booking(booking_id, active_only=False)
        await self.authz.ensure(caller, Operation.ADMIN_DELETE_BOOKING, ResourceScope.for_booking(booking))

        updated = await self.booking_repo.update_if(booking.id, {"is_active": False})
        if updated is None:
            raise NotFoundError("Booking not found")
        logger.warning(f"Admin {caller.id} deleted booking {booking.id}")
        return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_booking(self, booking_id: str, active_only: bool = True) -> Booking:
        booking = await self.booking_repo.get_by_id(booking_id, active_only=active_only)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    async def _guarded_update(self, booking: Booking, values: Dict[str, Any]) -> Booking:
        # read before the update; a failed update rolls back and expires the instance
        booking_id, observed = booking.id, booking.status
        updated = await self.booking_repo.update_if(booking_id, values, Booking.status == observed)
        if updated is None:
            logger.warning(f"Concurrent update detected on booking {booking_id}")
            raise ConflictError(CONCURRENT_UPDATE_MESSAGE, error_code="CONCURRENT_UPDATE")
        return updated

    def _check_cancellation_window(self, booking: Booking) -> None:
        cutoff = booking.appointment_date - timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)
        if not self.clock() < cutoff:
            raise ConflictError(
                f"Booking cannot be cancelled less than {settings.CANCELLATION_CUTOFF_HOURS} "
                f"hours before appointment",
                error_code="CANCELLATION_WINDOW_CLOSED",
            )

    @staticmethod
    def _validate_report(
        filename: Optional[str],
        content_type: Optional[str],
        content: Optional[bytes]
    ) -> str:
        if not filename or content is None:
            raise ValidationError("No file uploaded")

        if content_type not in ALLOWED_REPORT_TYPES:
            raise ValidationError("Invalid file type. Only PDF, JPG, JPEG, and PNG files are allowed.")

        if len(content) > settings.MAX_REPORT_SIZE_BYTES:
            limit_mb = settings.MAX_REPORT_SIZE_BYTES // (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size is {limit_mb}MB.")

        extension = os.path.splitext(filename)[1].lower()
        return extension or ALLOWED_REPORT_TYPES[content_type]

    @staticmethod
    def _normalize_value(value) -> Dict[str, Any]:
        valid_types = {item.value for item in ResultValueType}
        return {
            "label": (value.label or "").strip(),
            "value": value.value,
            "unit": (value.unit or "").strip(),
            "reference_range": (value.reference_range or "").strip(),
            "type": value.type if value.type in valid_types else ResultValueType.TEXT.value,
            "required": bool(value.required),
        }

    async def _discard_file(self, stored: StoredFile) -> None:
        try:
            await self.file_store.delete(stored)
        except Exception as e:
            logger.error(f"Failed to remove orphaned report {stored.path}: {e}")

    async def _notify_cancelled(self, booking: Booking) -> None:
        await self._notify_owner(booking, "booking_cancelled", {
            "appointment_date": booking.appointment_date.date().isoformat(),
            "appointment_time": booking.appointment_time,
        })

    async def _notify_owner(self, booking: Booking, template: str, variables: Dict[str, Any]) -> None:
        owner = await self.user_repo.get_by_id(booking.user_id)
        if not owner:
            return
        self.notifier.send(template, owner.email, {
            "first_name": owner.first_name,
            "booking_id": booking.id,
            **variables,
        })
