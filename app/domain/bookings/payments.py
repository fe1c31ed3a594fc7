"""
Payment reconciliation

Online payments go through the gateway: an order is created for the
booking total, the client pays, and the signed order/payment pair is
verified before the booking is marked paid. Pay-later bookings are
settled at the lab by staff.
"""

from typing import Dict, Any
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, AlreadyProcessedError
)
from app.core.permissions import AuthorizationEngine, Caller, Operation, ResourceScope
from app.domain.bookings.models import Booking, BookingStatus, PaymentMethod, PaymentStatus
from app.domain.bookings.repository import BookingRepository
from app.domain.bookings.service import CONCURRENT_UPDATE_MESSAGE
from app.domain.bookings.state_machine import BookingAction, next_status
from app.domain.identity.repository import UserRepository
from app.infrastructure.notifications import EmailDispatcher
from app.infrastructure.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    """Gateway amounts are integers in the currency's smallest unit"""
    return int(round(amount * 100))


class PaymentService:
    """Service layer for booking payments"""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        authz: AuthorizationEngine,
        notifier: EmailDispatcher,
        clock: Clock = utcnow
    ):
        self.db = db
        self.booking_repo = BookingRepository(db)
        self.user_repo = UserRepository(db)
        self.gateway = gateway
        self.authz = authz
        self.notifier = notifier
        self.clock = clock

    async def create_order(self, caller: Caller, booking_id: str) -> Dict[str, Any]:
        """Create a gateway order for an unpaid pay-now booking"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.CREATE_PAYMENT_ORDER, ResourceScope.for_booking(booking), hide_as_not_found=True
        )

        if booking.payment_method != PaymentMethod.PAY_NOW:
            raise ConflictError("This booking does not require immediate payment")
        if booking.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyProcessedError()
        if booking.status == BookingStatus.CANCELLED:
            raise ConflictError("Cannot create a payment order for a cancelled booking")

        booking_id, observed = booking.id, booking.status
        amount = to_minor_units(booking.total_amount)
        order = await self.gateway.create_order(
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            receipt=booking_id,
            notes={"booking_id": booking_id, "user_id": caller.id},
        )

        updated = await self.booking_repo.update_if(
            booking_id,
            {"gateway_order_id": order.id},
            Booking.status == observed,
            Booking.payment_status != PaymentStatus.COMPLETED,
        )
        if updated is None:
            raise ConflictError(CONCURRENT_UPDATE_MESSAGE, error_code="CONCURRENT_UPDATE")

        logger.info(f"Gateway order {order.id} created for booking {booking_id} ({amount} {order.currency})")
        return {
            "order_id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "key_id": settings.RAZORPAY_KEY_ID,
            "booking_id": booking_id,
        }

    async def confirm_payment(
        self,
        caller: Caller,
        booking_id: str,
        order_id: str,
        payment_id: str,
        signature: str
    ) -> Booking:
        """Verify the gateway signature and record an online payment"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(
            caller, Operation.CONFIRM_PAYMENT, ResourceScope.for_booking(booking), hide_as_not_found=True
        )

        if booking.payment_method != PaymentMethod.PAY_NOW:
            raise ConflictError("This booking does not require immediate payment")
        if booking.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyProcessedError()

        if not order_id or not payment_id or not signature:
            raise ValidationError("Order id, payment id and signature are required")
        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Invalid payment signature for booking {booking.id} from {caller.id}")
            raise ValidationError("Invalid payment signature", error_code="INVALID_SIGNATURE")
        if booking.gateway_order_id is None or booking.gateway_order_id != order_id:
            raise ValidationError("Payment order does not match this booking", error_code="ORDER_MISMATCH")

        booking_id, observed = booking.id, booking.status
        target = next_status(BookingAction.CONFIRM_ONLINE_PAYMENT, observed)
        updated = await self.booking_repo.update_if(
            booking_id,
            {
                "gateway_payment_id": payment_id,
                "gateway_signature": signature,
                "payment_status": PaymentStatus.COMPLETED,
                "paid_amount": booking.total_amount,
                "payment_date": self.clock(),
                "status": target,
            },
            Booking.status == observed,
            Booking.payment_status != PaymentStatus.COMPLETED,
            Booking.gateway_order_id == order_id,
        )
        if updated is None:
            await self._raise_lost_update(booking_id)

        logger.info(f"Online payment {payment_id} recorded for booking {booking_id}")
        await self._notify_paid(updated)
        return updated

    async def process_lab_payment(self, caller: Caller, booking_id: str) -> Booking:
        """Record a pay-later payment collected at the lab"""
        booking = await self._get_booking(booking_id)
        await self.authz.ensure(caller, Operation.PROCESS_LAB_PAYMENT, ResourceScope.for_booking(booking))

        booking_id, observed = booking.id, booking.status
        next_status(BookingAction.PROCESS_LAB_PAYMENT, observed)
        updated = await self.booking_repo.update_if(
            booking_id,
            {
                "payment_status": PaymentStatus.COMPLETED,
                "paid_amount": booking.total_amount,
                "payment_date": self.clock(),
            },
            Booking.status == observed,
            Booking.payment_status != PaymentStatus.COMPLETED,
        )
        if updated is None:
            await self._raise_lost_update(booking_id)

        logger.info(f"Lab payment recorded for booking {booking_id} by {caller.id}")
        await self._notify_paid(updated)
        return updated

    async def _get_booking(self, booking_id: str) -> Booking:
        booking = await self.booking_repo.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    async def _raise_lost_update(self, booking_id: str) -> None:
        """A guarded payment write matched no row; report why"""
        current = await self.booking_repo.get_by_id(booking_id, active_only=False)
        if current is not None and current.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyProcessedError()
        raise ConflictError(CONCURRENT_UPDATE_MESSAGE, error_code="CONCURRENT_UPDATE")

    async def _notify_paid(self, booking: Booking) -> None:
        owner = await self.user_repo.get_by_id(booking.user_id)
        if not owner:
            return
        self.notifier.send("payment_confirmed", owner.email, {
            "first_name": owner.first_name,
            "booking_id": booking.id,
            "paid_amount": f"{booking.paid_amount:.2f}",
            "status": booking.status.value,
        })
