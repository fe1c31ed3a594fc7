"""
Authorization engine

Decides whether a caller may perform an operation on a lab-scoped
resource. Three audiences exist:

* owner operations act on a patient's own booking,
* lab operations act on bookings of the caller's assigned lab,
* admin operations are reserved to global admins.

Global admins pass every scope check. Staff, technicians and local admins
are confined to their assigned lab for every operation. Operation-specific
preconditions (booking status, payment method) are checked last and are
reported as conflicts rather than as forbidden.
"""

from dataclasses import dataclass
from typing import Optional, Protocol
import enum
import logging

from app.core.exceptions import (
    AuthorizationError, ConflictError, AlreadyProcessedError, NotFoundError
)
from app.domain.identity.models import UserRole
from app.domain.identity.repository import DirectoryEntry
from app.domain.bookings.models import Booking, BookingStatus, PaymentMethod, PaymentStatus
from app.domain.bookings.state_machine import (
    BookingAction, TRANSITIONS, RESULT_ENTRY_STATUSES, STAFF_STATUS_TARGETS
)

logger = logging.getLogger(__name__)


LAB_OPERATOR_ROLES = frozenset({
    UserRole.STAFF,
    UserRole.LAB_TECHNICIAN,
    UserRole.XRAY_TECHNICIAN,
})


def is_global_admin(role: UserRole) -> bool:
    return role == UserRole.ADMIN


def is_lab_operator(role: UserRole) -> bool:
    return role in LAB_OPERATOR_ROLES


def can_operate_on_lab(role: UserRole) -> bool:
    """Staff, technicians and local admins work inside one lab"""
    return is_lab_operator(role) or role == UserRole.LOCAL_ADMIN


class Operation(str, enum.Enum):
    # owner operations
    CREATE_BOOKING = "bookings:create"
    VIEW_BOOKING = "bookings:read:own"
    UPDATE_BOOKING = "bookings:update:own"
    CANCEL_BOOKING = "bookings:cancel:own"
    CREATE_PAYMENT_ORDER = "payments:order:own"
    CONFIRM_PAYMENT = "payments:confirm:own"

    # lab operations
    LIST_LAB_BOOKINGS = "bookings:read:lab"
    UPDATE_STATUS = "bookings:status:lab"
    UPLOAD_REPORT = "bookings:report:lab"
    SUBMIT_RESULTS = "bookings:results:lab"
    PROCESS_LAB_PAYMENT = "payments:process:lab"

    # admin operations
    ADMIN_LIST_BOOKINGS = "bookings:read:all"
    ADMIN_OVERRIDE_STATUS = "bookings:status:all"
    ADMIN_DELETE_BOOKING = "bookings:delete:all"


OWNER_OPERATIONS = frozenset({
    Operation.CREATE_BOOKING,
    Operation.VIEW_BOOKING,
    Operation.UPDATE_BOOKING,
    Operation.CANCEL_BOOKING,
    Operation.CREATE_PAYMENT_ORDER,
    Operation.CONFIRM_PAYMENT,
})

LAB_OPERATIONS = frozenset({
    Operation.LIST_LAB_BOOKINGS,
    Operation.UPDATE_STATUS,
    Operation.UPLOAD_REPORT,
    Operation.SUBMIT_RESULTS,
    Operation.PROCESS_LAB_PAYMENT,
})

ADMIN_OPERATIONS = frozenset({
    Operation.ADMIN_LIST_BOOKINGS,
    Operation.ADMIN_OVERRIDE_STATUS,
    Operation.ADMIN_DELETE_BOOKING,
})


class DenialKind(str, enum.Enum):
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    kind: Optional[DenialKind] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, kind: DenialKind = DenialKind.FORBIDDEN) -> "AccessDecision":
        return cls(allowed=False, reason=reason, kind=kind)


@dataclass
class Caller:
    """Authenticated principal built from token claims.

    ``assigned_lab`` comes from the token and may be missing or stale; lab-scoped
    callers have it replaced from the directory at most once per request.
    """
    id: str
    role: UserRole
    assigned_lab: Optional[str] = None
    email: Optional[str] = None
    lab_resolved: bool = False
    disabled: bool = False


@dataclass(frozen=True)
class ResourceScope:
    """What the engine needs to know about the target of an operation"""
    lab_id: Optional[str]
    owner_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None

    @classmethod
    def for_booking(cls, booking: Booking) -> "ResourceScope":
        return cls(
            lab_id=booking.lab_id,
            owner_id=booking.user_id,
            status=booking.status,
            payment_method=booking.payment_method,
            payment_status=booking.payment_status,
        )

    @classmethod
    def for_lab(cls, lab_id: str) -> "ResourceScope":
        return cls(lab_id=lab_id)


class IdentityDirectory(Protocol):
    async def find_user(self, user_id: str) -> Optional[DirectoryEntry]:
        ...


class AuthorizationEngine:
    """Role and lab-scope checks for every booking operation"""

    def __init__(self, directory: IdentityDirectory):
        self.directory = directory

    async def resolve_lab(self, caller: Caller) -> Optional[str]:
        """Effective assigned lab, read from the directory once per request.

        The directory entry overrides the token claim; blocked or inactive
        entries resolve to no lab and mark the caller disabled.
        """
        if caller.lab_resolved:
            return caller.assigned_lab

        caller.lab_resolved = True
        entry = await self.directory.find_user(caller.id)
        if entry is None:
            logger.warning(f"Caller {caller.id} not found in directory during lab resolution")
            caller.assigned_lab = None
            caller.disabled = True
            return None

        if not entry.is_active or entry.is_blocked:
            caller.disabled = True
            caller.assigned_lab = None
            return None

        if caller.assigned_lab and str(caller.assigned_lab) != str(entry.assigned_lab):
            logger.info(f"Lab claim for {caller.id} is stale, using directory assignment")
        caller.assigned_lab = entry.assigned_lab
        return caller.assigned_lab

    async def authorize(
        self,
        caller: Caller,
        operation: Operation,
        resource: ResourceScope,
        target_status: Optional[BookingStatus] = None
    ) -> AccessDecision:
        decision = await self._check_scope(caller, operation, resource)
        if not decision.allowed:
            return decision
        return self._check_preconditions(operation, resource, target_status)

    async def ensure(
        self,
        caller: Caller,
        operation: Operation,
        resource: ResourceScope,
        target_status: Optional[BookingStatus] = None,
        hide_as_not_found: bool = False
    ) -> None:
        """Raise the matching exception when ``authorize`` denies"""
        decision = await self.authorize(caller, operation, resource, target_status)
        if decision.allowed:
            return

        if decision.kind == DenialKind.ALREADY_PROCESSED:
            raise AlreadyProcessedError(decision.reason)
        if decision.kind == DenialKind.CONFLICT:
            raise ConflictError(decision.reason)

        logger.info(
            f"Denied {operation.value} for {caller.role.value} {caller.id} "
            f"on lab {resource.lab_id}: {decision.reason}"
        )
        if hide_as_not_found:
            raise NotFoundError("Booking not found")
        raise AuthorizationError(decision.reason)

    async def _check_scope(
        self,
        caller: Caller,
        operation: Operation,
        resource: ResourceScope
    ) -> AccessDecision:
        if is_global_admin(caller.role):
            return AccessDecision.allow()

        if operation in ADMIN_OPERATIONS:
            return AccessDecision.deny("Access denied. Admin privileges required.")

        if caller.role == UserRole.USER:
            if operation in LAB_OPERATIONS:
                return AccessDecision.deny("Access denied. Only lab staff and local admins can perform this action.")
            return self._check_owner(caller, operation, resource)

        if can_operate_on_lab(caller.role):
            effective_lab = await self.resolve_lab(caller)
            if caller.disabled:
                return AccessDecision.deny("Access denied. Account is inactive or blocked.")
            if not effective_lab:
                return AccessDecision.deny("Access denied. You are not assigned to any lab.")
            if resource.lab_id is None or str(effective_lab) != str(resource.lab_id):
                return AccessDecision.deny("Access denied. You can only access bookings for your assigned lab.")
            if operation in OWNER_OPERATIONS:
                return self._check_owner(caller, operation, resource)
            return AccessDecision.allow()

        return AccessDecision.deny("Access denied.")

    @staticmethod
    def _check_owner(caller: Caller, operation: Operation, resource: ResourceScope) -> AccessDecision:
        if operation == Operation.CREATE_BOOKING:
            return AccessDecision.allow()
        if resource.owner_id is not None and str(resource.owner_id) == str(caller.id):
            return AccessDecision.allow()
        return AccessDecision.deny("Access denied. You can only access your own bookings.")

    @staticmethod
    def _check_preconditions(
        operation: Operation,
        resource: ResourceScope,
        target_status: Optional[BookingStatus]
    ) -> AccessDecision:
        if operation == Operation.UPLOAD_REPORT and resource.status not in RESULT_ENTRY_STATUSES:
            return AccessDecision.deny(
                TRANSITIONS[BookingAction.UPLOAD_REPORT].description, DenialKind.CONFLICT
            )

        if operation == Operation.SUBMIT_RESULTS and resource.status not in RESULT_ENTRY_STATUSES:
            return AccessDecision.deny(
                TRANSITIONS[BookingAction.SUBMIT_RESULTS].description, DenialKind.CONFLICT
            )

        if operation == Operation.PROCESS_LAB_PAYMENT:
            if resource.payment_method != PaymentMethod.PAY_LATER:
                return AccessDecision.deny(
                    "This booking is not eligible for lab payment processing", DenialKind.CONFLICT
                )
            if resource.payment_status == PaymentStatus.COMPLETED:
                return AccessDecision.deny(
                    "Payment has already been processed for this booking", DenialKind.ALREADY_PROCESSED
                )

        if operation == Operation.UPDATE_STATUS and target_status not in STAFF_STATUS_TARGETS:
            allowed = ", ".join(sorted(status.value for status in STAFF_STATUS_TARGETS))
            return AccessDecision.deny(
                f"Invalid status. Must be one of: {allowed}", DenialKind.CONFLICT
            )

        return AccessDecision.allow()
