"""
Booking state machine

Every status change a booking can go through is listed in ``TRANSITIONS``.
Services ask :func:`next_status` for the resulting status and never assign
``Booking.status`` on their own.
"""

from dataclasses import dataclass
from typing import Optional, FrozenSet, Dict
import enum

from app.core.exceptions import InvalidTransitionError
from app.domain.bookings.models import BookingStatus


class BookingAction(str, enum.Enum):
    CANCEL = "cancel"
    UPLOAD_REPORT = "upload_report"
    SUBMIT_RESULTS = "submit_results"
    STAFF_STATUS_UPDATE = "staff_status_update"
    ADMIN_STATUS_OVERRIDE = "admin_status_override"
    CONFIRM_ONLINE_PAYMENT = "confirm_online_payment"
    PROCESS_LAB_PAYMENT = "process_lab_payment"


# Forward order of the lifecycle; cancelled sits outside it
STATUS_ORDER = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.SAMPLE_COLLECTED,
    BookingStatus.REPORT_UPLOADED,
    BookingStatus.RESULT_PUBLISHED,
    BookingStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
NON_TERMINAL_STATUSES = frozenset(set(BookingStatus) - TERMINAL_STATUSES)

# Targets the lab staff status endpoint may set
STAFF_STATUS_TARGETS = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.SAMPLE_COLLECTED,
    BookingStatus.RESULT_PUBLISHED,
})

RESULT_ENTRY_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.SAMPLE_COLLECTED})
CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[BookingStatus]
    # None keeps the current status (payment-only actions)
    targets: Optional[FrozenSet[BookingStatus]]
    monotonic: bool = False
    description: str = ""


TRANSITIONS: Dict[BookingAction, Transition] = {
    BookingAction.CANCEL: Transition(
        sources=CANCELLABLE_STATUSES,
        targets=frozenset({BookingStatus.CANCELLED}),
        description="Only pending or confirmed bookings can be cancelled",
    ),
    BookingAction.UPLOAD_REPORT: Transition(
        sources=RESULT_ENTRY_STATUSES,
        targets=frozenset({BookingStatus.RESULT_PUBLISHED}),
        description="Report can only be uploaded for bookings with confirmed or sample_collected status",
    ),
    BookingAction.SUBMIT_RESULTS: Transition(
        sources=RESULT_ENTRY_STATUSES,
        targets=frozenset({BookingStatus.RESULT_PUBLISHED}),
        description="Results can only be submitted for confirmed or sample_collected bookings",
    ),
    BookingAction.STAFF_STATUS_UPDATE: Transition(
        sources=frozenset({BookingStatus.PENDING}) | STAFF_STATUS_TARGETS,
        targets=STAFF_STATUS_TARGETS,
        monotonic=True,
        description="Lab staff can only move a booking forward through confirmed, sample_collected and result_published",
    ),
    BookingAction.ADMIN_STATUS_OVERRIDE: Transition(
        sources=NON_TERMINAL_STATUSES,
        targets=frozenset(BookingStatus),
        description="Completed or cancelled bookings cannot be changed",
    ),
    BookingAction.CONFIRM_ONLINE_PAYMENT: Transition(
        sources=NON_TERMINAL_STATUSES,
        targets=None,
        description="Payments cannot be recorded for completed or cancelled bookings",
    ),
    BookingAction.PROCESS_LAB_PAYMENT: Transition(
        sources=frozenset(set(BookingStatus) - {BookingStatus.CANCELLED}),
        targets=None,
        description="Payments cannot be recorded for cancelled bookings",
    ),
}


def status_rank(status: BookingStatus) -> int:
    """Position in the forward order; cancelled ranks after everything"""
    if status == BookingStatus.CANCELLED:
        return len(STATUS_ORDER)
    return STATUS_ORDER.index(status)


def next_status(
    action: BookingAction,
    current: BookingStatus,
    requested: Optional[BookingStatus] = None
) -> BookingStatus:
    """Validate ``action`` against the table and return the resulting status.

    Raises InvalidTransitionError when the current status is not a valid
    source or the requested target is not allowed.
    """
    transition = TRANSITIONS[action]

    if current not in transition.sources:
        raise InvalidTransitionError(
            transition.description or f"Cannot {action.value} a booking in status {current.value}",
            details={"action": action.value, "current": current.value},
        )

    if transition.targets is None:
        if action == BookingAction.CONFIRM_ONLINE_PAYMENT and current == BookingStatus.PENDING:
            return BookingStatus.CONFIRMED
        return current

    if requested is None:
        if len(transition.targets) != 1:
            raise InvalidTransitionError(f"A target status is required to {action.value}")
        (requested,) = transition.targets

    if requested not in transition.targets:
        allowed = ", ".join(sorted(status.value for status in transition.targets))
        raise InvalidTransitionError(
            f"Invalid status. Must be one of: {allowed}",
            details={"action": action.value, "requested": requested.value},
        )

    if transition.monotonic and status_rank(requested) < status_rank(current):
        raise InvalidTransitionError(
            f"Booking status cannot move back from {current.value} to {requested.value}",
            details={"action": action.value, "current": current.value, "requested": requested.value},
        )

    return requested
