# backend/motoserve/services/booking_lifecycle.py
"""
Booking status transition table.

Every status change in the core goes through ensure_transition() so that
the edges below are the only way a booking moves.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional, Union

from ..core.exceptions import StateConflictException
from ..models.booking import WORKER_HELD_STATUSES, Booking, BookingStatus

S = BookingStatus

# Main chain; the assigned worker drives everything after ASSIGNED.
FORWARD_EDGES: Dict[BookingStatus, BookingStatus] = {
    S.CREATED: S.CONFIRMED,
    S.CONFIRMED: S.ASSIGNED,
    S.ASSIGNED: S.ARRIVED,
    S.ARRIVED: S.IN_PROGRESS,
    S.IN_PROGRESS: S.COMPLETED,
}

WORKER_DRIVEN_TARGETS: FrozenSet[BookingStatus] = frozenset(
    {S.ARRIVED, S.IN_PROGRESS, S.COMPLETED}
)

CANCELLABLE: FrozenSet[BookingStatus] = frozenset({S.CREATED, S.CONFIRMED, S.ASSIGNED, S.ARRIVED})

# Only the reassignment cascade parks bookings here.
MANUAL_QUEUE_SOURCES: FrozenSet[BookingStatus] = frozenset({S.ASSIGNED, S.ARRIVED, S.IN_PROGRESS})

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    status: frozenset(
        ({FORWARD_EDGES[status]} if status in FORWARD_EDGES else set())
        | ({S.CANCELLED} if status in CANCELLABLE else set())
        | ({S.PENDING_MANUAL_ASSIGNMENT} if status in MANUAL_QUEUE_SOURCES else set())
    )
    for status in BookingStatus
}
# Manual assignment restores whatever the booking held before it was queued.
ALLOWED_TRANSITIONS[S.PENDING_MANUAL_ASSIGNMENT] = MANUAL_QUEUE_SOURCES

TIMESTAMP_FIELDS: Dict[BookingStatus, str] = {
    S.CONFIRMED: "confirmed_at",
    S.ASSIGNED: "assigned_at",
    S.ARRIVED: "arrived_at",
    S.IN_PROGRESS: "started_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
}


def can_transition(
    current: Union[BookingStatus, str], target: Union[BookingStatus, str]
) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


def ensure_transition(
    booking: Booking,
    target: BookingStatus,
    message: Optional[str] = None,
) -> None:
    """Raise StateConflictException unless booking.status -> target is an edge."""
    current = booking.status_enum
    if not can_transition(current, target):
        raise StateConflictException(
            message or f"Cannot move booking from {current.value} to {target.value}",
            current_status=current.value,
            details={"booking_id": booking.id, "requested_status": target.value},
        )


def apply_transition(
    booking: Booking, target: BookingStatus, now: datetime, stamp: bool = True
) -> BookingStatus:
    """
    Validate, set the status and stamp the matching timestamp.

    A worker may only be attached in the worker-held statuses: moving into
    one requires booking.worker_id to be set already, and moving anywhere
    else detaches the worker.

    Restoring a held status from the manual queue passes stamp=False so the
    original arrival and start times survive.
    """
    ensure_transition(booking, target)
    if target in WORKER_HELD_STATUSES and booking.worker_id is None:
        raise StateConflictException(
            f"Cannot move booking to {target.value} without an assigned worker",
            current_status=booking.status,
            details={"booking_id": booking.id, "requested_status": target.value},
        )
    previous = booking.status_enum
    booking.status = target.value
    if target not in WORKER_HELD_STATUSES:
        booking.worker_id = None
    field = TIMESTAMP_FIELDS.get(target)
    if stamp and field is not None:
        setattr(booking, field, now)
    booking.updated_at = now
    return previous
