"""Booking domain events and the in-process bus that delivers them."""

from .booking_events import (
    BookingAdvanced,
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    ManualAssignmentRequired,
    WorkerAssigned,
    WorkerAvailabilityChanged,
    WorkerReassigned,
)
from .publisher import EventBus

__all__ = [
    "BookingAdvanced",
    "BookingCancelled",
    "BookingCompleted",
    "BookingConfirmed",
    "EventBus",
    "ManualAssignmentRequired",
    "WorkerAssigned",
    "WorkerAvailabilityChanged",
    "WorkerReassigned",
]
