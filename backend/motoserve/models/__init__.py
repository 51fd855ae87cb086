"""
Database models for the motoserve booking core.

- Booking: lifecycle-tracked service booking
- Worker: availability, rating and performance subset of a shop worker
- CancellationTokenLedger / CancellationRecord: cancellation economy
- ReassignmentRecord: audit of worker hand-offs
- WorkerEmergency: emergencies reported by workers mid-booking
"""

from .booking import Booking, BookingStatus
from .cancellation import CancellationRecord, CancellationTokenLedger
from .reassignment import ReassignmentRecord, WorkerEmergency
from .worker import Worker

__all__ = [
    "Booking",
    "BookingStatus",
    "CancellationRecord",
    "CancellationTokenLedger",
    "ReassignmentRecord",
    "Worker",
    "WorkerEmergency",
]
