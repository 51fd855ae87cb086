"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class BookingConfirmed:
    """Fired after a booking moves from CREATED to CONFIRMED."""

    booking_id: str
    shop_id: str
    confirmed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkerAssigned:
    """Fired after the first worker is attached to a confirmed booking."""

    booking_id: str
    worker_id: str
    assigned_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingAdvanced:
    """Fired after the assigned worker moves a booking one step forward."""

    booking_id: str
    worker_id: str
    from_status: str
    to_status: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a booking is marked complete."""

    booking_id: str
    worker_id: str
    completed_at: datetime
    service_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled by its customer."""

    booking_id: str
    customer_id: str
    cancellation_id: str
    cancelled_at: datetime
    tokens_deducted: int
    refund_amount: Decimal
    refund_percentage: int
    previous_worker_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkerReassigned:
    """Fired after a booking is handed from one worker to another."""

    booking_id: str
    old_worker_id: Optional[str]
    new_worker_id: str
    reason: str
    is_fallback: bool
    reassigned_by: str
    reassigned_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ManualAssignmentRequired:
    """Urgent admin alert: no worker could take over the booking."""

    booking_id: str
    shop_id: str
    previous_worker_id: Optional[str]
    reason: str
    queued_at: datetime
    priority: str = "urgent"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkerAvailabilityChanged:
    """Fired when a worker goes available or unavailable."""

    worker_id: str
    shop_id: str
    is_available: bool
    reason: Optional[str]
    changed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
