# backend/motoserve/models/booking.py
"""
Booking model for the motoserve platform.

A booking pairs a customer's motorcycle service request with a shop and,
once matched, one of the shop's workers. The status column is the single
source of truth for the booking lifecycle; both the customer-facing and the
worker-facing vocabularies of the legacy application map onto it.
"""

from enum import Enum
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Numeric, String

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utcnow


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    ASSIGNED = "ASSIGNED"
    ARRIVED = "ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    PENDING_MANUAL_ASSIGNMENT = "PENDING_MANUAL_ASSIGNMENT"

    @classmethod
    def from_legacy(cls, value: str, vocabulary: str = "customer") -> "BookingStatus":
        """
        Map a legacy status string onto the unified enumeration.

        Args:
            value: Status as stored by the legacy customer or worker screens
            vocabulary: "customer" (booking screens) or "worker" (job screens)

        Raises:
            ValueError: If the value is not part of the vocabulary
        """
        normalized = (value or "").strip().lower().replace("-", "_")
        mapping = _WORKER_VOCABULARY if vocabulary == "worker" else _CUSTOMER_VOCABULARY
        try:
            return mapping[normalized]
        except KeyError:
            raise ValueError(f"Unknown {vocabulary} status: {value!r}") from None


_CUSTOMER_VOCABULARY = {
    "pending": BookingStatus.CREATED,
    "confirmed": BookingStatus.CONFIRMED,
    "assigned": BookingStatus.ASSIGNED,
    "started": BookingStatus.IN_PROGRESS,
    "completed": BookingStatus.COMPLETED,
    "cancelled": BookingStatus.CANCELLED,
    "pending_manual_assignment": BookingStatus.PENDING_MANUAL_ASSIGNMENT,
}

# Worker screens only ever see bookings already handed to a worker.
_WORKER_VOCABULARY = {
    "pending": BookingStatus.ASSIGNED,
    "accepted": BookingStatus.ASSIGNED,
    "arrived": BookingStatus.ARRIVED,
    "in_progress": BookingStatus.IN_PROGRESS,
    "completed": BookingStatus.COMPLETED,
}

WORKER_HELD_STATUSES = frozenset(
    {
        BookingStatus.ASSIGNED,
        BookingStatus.ARRIVED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
    }
)

OPEN_WORKER_STATUSES = (
    BookingStatus.ASSIGNED,
    BookingStatus.ARRIVED,
    BookingStatus.IN_PROGRESS,
)

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


class Booking(Base):
    """
    Motorcycle service booking.

    Mutated exclusively through BookingService and ReassignmentService;
    COMPLETED and CANCELLED rows are never written again.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    customer_id = Column(String(26), nullable=False, index=True)
    shop_id = Column(String(26), nullable=False, index=True)
    worker_id = Column(String(26), ForeignKey("workers.id"), nullable=True, index=True)
    service_id = Column(String(26), nullable=False)

    base_cost = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False, default=BookingStatus.CREATED.value, index=True)
    # Status held before the cascade parked the booking in the manual queue
    held_status = Column(String(32), nullable=True)

    scheduled_at = Column(UTCDateTime(), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utcnow)
    confirmed_at = Column(UTCDateTime(), nullable=True)
    assigned_at = Column(UTCDateTime(), nullable=True)
    arrived_at = Column(UTCDateTime(), nullable=True)
    started_at = Column(UTCDateTime(), nullable=True)
    completed_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    cancellation_id = Column(String(26), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('CREATED', 'CONFIRMED', 'ASSIGNED', 'ARRIVED', 'IN_PROGRESS', "
            "'COMPLETED', 'CANCELLED', 'PENDING_MANUAL_ASSIGNMENT')",
            name="ck_bookings_status",
        ),
        CheckConstraint("base_cost >= 0", name="check_base_cost_non_negative"),
        Index("ix_bookings_worker_status", "worker_id", "status"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.CREATED.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: customer={self.customer_id}, shop={self.shop_id}, "
            f"worker={self.worker_id}, status={self.status}>"
        )

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    def is_owned_by(self, customer_id: Optional[str]) -> bool:
        return customer_id is not None and customer_id == self.customer_id
