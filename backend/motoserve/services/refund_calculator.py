# backend/motoserve/services/refund_calculator.py
"""
Refund tiers for customer cancellations.

Pure functions: the booking service passes in the status the booking held
at cancellation time and the minutes left until the scheduled service,
both measured against the single "now" captured for the operation.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from ..models.booking import BookingStatus

FULL_REFUND = 100

# (exclusive lower bound in minutes, percentage), checked top down
_PRE_ASSIGNMENT_TIERS = (
    (60, 100),
    (30, 75),
    (0, 50),
)

_FLAT_PERCENTAGES = {
    BookingStatus.ASSIGNED: 50,
    BookingStatus.ARRIVED: 50,
    BookingStatus.IN_PROGRESS: 0,
}

Number = Union[int, float, Decimal]


def refund_percentage(status: Union[BookingStatus, str], minutes_to_service: Number) -> int:
    """
    Percentage of the base cost returned to the customer.

    CREATED and CONFIRMED bookings follow the lead-time tiers. Once a
    worker holds the booking the rate is flat. Statuses that can no longer
    be cancelled refund nothing.

    A scheduled time already in the past (m <= 0) on an unassigned booking
    returns a full refund; this matches the legacy cancellation screen.
    """
    status = BookingStatus(status)
    if status in (BookingStatus.CREATED, BookingStatus.CONFIRMED):
        for lower_bound, percentage in _PRE_ASSIGNMENT_TIERS:
            if minutes_to_service > lower_bound:
                return percentage
        return FULL_REFUND
    return _FLAT_PERCENTAGES.get(status, 0)


def refund_amount(base_cost: Number, percentage: int) -> Decimal:
    """base_cost * percentage / 100, rounded half up to a whole currency unit."""
    raw = Decimal(str(base_cost)) * Decimal(percentage) / Decimal(100)
    return raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def minutes_to_service(scheduled_at: datetime, now: datetime) -> float:
    """Fractional minutes until the scheduled service; negative once it has passed."""
    return (scheduled_at - now).total_seconds() / 60
