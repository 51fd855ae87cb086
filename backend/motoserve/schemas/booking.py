# backend/motoserve/schemas/booking.py
"""Booking lifecycle request and response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from ..models.booking import Booking, BookingStatus
from .base import Money, StandardizedModel, StrictRequestModel


class BookingResponse(StandardizedModel):
    id: str
    customer_id: str
    shop_id: str
    worker_id: Optional[str] = None
    service_id: str
    base_cost: Money
    status: BookingStatus
    scheduled_at: datetime
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_id: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls.model_validate(booking)


class AssignWorkerResponse(StandardizedModel):
    booking_id: str
    worker_id: Optional[str] = None
    status: BookingStatus
    message: str


class AdvanceBookingRequest(StrictRequestModel):
    target_status: BookingStatus = Field(..., description="ARRIVED, IN_PROGRESS or COMPLETED")


class CancelBookingRequest(StrictRequestModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CancelBookingResponse(StandardizedModel):
    booking_id: str
    cancellation_id: str
    tokens_deducted: int
    tokens_remaining: int
    refund_amount: Money
    refund_percentage: int
    message: str = "Booking cancelled successfully"
