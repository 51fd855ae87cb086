# backend/motoserve/schemas/reassignment.py
"""Reassignment, emergency and manual-assignment schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel
from .booking import BookingResponse


class ReassignBookingRequest(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    new_worker_id: Optional[str] = Field(default=None, description="Pick the replacement by hand")


class ReassignmentOutcomeResponse(StandardizedModel):
    booking_id: str
    outcome: str
    old_worker_id: Optional[str] = None
    new_worker_id: Optional[str] = None
    record_id: Optional[str] = None
    status: Optional[str] = None


class WorkerSummary(StandardizedModel):
    id: str
    name: Optional[str] = None
    rating: float
    is_available: bool
    response_time_minutes: int
    unavailable_reason: Optional[str] = None


class ReassignmentPreviewResponse(StandardizedModel):
    booking_id: str
    previous_worker: Optional[WorkerSummary] = None
    reason_unavailable: str
    suggested_worker: Optional[WorkerSummary] = None
    status_message: str


class WorkerEmergencyRequest(StrictRequestModel):
    booking_id: str
    emergency_reason: str = Field(..., min_length=1, max_length=500)


class WorkerAvailabilityRequest(StrictRequestModel):
    is_available: bool
    reason: Optional[str] = Field(default=None, max_length=500)


class WorkerAvailabilityResponse(StandardizedModel):
    worker_id: str
    is_available: bool
    bookings_affected: int
    reassigned: int
    fallback: int
    queued: int
    skipped: int
    failed: int = 0
    outcomes: List[ReassignmentOutcomeResponse] = Field(default_factory=list)


class ManualAssignmentRequest(StrictRequestModel):
    worker_id: str


class PendingManualAssignment(BookingResponse):
    held_status: Optional[str] = None
    updated_at: Optional[datetime] = None


class PendingManualAssignmentList(StandardizedModel):
    bookings: List[PendingManualAssignment]
    count: int
