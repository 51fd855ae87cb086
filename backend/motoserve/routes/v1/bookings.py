# backend/motoserve/routes/v1/bookings.py
"""
Bookings routes - API v1

Versioned booking lifecycle endpoints under /api/v1/bookings.
All business logic delegated to BookingService and ReassignmentService.

Endpoints:
    GET /{booking_id}              → Booking details (customer, worker, owner, admin)
    POST /{booking_id}/confirm     → CREATED → CONFIRMED
    POST /{booking_id}/assign      → Attach the best quality worker
    POST /{booking_id}/advance     → Worker moves the booking one step
    POST /{booking_id}/cancel      → Customer cancels (tokens + refund)
    GET /{booking_id}/reassign     → Preview who would take over
    POST /{booking_id}/reassign    → Replace the assigned worker
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies.auth import get_current_actor
from ...api.dependencies.services import get_booking_service, get_reassignment_service
from ...core.exceptions import DomainException
from ...core.principal import Actor
from ...schemas.booking import (
    AdvanceBookingRequest,
    AssignWorkerResponse,
    BookingResponse,
    CancelBookingRequest,
    CancelBookingResponse,
)
from ...schemas.reassignment import (
    ReassignBookingRequest,
    ReassignmentOutcomeResponse,
    ReassignmentPreviewResponse,
    WorkerSummary,
)
from ...services.booking_service import BookingService
from ...services.reassignment_service import ReassignmentService
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def booking_id_path() -> Any:
    return Path(
        ...,
        description="Booking ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
def get_booking(
    booking_id: str = booking_id_path(),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Get a booking visible to the caller."""
    try:
        return BookingResponse.from_booking(booking_service.get_booking(booking_id, actor))
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/confirm",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 409: {"description": "Invalid state"}},
)
def confirm_booking(
    booking_id: str = booking_id_path(),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Confirm a newly created booking."""
    try:
        return BookingResponse.from_booking(booking_service.confirm(booking_id, actor))
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/assign",
    response_model=AssignWorkerResponse,
    responses={404: {"description": "Booking not found"}, 409: {"description": "Invalid state"}},
)
def assign_worker(
    booking_id: str = booking_id_path(),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> AssignWorkerResponse:
    """
    Assign the best available quality worker.

    A shop with nobody qualified leaves the booking CONFIRMED and returns
    worker_id=null.
    """
    try:
        result = booking_service.assign(booking_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return AssignWorkerResponse(
        booking_id=result.booking.id,
        worker_id=result.worker_id,
        status=result.booking.status,
        message="Worker assigned" if result.assigned else "No workers available",
    )


@router.post(
    "/{booking_id}/advance",
    response_model=BookingResponse,
    responses={403: {"description": "Not the assigned worker"}, 409: {"description": "Invalid step"}},
)
def advance_booking(
    booking_id: str = booking_id_path(),
    payload: AdvanceBookingRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Assigned worker reports arrival, start or completion."""
    try:
        booking = booking_service.advance(booking_id, actor, payload.target_status)
        return BookingResponse.from_booking(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/cancel",
    response_model=CancelBookingResponse,
    responses={
        404: {"description": "Booking not found"},
        409: {"description": "Booking can no longer be cancelled"},
        422: {"description": "Not enough cancellation tokens"},
    },
)
def cancel_booking(
    booking_id: str = booking_id_path(),
    payload: CancelBookingRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancelBookingResponse:
    """Cancel a booking, spending tokens and computing the refund."""
    try:
        result = booking_service.cancel(booking_id, actor, payload.reason)
    except DomainException as e:
        handle_domain_exception(e)
    return CancelBookingResponse(
        booking_id=result.booking.id,
        cancellation_id=result.cancellation_id,
        tokens_deducted=result.tokens_deducted,
        tokens_remaining=result.tokens_remaining,
        refund_amount=result.refund_amount,
        refund_percentage=result.refund_percentage,
    )


@router.get(
    "/{booking_id}/reassign",
    response_model=ReassignmentPreviewResponse,
    responses={404: {"description": "Booking not found"}},
)
def preview_reassignment(
    booking_id: str = booking_id_path(),
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> ReassignmentPreviewResponse:
    """Show the current worker's status and the best replacement, without changing anything."""
    try:
        preview = reassignment_service.preview_reassignment(booking_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return ReassignmentPreviewResponse(
        booking_id=preview.booking.id,
        previous_worker=(
            WorkerSummary.model_validate(preview.previous_worker)
            if preview.previous_worker is not None
            else None
        ),
        reason_unavailable=preview.previous_worker_reason,
        suggested_worker=(
            WorkerSummary.model_validate(preview.suggested_worker)
            if preview.suggested_worker is not None
            else None
        ),
        status_message=preview.status_message,
    )


@router.post(
    "/{booking_id}/reassign",
    response_model=ReassignmentOutcomeResponse,
    responses={404: {"description": "Booking not found"}, 409: {"description": "Invalid state"}},
)
def reassign_booking(
    booking_id: str = booking_id_path(),
    payload: Optional[ReassignBookingRequest] = Body(default=None),
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> ReassignmentOutcomeResponse:
    """Replace the booking's worker, either with a chosen worker or through the cascade."""
    try:
        request = payload or ReassignBookingRequest()
        outcome = reassignment_service.reassign_booking(
            booking_id, actor, reason=request.reason, new_worker_id=request.new_worker_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReassignmentOutcomeResponse(**outcome.to_dict())
