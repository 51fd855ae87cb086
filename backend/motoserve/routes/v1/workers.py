# backend/motoserve/routes/v1/workers.py
"""
Worker availability routes - API v1

Endpoints:
    POST /{worker_id}/emergency      → Worker drops out of one booking
    PUT /{worker_id}/availability    → Flip availability; going unavailable re-homes open bookings
"""

import logging

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies.auth import get_current_actor
from ...api.dependencies.services import get_reassignment_service
from ...core.exceptions import DomainException
from ...core.principal import Actor
from ...schemas.reassignment import (
    ReassignmentOutcomeResponse,
    WorkerAvailabilityRequest,
    WorkerAvailabilityResponse,
    WorkerEmergencyRequest,
)
from ...services.reassignment_service import ReassignmentService
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workers-v1"])


@router.post(
    "/{worker_id}/emergency",
    response_model=ReassignmentOutcomeResponse,
    responses={403: {"description": "Worker not assigned to this booking"}},
)
def report_emergency(
    worker_id: str = Path(..., description="Worker ULID", pattern=ULID_PATH_PATTERN),
    payload: WorkerEmergencyRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> ReassignmentOutcomeResponse:
    """Report an emergency; the booking is re-homed or queued for manual assignment."""
    try:
        outcome = reassignment_service.report_worker_emergency(
            worker_id, payload.booking_id, payload.emergency_reason, actor
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReassignmentOutcomeResponse(**outcome.to_dict())


@router.put(
    "/{worker_id}/availability",
    response_model=WorkerAvailabilityResponse,
    responses={404: {"description": "Worker not found"}},
)
def set_availability(
    worker_id: str = Path(..., description="Worker ULID", pattern=ULID_PATH_PATTERN),
    payload: WorkerAvailabilityRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> WorkerAvailabilityResponse:
    """Set a worker available or unavailable and report the cascade summary."""
    try:
        result = reassignment_service.set_worker_availability(
            worker_id, payload.is_available, payload.reason, actor
        )
    except DomainException as e:
        handle_domain_exception(e)
    return WorkerAvailabilityResponse(is_available=payload.is_available, **result.to_dict())
