# backend/motoserve/routes/v1/admin.py
"""
Manual assignment queue routes - API v1

Endpoints:
    GET /manual-assignments                 → Queued bookings, oldest first
    POST /manual-assignments/{booking_id}   → Attach a worker by hand
"""

import logging

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies.auth import get_current_actor
from ...api.dependencies.services import get_reassignment_service
from ...core.exceptions import DomainException
from ...core.principal import Actor
from ...schemas.reassignment import (
    ManualAssignmentRequest,
    PendingManualAssignment,
    PendingManualAssignmentList,
    ReassignmentOutcomeResponse,
)
from ...services.reassignment_service import ReassignmentService
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-v1"])


@router.get("/manual-assignments", response_model=PendingManualAssignmentList)
def list_manual_assignments(
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> PendingManualAssignmentList:
    try:
        bookings = reassignment_service.get_pending_manual_assignments(actor)
    except DomainException as e:
        handle_domain_exception(e)
    items = [PendingManualAssignment.model_validate(booking) for booking in bookings]
    return PendingManualAssignmentList(bookings=items, count=len(items))


@router.post(
    "/manual-assignments/{booking_id}",
    response_model=ReassignmentOutcomeResponse,
    responses={409: {"description": "Booking is not awaiting manual assignment"}},
)
def manually_assign(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    payload: ManualAssignmentRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    reassignment_service: ReassignmentService = Depends(get_reassignment_service),
) -> ReassignmentOutcomeResponse:
    try:
        outcome = reassignment_service.manually_assign(booking_id, payload.worker_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return ReassignmentOutcomeResponse(**outcome.to_dict())
