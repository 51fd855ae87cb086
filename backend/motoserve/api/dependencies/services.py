# backend/motoserve/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own session so every write of an
operation lands in the same transaction.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_service import BookingService
from ...services.cancellation_token_service import CancellationTokenService
from ...services.reassignment_service import ReassignmentService
from .database import get_db


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Get BookingService instance with its repositories and ledger."""
    return BookingService(db)


def get_reassignment_service(db: Session = Depends(get_db)) -> ReassignmentService:
    """Get ReassignmentService instance for cascades and the manual queue."""
    return ReassignmentService(db)


def get_cancellation_token_service(db: Session = Depends(get_db)) -> CancellationTokenService:
    """Get CancellationTokenService instance for balance and history reads."""
    return CancellationTokenService(db)
