# backend/motoserve/repositories/booking_repository.py
"""
Booking Repository for the motoserve booking core.

This repository handles:
- Locked loads for state-machine transitions
- Open bookings held by a worker (reassignment cascade input)
- The manual-assignment queue
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking import OPEN_WORKER_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Load a booking under a row lock for a status transition."""
        return self.get_by_id(booking_id, for_update=True)

    def get_open_for_worker(self, worker_id: str) -> List[Booking]:
        """
        Bookings the worker is currently responsible for.

        Ordered oldest-created first; the cascade re-homes them in this order.
        """
        query = (
            self._build_query()
            .filter(
                Booking.worker_id == worker_id,
                Booking.status.in_([status.value for status in OPEN_WORKER_STATUSES]),
            )
            .order_by(Booking.created_at.asc(), Booking.id.asc())
        )
        return self._execute_query(query)

    def get_pending_manual_assignments(self, shop_id: Optional[str] = None) -> List[Booking]:
        """Manual-assignment queue, oldest first, optionally scoped to one shop."""
        query = self._build_query().filter(
            Booking.status == BookingStatus.PENDING_MANUAL_ASSIGNMENT.value
        )
        if shop_id is not None:
            query = query.filter(Booking.shop_id == shop_id)
        return self._execute_query(query.order_by(Booking.created_at.asc(), Booking.id.asc()))
