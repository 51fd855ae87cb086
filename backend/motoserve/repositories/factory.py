# backend/motoserve/repositories/factory.py
"""
Repository Factory for the motoserve booking core.

Provides centralized creation of repository instances so services receive
their data access through one seam that tests can replace.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .cancellation_repository import (
        CancellationRecordRepository,
        CancellationTokenLedgerRepository,
    )
    from .reassignment_repository import ReassignmentRepository
    from .worker_repository import WorkerRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_worker_repository(db: Session) -> "WorkerRepository":
        """Create repository for worker matching and availability."""
        from .worker_repository import WorkerRepository

        return WorkerRepository(db)

    @staticmethod
    def create_ledger_repository(db: Session) -> "CancellationTokenLedgerRepository":
        """Create repository for the cancellation token ledger."""
        from .cancellation_repository import CancellationTokenLedgerRepository

        return CancellationTokenLedgerRepository(db)

    @staticmethod
    def create_cancellation_record_repository(db: Session) -> "CancellationRecordRepository":
        """Create repository for cancellation records."""
        from .cancellation_repository import CancellationRecordRepository

        return CancellationRecordRepository(db)

    @staticmethod
    def create_reassignment_repository(db: Session) -> "ReassignmentRepository":
        """Create repository for the reassignment audit trail."""
        from .reassignment_repository import ReassignmentRepository

        return ReassignmentRepository(db)
