"""Repository layer for the motoserve booking core."""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .cancellation_repository import CancellationRecordRepository, CancellationTokenLedgerRepository
from .factory import RepositoryFactory
from .reassignment_repository import ReassignmentRepository
from .worker_repository import WorkerRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "CancellationRecordRepository",
    "CancellationTokenLedgerRepository",
    "ReassignmentRepository",
    "RepositoryFactory",
    "WorkerRepository",
]
