# backend/motoserve/services/booking_service.py
"""
Booking Service for the motoserve booking core.

Owns the booking lifecycle: confirmation, first worker assignment, the
worker-driven progress steps and customer cancellation. Every mutating
operation holds the per-booking lock, loads the row FOR UPDATE and commits
booking state together with its side records in one transaction. Events
are published only after that commit.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
import math
from typing import Iterator, Optional, Union

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    ForbiddenException,
    InsufficientTokensException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from ..core.principal import Actor
from ..events.booking_events import (
    BookingAdvanced,
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    WorkerAssigned,
)
from ..models.booking import Booking, BookingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.cancellation_repository import CancellationRecordRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.worker_repository import WorkerRepository
from . import refund_calculator
from .base import BaseService, Clock
from .booking_lifecycle import CANCELLABLE, WORKER_DRIVEN_TARGETS, apply_transition
from .cancellation_token_service import CancellationTokenService
from .worker_matching_service import WorkerMatchingService

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


@dataclass(frozen=True)
class AssignmentResult:
    booking: Booking
    worker_id: Optional[str]

    @property
    def assigned(self) -> bool:
        return self.worker_id is not None


@dataclass(frozen=True)
class CancellationResult:
    booking: Booking
    cancellation_id: str
    tokens_deducted: int
    tokens_remaining: int
    refund_amount: Decimal
    refund_percentage: int


def normalize_reason(reason: Optional[str], field: str = "reason") -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationException(f"A {field} is required", details={"field": field})
    if len(cleaned) > MAX_REASON_LENGTH:
        raise ValidationException(
            f"The {field} must be at most {MAX_REASON_LENGTH} characters",
            details={"field": field, "max_length": MAX_REASON_LENGTH},
        )
    return cleaned


class BookingService(BaseService):
    """
    Service layer for booking lifecycle operations.

    Repositories and collaborating services are injectable; by default they
    are built from the same session so every write shares one transaction.
    """

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        worker_repository: Optional[WorkerRepository] = None,
        cancellation_record_repository: Optional[CancellationRecordRepository] = None,
        token_service: Optional[CancellationTokenService] = None,
        matching_service: Optional[WorkerMatchingService] = None,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock=clock)
        self.config = config or default_settings
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.worker_repository = worker_repository or RepositoryFactory.create_worker_repository(db)
        self.cancellation_record_repository = (
            cancellation_record_repository
            or RepositoryFactory.create_cancellation_record_repository(db)
        )
        self.token_service = token_service or CancellationTokenService(
            db, clock=self.clock, config=self.config
        )
        self.matching_service = matching_service or WorkerMatchingService(
            db,
            worker_repository=self.worker_repository,
            clock=self.clock,
            config=self.config,
        )

    # Shared helpers

    @contextmanager
    def _booking_lock(self, booking_id: str) -> Iterator[None]:
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise StateConflictException(
                    "Booking is being modified by another request; please retry",
                    details={"booking_id": booking_id},
                )
            yield

    def _load_for_update(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_for_update(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _ensure_can_manage(self, booking: Booking, actor: Actor) -> None:
        """Owning customer, the shop's owner, an admin or the system."""
        if actor.is_admin or actor.is_system or actor.owns_shop(booking.shop_id):
            return
        if actor.is_customer and booking.is_owned_by(actor.id):
            return
        raise ForbiddenException(
            "You do not have permission to manage this booking",
            details={"booking_id": booking.id},
        )

    def _ensure_can_view(self, booking: Booking, actor: Actor) -> None:
        if actor.is_worker and booking.worker_id == actor.id:
            return
        self._ensure_can_manage(booking, actor)

    # Operations

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str, actor: Actor) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        self._ensure_can_view(booking, actor)
        return booking

    @BaseService.measure_operation("confirm_booking")
    def confirm(self, booking_id: str, actor: Actor) -> Booking:
        """CREATED -> CONFIRMED."""
        now = self.now()
        with self._booking_lock(booking_id):
            with self.transaction():
                booking = self._load_for_update(booking_id)
                self._ensure_can_manage(booking, actor)
                apply_transition(booking, BookingStatus.CONFIRMED, now)
                self.booking_repository.flush()
                self.queue_event(
                    BookingConfirmed(booking_id=booking.id, shop_id=booking.shop_id, confirmed_at=now)
                )

        self.log_operation("confirm_booking", booking_id=booking_id, actor_id=actor.id)
        return booking

    @BaseService.measure_operation("assign_worker")
    def assign(self, booking_id: str, actor: Actor) -> AssignmentResult:
        """
        Attach the best quality worker to a confirmed booking.

        When no worker qualifies the booking stays CONFIRMED and the result
        carries worker_id=None; the caller decides whether to try again.
        """
        now = self.now()
        with self._booking_lock(booking_id):
            with self.transaction():
                booking = self._load_for_update(booking_id)
                self._ensure_can_manage(booking, actor)
                # PENDING_MANUAL_ASSIGNMENT also leads to ASSIGNED, but only by hand
                if booking.status_enum != BookingStatus.CONFIRMED:
                    raise StateConflictException(
                        "Only confirmed bookings can be assigned",
                        current_status=booking.status,
                    )

                worker = self.matching_service.select_worker(
                    booking.shop_id, min_rating=self.config.quality_min_rating
                )
                if worker is None:
                    self.logger.info(
                        "No quality worker available; booking stays confirmed",
                        extra={"booking_id": booking_id, "shop_id": booking.shop_id},
                    )
                    return AssignmentResult(booking=booking, worker_id=None)

                booking.worker_id = worker.id
                apply_transition(booking, BookingStatus.ASSIGNED, now)
                self.booking_repository.flush()
                self.queue_event(
                    WorkerAssigned(booking_id=booking.id, worker_id=worker.id, assigned_at=now)
                )

        self.log_operation("assign_worker", booking_id=booking_id, worker_id=worker.id)
        return AssignmentResult(booking=booking, worker_id=worker.id)

    @BaseService.measure_operation("advance_booking")
    def advance(
        self, booking_id: str, actor: Actor, target: Union[BookingStatus, str]
    ) -> Booking:
        """
        Move a booking one step along ASSIGNED -> ARRIVED -> IN_PROGRESS -> COMPLETED.

        Only the assigned worker may advance. Completion adds the job and its
        duration to the worker's running totals.
        """
        try:
            target_status = BookingStatus(target)
        except ValueError:
            raise ValidationException(
                f"Unknown booking status: {target}", details={"target_status": str(target)}
            ) from None
        if target_status not in WORKER_DRIVEN_TARGETS:
            raise ValidationException(
                f"Bookings cannot be advanced to {target_status.value}",
                details={"target_status": target_status.value},
            )

        now = self.now()
        with self._booking_lock(booking_id):
            with self.transaction():
                booking = self._load_for_update(booking_id)
                if not (actor.is_worker and booking.worker_id == actor.id):
                    raise ForbiddenException(
                        "Only the assigned worker can update this booking",
                        details={"booking_id": booking_id},
                    )
                previous = apply_transition(booking, target_status, now)
                self.queue_event(
                    BookingAdvanced(
                        booking_id=booking.id,
                        worker_id=booking.worker_id,
                        from_status=previous.value,
                        to_status=target_status.value,
                        occurred_at=now,
                    )
                )
                if target_status == BookingStatus.COMPLETED:
                    service_minutes = self._service_minutes(booking.started_at, now)
                    self.worker_repository.record_completed_job(booking.worker_id, service_minutes)
                    self.queue_event(
                        BookingCompleted(
                            booking_id=booking.id,
                            worker_id=booking.worker_id,
                            completed_at=now,
                            service_minutes=service_minutes,
                        )
                    )
                self.booking_repository.flush()

        self.log_operation(
            "advance_booking", booking_id=booking_id, to_status=target_status.value
        )
        return booking

    @staticmethod
    def _service_minutes(started_at: Optional[datetime], completed_at: datetime) -> int:
        if started_at is None:
            return 0
        return max(math.floor((completed_at - started_at).total_seconds() / 60), 0)

    @BaseService.measure_operation("cancel_booking")
    def cancel(self, booking_id: str, actor: Actor, reason: Optional[str]) -> CancellationResult:
        """
        Cancel a booking on behalf of its customer.

        The token charge, the refund, the status change and the cancellation
        record commit together or not at all.

        Raises:
            ValidationException: Missing or overlong reason
            NotFoundException: Unknown booking
            ForbiddenException: Actor is not the booking's customer
            StateConflictException: Booking can no longer be cancelled
            InsufficientTokensException: Not enough tokens this month
        """
        cleaned_reason = normalize_reason(reason)
        now = self.now()

        with self._booking_lock(booking_id):
            try:
                with self.transaction():
                    booking = self._load_for_update(booking_id)
                    if not (actor.is_customer and booking.is_owned_by(actor.id)):
                        raise ForbiddenException(
                            "Only the customer who made the booking can cancel it",
                            details={"booking_id": booking_id},
                        )
                    status_at_cancel = booking.status_enum
                    if status_at_cancel not in CANCELLABLE:
                        raise StateConflictException(
                            f"Bookings in status {status_at_cancel.value} cannot be cancelled",
                            current_status=status_at_cancel.value,
                            details={"booking_id": booking_id},
                        )

                    charge = self.token_service.charge_cancellation(booking.customer_id, now)

                    percentage = refund_calculator.refund_percentage(
                        status_at_cancel,
                        refund_calculator.minutes_to_service(booking.scheduled_at, now),
                    )
                    amount = refund_calculator.refund_amount(booking.base_cost, percentage)

                    record = self.cancellation_record_repository.create(
                        customer_id=booking.customer_id,
                        booking_id=booking.id,
                        cancelled_at=now,
                        tokens_deducted=charge.tokens_deducted,
                        refund_amount=amount,
                        refund_percentage=percentage,
                        reason=cleaned_reason,
                    )

                    previous_worker_id = booking.worker_id
                    apply_transition(booking, BookingStatus.CANCELLED, now)
                    booking.cancellation_id = record.id
                    self.booking_repository.flush()

                    self.queue_event(
                        BookingCancelled(
                            booking_id=booking.id,
                            customer_id=booking.customer_id,
                            cancellation_id=record.id,
                            cancelled_at=now,
                            tokens_deducted=charge.tokens_deducted,
                            refund_amount=amount,
                            refund_percentage=percentage,
                            previous_worker_id=previous_worker_id,
                        )
                    )
            except InsufficientTokensException:
                prometheus_metrics.record_cancellation("insufficient_tokens")
                raise

        prometheus_metrics.record_cancellation("success", tokens_charged=charge.tokens_deducted)
        self.logger.info(
            "Booking cancelled",
            extra={
                "booking_id": booking_id,
                "customer_id": booking.customer_id,
                "tokens_deducted": charge.tokens_deducted,
                "refund_amount": str(amount),
                "refund_percentage": percentage,
            },
        )
        return CancellationResult(
            booking=booking,
            cancellation_id=record.id,
            tokens_deducted=charge.tokens_deducted,
            tokens_remaining=charge.tokens_remaining,
            refund_amount=amount,
            refund_percentage=percentage,
        )
