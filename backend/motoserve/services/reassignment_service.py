# backend/motoserve/services/reassignment_service.py
"""
Reassignment cascade for the motoserve booking core.

When a worker can no longer serve a booking, the booking is re-homed in
three tiers: the best quality worker of the shop, then any available
worker (tagged as a fallback), and finally the manual-assignment queue
where an admin or the shop owner picks someone by hand. Landing in the
queue is the defined degraded outcome, not an error.

Each booking is re-homed in its own lock and transaction. A cascade over
many bookings therefore commits booking by booking, and a booking that is
busy elsewhere is skipped and reported rather than failing the rest.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import booking_lock_sync
from ..core.config import Settings, settings as default_settings
from ..core.enums import SYSTEM_ACTOR_ID, RoleName
from ..core.exceptions import (
    BusinessRuleException,
    DomainException,
    ForbiddenException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from ..core.principal import Actor
from ..events.booking_events import (
    ManualAssignmentRequired,
    WorkerAssigned,
    WorkerAvailabilityChanged,
    WorkerReassigned,
)
from ..models.booking import Booking, BookingStatus
from ..models.reassignment import WorkerEmergency
from ..models.worker import Worker
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import BaseRepository
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.reassignment_repository import ReassignmentRepository
from ..repositories.worker_repository import WorkerRepository
from .base import BaseService, Clock
from .booking_lifecycle import MANUAL_QUEUE_SOURCES, apply_transition
from .booking_service import normalize_reason
from .worker_matching_service import WorkerMatchingService

logger = logging.getLogger(__name__)

OUTCOME_REASSIGNED = "reassigned"
OUTCOME_FALLBACK = "fallback"
OUTCOME_QUEUED = "queued"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"

DEFAULT_REASSIGN_REASON = "Worker unavailable"
FALLBACK_PREFIX = "Fallback assignment: "
UNKNOWN_REASON = "Unknown reason"


@dataclass(frozen=True)
class ReassignmentOutcome:
    booking_id: str
    outcome: str
    old_worker_id: Optional[str] = None
    new_worker_id: Optional[str] = None
    record_id: Optional[str] = None
    status: Optional[str] = None

    @property
    def requires_manual_assignment(self) -> bool:
        return self.outcome == OUTCOME_QUEUED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "outcome": self.outcome,
            "old_worker_id": self.old_worker_id,
            "new_worker_id": self.new_worker_id,
            "record_id": self.record_id,
            "status": self.status,
        }


@dataclass
class CascadeResult:
    worker_id: str
    outcomes: List[ReassignmentOutcome] = field(default_factory=list)

    def _count(self, outcome: str) -> int:
        return sum(1 for item in self.outcomes if item.outcome == outcome)

    @property
    def reassigned(self) -> int:
        return self._count(OUTCOME_REASSIGNED)

    @property
    def fallback(self) -> int:
        return self._count(OUTCOME_FALLBACK)

    @property
    def queued(self) -> int:
        return self._count(OUTCOME_QUEUED)

    @property
    def skipped(self) -> int:
        return self._count(OUTCOME_SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OUTCOME_FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "bookings_affected": len(self.outcomes),
            "reassigned": self.reassigned,
            "fallback": self.fallback,
            "queued": self.queued,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": [item.to_dict() for item in self.outcomes],
        }


@dataclass(frozen=True)
class ReassignmentPreview:
    booking: Booking
    previous_worker: Optional[Worker]
    previous_worker_reason: str
    suggested_worker: Optional[Worker]

    @property
    def status_message(self) -> str:
        if self.suggested_worker is not None:
            return "A replacement worker is available"
        return "No replacement worker available; the booking would be queued for manual assignment"


class ReassignmentService(BaseService):
    """Re-homes bookings whose worker dropped out, and resolves the manual queue."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        worker_repository: Optional[WorkerRepository] = None,
        reassignment_repository: Optional[ReassignmentRepository] = None,
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
        self.reassignment_repository = (
            reassignment_repository or RepositoryFactory.create_reassignment_repository(db)
        )
        self.emergency_repository: BaseRepository[WorkerEmergency] = (
            RepositoryFactory.create_base_repository(db, WorkerEmergency)
        )
        self.matching_service = matching_service or WorkerMatchingService(
            db,
            worker_repository=self.worker_repository,
            clock=self.clock,
            config=self.config,
        )

    # Helpers

    @contextmanager
    def _explicit_lock(self, booking_id: str) -> Iterator[None]:
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                raise StateConflictException(
                    "Booking is being modified by another request; please retry",
                    details={"booking_id": booking_id},
                )
            yield

    def _load_booking(self, booking_id: str, for_update: bool = True) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _load_worker(self, worker_id: str, for_update: bool = False) -> Worker:
        worker = self.worker_repository.get_by_id(worker_id, for_update=for_update)
        if worker is None:
            raise NotFoundException(f"Worker {worker_id} not found", code="WORKER_NOT_FOUND")
        return worker

    @staticmethod
    def _ensure_can_request(booking: Booking, actor: Actor) -> None:
        if actor.is_admin or actor.is_system or actor.owns_shop(booking.shop_id):
            return
        if actor.is_customer and booking.is_owned_by(actor.id):
            return
        raise ForbiddenException(
            "You do not have permission to reassign this booking",
            details={"booking_id": booking.id},
        )

    @staticmethod
    def _ensure_can_resolve_queue(actor: Actor, shop_id: Optional[str] = None) -> None:
        if actor.is_admin or actor.is_system:
            return
        if shop_id is not None and actor.owns_shop(shop_id):
            return
        if shop_id is None and actor.role == RoleName.OWNER and actor.shop_id:
            return
        raise ForbiddenException("Only admins and shop owners can manage manual assignments")

    @staticmethod
    def _ensure_reassignable(booking: Booking) -> None:
        if booking.status_enum not in MANUAL_QUEUE_SOURCES or booking.worker_id is None:
            raise StateConflictException(
                f"Bookings in status {booking.status} have no worker to replace",
                current_status=booking.status,
                details={"booking_id": booking.id},
            )

    def _attach(
        self,
        booking: Booking,
        worker: Worker,
        reason: str,
        is_fallback: bool,
        actor_id: str,
        now: datetime,
    ) -> ReassignmentOutcome:
        old_worker_id = booking.worker_id
        booking.worker_id = worker.id
        booking.updated_at = now
        record = self.reassignment_repository.create(
            booking_id=booking.id,
            old_worker_id=old_worker_id,
            new_worker_id=worker.id,
            reason=reason,
            is_fallback=is_fallback,
            reassigned_at=now,
            reassigned_by=actor_id,
        )
        self.queue_event(
            WorkerReassigned(
                booking_id=booking.id,
                old_worker_id=old_worker_id,
                new_worker_id=worker.id,
                reason=reason,
                is_fallback=is_fallback,
                reassigned_by=actor_id,
                reassigned_at=now,
            )
        )
        return ReassignmentOutcome(
            booking_id=booking.id,
            outcome=OUTCOME_FALLBACK if is_fallback else OUTCOME_REASSIGNED,
            old_worker_id=old_worker_id,
            new_worker_id=worker.id,
            record_id=record.id,
            status=booking.status,
        )

    def _rehome(
        self, booking: Booking, reason: str, actor_id: str, trigger: str, now: datetime
    ) -> ReassignmentOutcome:
        """
        Quality match, then fallback match, then the manual queue.

        Runs inside the caller's transaction with the booking locked.
        """
        old_worker_id = booking.worker_id
        excluded = [old_worker_id] if old_worker_id else []

        worker = self.matching_service.select_worker(
            booking.shop_id, min_rating=self.config.quality_min_rating, exclude_worker_ids=excluded
        )
        if worker is not None:
            outcome = self._attach(booking, worker, reason, False, actor_id, now)
        else:
            worker = self.matching_service.select_worker(
                booking.shop_id,
                min_rating=self.config.fallback_min_rating,
                exclude_worker_ids=excluded,
            )
            if worker is not None:
                outcome = self._attach(
                    booking, worker, FALLBACK_PREFIX + reason, True, actor_id, now
                )
            else:
                outcome = self._queue_for_manual_assignment(booking, reason, now)

        self.booking_repository.flush()
        prometheus_metrics.record_reassignment(trigger, outcome.outcome)
        return outcome

    def _queue_for_manual_assignment(
        self, booking: Booking, reason: str, now: datetime
    ) -> ReassignmentOutcome:
        old_worker_id = booking.worker_id
        held = apply_transition(booking, BookingStatus.PENDING_MANUAL_ASSIGNMENT, now)
        booking.held_status = held.value
        self.queue_event(
            ManualAssignmentRequired(
                booking_id=booking.id,
                shop_id=booking.shop_id,
                previous_worker_id=old_worker_id,
                reason=reason,
                queued_at=now,
            )
        )
        self.logger.warning(
            "URGENT: no worker available, booking queued for manual assignment",
            extra={
                "booking_id": booking.id,
                "shop_id": booking.shop_id,
                "previous_worker_id": old_worker_id,
                "held_status": held.value,
            },
        )
        return ReassignmentOutcome(
            booking_id=booking.id,
            outcome=OUTCOME_QUEUED,
            old_worker_id=old_worker_id,
            status=booking.status,
        )

    # Triggers

    @BaseService.measure_operation("reassign_booking")
    def reassign_booking(
        self,
        booking_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        new_worker_id: Optional[str] = None,
    ) -> ReassignmentOutcome:
        """
        Explicit reassignment requested by the customer, the shop owner or an admin.

        With new_worker_id the chosen worker is validated and attached
        directly; otherwise the cascade picks one.
        """
        cleaned_reason = normalize_reason(reason or DEFAULT_REASSIGN_REASON)
        now = self.now()

        with self._explicit_lock(booking_id):
            with self.transaction():
                booking = self._load_booking(booking_id)
                self._ensure_can_request(booking, actor)
                self._ensure_reassignable(booking)

                if new_worker_id is None:
                    outcome = self._rehome(booking, cleaned_reason, actor.id, "explicit", now)
                else:
                    worker = self._claim_chosen_worker(booking, new_worker_id)
                    outcome = self._attach(booking, worker, cleaned_reason, False, actor.id, now)
                    self.booking_repository.flush()
                    prometheus_metrics.record_reassignment("explicit", outcome.outcome)

        self.log_operation(
            "reassign_booking", booking_id=booking_id, outcome=outcome.outcome, actor_id=actor.id
        )
        return outcome

    def _claim_chosen_worker(self, booking: Booking, worker_id: str) -> Worker:
        if worker_id == booking.worker_id:
            raise ValidationException(
                "The new worker must differ from the current worker",
                details={"worker_id": worker_id},
            )
        worker = self._load_worker(worker_id)
        if worker.shop_id != booking.shop_id:
            raise ValidationException(
                "The new worker must belong to the booking's shop",
                details={"worker_id": worker_id, "shop_id": booking.shop_id},
            )
        claimed = self.matching_service.claim(worker_id, booking.shop_id)
        if claimed is None:
            raise BusinessRuleException(
                "The selected worker is not available",
                code="WORKER_UNAVAILABLE",
                details={"worker_id": worker_id},
            )
        return claimed

    @BaseService.measure_operation("report_worker_emergency")
    def report_worker_emergency(
        self, worker_id: str, booking_id: str, reason: Optional[str], actor: Actor
    ) -> ReassignmentOutcome:
        """
        The assigned worker drops out of one booking.

        The worker is marked unavailable with the emergency reason and the
        report is kept as a WorkerEmergency row. Only the named booking is
        re-homed; their other bookings are left alone.
        """
        cleaned_reason = normalize_reason(reason, field="emergency reason")
        if not (actor.is_admin or (actor.is_worker and actor.id == worker_id)):
            raise ForbiddenException("Only the worker themself can report an emergency")
        now = self.now()

        with self._explicit_lock(booking_id):
            with self.transaction():
                booking = self._load_booking(booking_id)
                if booking.worker_id != worker_id:
                    raise ForbiddenException(
                        "Worker not assigned to this booking",
                        details={"booking_id": booking_id, "worker_id": worker_id},
                    )
                self._ensure_reassignable(booking)

                worker = self._load_worker(worker_id, for_update=True)
                worker.mark_unavailable(cleaned_reason)
                self.worker_repository.flush()
                self.emergency_repository.create(
                    worker_id=worker_id,
                    booking_id=booking_id,
                    reason=cleaned_reason,
                    emergency_at=now,
                    reported_by=actor.id,
                )
                self.queue_event(
                    WorkerAvailabilityChanged(
                        worker_id=worker.id,
                        shop_id=worker.shop_id,
                        is_available=False,
                        reason=worker.unavailable_reason,
                        changed_at=now,
                    )
                )

                outcome = self._rehome(
                    booking, f"Worker emergency: {cleaned_reason}", actor.id, "emergency", now
                )

        self.log_operation(
            "report_worker_emergency",
            booking_id=booking_id,
            worker_id=worker_id,
            outcome=outcome.outcome,
        )
        return outcome

    @BaseService.measure_operation("set_worker_availability")
    def set_worker_availability(
        self,
        worker_id: str,
        available: bool,
        reason: Optional[str],
        actor: Actor,
    ) -> CascadeResult:
        """
        Flip a worker's availability.

        Going unavailable re-homes every open booking the worker holds,
        oldest first. Each booking commits on its own; a booking locked by
        another request is skipped, and one that fails is reported as failed
        without stopping the rest.
        """
        now = self.now()
        with self.transaction():
            worker = self._load_worker(worker_id, for_update=True)
            if not (
                actor.is_admin
                or actor.is_system
                or (actor.is_worker and actor.id == worker_id)
                or actor.owns_shop(worker.shop_id)
            ):
                raise ForbiddenException("You cannot change this worker's availability")

            if available:
                worker.mark_available()
            else:
                worker.mark_unavailable(reason)
            self.worker_repository.flush()
            self.queue_event(
                WorkerAvailabilityChanged(
                    worker_id=worker.id,
                    shop_id=worker.shop_id,
                    is_available=worker.is_available,
                    reason=worker.unavailable_reason,
                    changed_at=now,
                )
            )

        result = CascadeResult(worker_id=worker_id)
        if available:
            return result

        cascade_reason = f"Worker unavailable: {(reason or '').strip() or 'Unknown'}"
        open_bookings = self.booking_repository.get_open_for_worker(worker_id)
        booking_ids = [booking.id for booking in open_bookings]
        for booking_id in booking_ids:
            try:
                outcome = self._rehome_cascade_member(booking_id, worker_id, cascade_reason, now)
            except DomainException as e:
                prometheus_metrics.record_reassignment("cascade", OUTCOME_FAILED)
                self.logger.error(
                    f"Cascade failed to re-home booking {booking_id}: {str(e)}",
                    extra={"booking_id": booking_id, "worker_id": worker_id},
                )
                outcome = ReassignmentOutcome(
                    booking_id=booking_id, outcome=OUTCOME_FAILED, old_worker_id=worker_id
                )
            result.outcomes.append(outcome)

        self.logger.info(
            "Worker unavailability cascade finished",
            extra={"worker_id": worker_id, **result.to_dict()},
        )
        return result

    def _rehome_cascade_member(
        self, booking_id: str, worker_id: str, reason: str, now: datetime
    ) -> ReassignmentOutcome:
        with booking_lock_sync(booking_id) as acquired:
            if not acquired:
                prometheus_metrics.record_reassignment("cascade", OUTCOME_SKIPPED)
                self.logger.warning(
                    "Booking busy during cascade, skipped",
                    extra={"booking_id": booking_id, "worker_id": worker_id},
                )
                return ReassignmentOutcome(
                    booking_id=booking_id, outcome=OUTCOME_SKIPPED, old_worker_id=worker_id
                )
            with self.transaction():
                booking = self._load_booking(booking_id)
                # Re-check under the lock: the booking may have moved on since the scan
                if booking.worker_id != worker_id or booking.status_enum not in MANUAL_QUEUE_SOURCES:
                    return ReassignmentOutcome(
                        booking_id=booking_id,
                        outcome=OUTCOME_SKIPPED,
                        old_worker_id=worker_id,
                        status=booking.status,
                    )
                return self._rehome(booking, reason, SYSTEM_ACTOR_ID, "cascade", now)

    # Read-only preview and the manual queue

    @BaseService.measure_operation("preview_reassignment")
    def preview_reassignment(self, booking_id: str, actor: Actor) -> ReassignmentPreview:
        """Who held the booking, why they dropped out and who would take over."""
        booking = self._load_booking(booking_id, for_update=False)
        self._ensure_can_request(booking, actor)

        previous_worker = None
        previous_reason = UNKNOWN_REASON
        if booking.worker_id:
            previous_worker = self.worker_repository.get_by_id(booking.worker_id)
            if previous_worker is not None and previous_worker.unavailable_reason:
                previous_reason = previous_worker.unavailable_reason

        candidates = self.matching_service.find_candidates(
            booking.shop_id,
            exclude_worker_ids=[booking.worker_id] if booking.worker_id else [],
            min_rating=self.config.quality_min_rating,
            limit=1,
        )
        return ReassignmentPreview(
            booking=booking,
            previous_worker=previous_worker,
            previous_worker_reason=previous_reason,
            suggested_worker=candidates[0] if candidates else None,
        )

    @BaseService.measure_operation("get_pending_manual_assignments")
    def get_pending_manual_assignments(self, actor: Actor) -> List[Booking]:
        """Queued bookings, oldest first. Owners only see their own shop."""
        self._ensure_can_resolve_queue(actor)
        shop_id = None if (actor.is_admin or actor.is_system) else actor.shop_id
        return self.booking_repository.get_pending_manual_assignments(shop_id=shop_id)

    @BaseService.measure_operation("manually_assign")
    def manually_assign(self, booking_id: str, worker_id: str, actor: Actor) -> ReassignmentOutcome:
        """
        Resolve a queued booking by hand.

        The booking returns to the status it held when it was queued and a
        ReassignmentRecord is appended.
        """
        now = self.now()
        with self._explicit_lock(booking_id):
            with self.transaction():
                booking = self._load_booking(booking_id)
                self._ensure_can_resolve_queue(actor, booking.shop_id)
                if booking.status_enum != BookingStatus.PENDING_MANUAL_ASSIGNMENT:
                    raise StateConflictException(
                        "Only bookings awaiting manual assignment can be assigned by hand",
                        current_status=booking.status,
                        details={"booking_id": booking_id},
                    )

                worker = self._load_worker(worker_id)
                if worker.shop_id != booking.shop_id:
                    raise ValidationException(
                        "The worker must belong to the booking's shop",
                        details={"worker_id": worker_id, "shop_id": booking.shop_id},
                    )
                claimed = self.matching_service.claim(worker_id, booking.shop_id)
                if claimed is None:
                    raise BusinessRuleException(
                        "The selected worker is not available",
                        code="WORKER_UNAVAILABLE",
                        details={"worker_id": worker_id},
                    )

                restored = BookingStatus(booking.held_status or BookingStatus.ASSIGNED.value)
                outcome = self._attach(
                    booking, claimed, "Manual assignment", False, actor.id, now
                )
                apply_transition(booking, restored, now, stamp=False)
                if booking.assigned_at is None:
                    booking.assigned_at = now
                booking.held_status = None
                outcome = replace(outcome, status=booking.status)
                self.booking_repository.flush()
                self.queue_event(
                    WorkerAssigned(booking_id=booking.id, worker_id=claimed.id, assigned_at=now)
                )
                prometheus_metrics.record_reassignment("manual", outcome.outcome)

        self.log_operation(
            "manually_assign", booking_id=booking_id, worker_id=worker_id, actor_id=actor.id
        )
        return outcome
