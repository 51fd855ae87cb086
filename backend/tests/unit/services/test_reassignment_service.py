# backend/tests/unit/services/test_reassignment_service.py
"""
Unit tests for the reassignment cascade and the manual-assignment queue.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from motoserve.core.booking_lock import booking_lock_sync
from motoserve.core.enums import SYSTEM_ACTOR_ID, RoleName
from motoserve.core.exceptions import (
    BusinessRuleException,
    ForbiddenException,
    RepositoryException,
    StateConflictException,
    ValidationException,
)
from motoserve.core.principal import Actor
from motoserve.core.ulid_helper import generate_ulid
from motoserve.events.booking_events import (
    ManualAssignmentRequired,
    WorkerAssigned,
    WorkerAvailabilityChanged,
    WorkerReassigned,
)
from motoserve.models import BookingStatus, ReassignmentRecord, WorkerEmergency
from motoserve.services.reassignment_service import (
    OUTCOME_FAILED,
    OUTCOME_QUEUED,
    OUTCOME_REASSIGNED,
    OUTCOME_SKIPPED,
    ReassignmentService,
)


@pytest.fixture
def reassignment_service(db, clock):
    return ReassignmentService(db, clock=clock)


def _records(db, booking_id):
    return db.query(ReassignmentRecord).filter_by(booking_id=booking_id).all()


class TestUnavailabilityCascade:
    def test_booking_moves_to_the_best_quality_worker(
        self, db, reassignment_service, make_worker, make_booking, admin, now, published_events
    ):
        leaving = make_worker(rating=4.9)
        make_worker(rating=3.9)
        best_left = make_worker(rating=4.6)
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=leaving.id)

        result = reassignment_service.set_worker_availability(leaving.id, False, "sick", admin)

        assert result.reassigned == 1
        assert booking.worker_id == best_left.id
        assert booking.status == BookingStatus.ASSIGNED.value
        assert leaving.is_available is False
        assert leaving.unavailable_reason == "sick"

        (record,) = _records(db, booking.id)
        assert record.old_worker_id == leaving.id
        assert record.new_worker_id == best_left.id
        assert record.reason == "Worker unavailable: sick"
        assert record.is_fallback is False
        assert record.reassigned_by == SYSTEM_ACTOR_ID
        assert record.reassigned_at == now

        kinds = [type(e) for e in published_events]
        assert kinds == [WorkerAvailabilityChanged, WorkerReassigned]

    def test_fallback_worker_is_tagged(
        self, db, reassignment_service, make_worker, make_booking, admin
    ):
        leaving = make_worker(rating=4.9)
        junior = make_worker(rating=2.1)
        booking = make_booking(status=BookingStatus.ARRIVED, worker_id=leaving.id)

        result = reassignment_service.set_worker_availability(leaving.id, False, "sick", admin)

        assert result.fallback == 1
        assert booking.worker_id == junior.id
        assert booking.status == BookingStatus.ARRIVED.value
        (record,) = _records(db, booking.id)
        assert record.is_fallback is True
        assert record.reason == "Fallback assignment: Worker unavailable: sick"

    def test_single_worker_shop_queues_every_open_booking(
        self, db, reassignment_service, make_worker, make_booking, as_worker, now, published_events
    ):
        only = make_worker()
        older = make_booking(
            status=BookingStatus.IN_PROGRESS,
            worker_id=only.id,
            started_at=now - timedelta(minutes=30),
            created_at=now - timedelta(days=3),
        )
        newer = make_booking(
            status=BookingStatus.ASSIGNED, worker_id=only.id, created_at=now - timedelta(days=1)
        )

        result = reassignment_service.set_worker_availability(only.id, False, None, as_worker(only))

        assert [o.booking_id for o in result.outcomes] == [older.id, newer.id]
        assert result.queued == 2
        for booking, held in ((older, "IN_PROGRESS"), (newer, "ASSIGNED")):
            assert booking.status == BookingStatus.PENDING_MANUAL_ASSIGNMENT.value
            assert booking.held_status == held
            assert booking.worker_id is None
            assert _records(db, booking.id) == []
        assert older.started_at == now - timedelta(minutes=30)
        assert only.unavailable_reason == "unknown"

        queued_events = [e for e in published_events if isinstance(e, ManualAssignmentRequired)]
        assert [e.booking_id for e in queued_events] == [older.id, newer.id]
        assert queued_events[0].priority == "urgent"
        assert queued_events[0].reason == "Worker unavailable: Unknown"

    def test_finished_and_cancelled_bookings_are_left_alone(
        self, reassignment_service, make_worker, make_booking, admin
    ):
        leaving = make_worker()
        make_worker()
        done = make_booking(status=BookingStatus.COMPLETED, worker_id=leaving.id)

        result = reassignment_service.set_worker_availability(leaving.id, False, "vacation", admin)

        assert result.outcomes == []
        assert done.worker_id == leaving.id
        assert done.status == BookingStatus.COMPLETED.value

    def test_busy_booking_is_skipped_and_the_rest_continue(
        self, reassignment_service, make_worker, make_booking, admin, now
    ):
        leaving = make_worker()
        replacement = make_worker(rating=4.0)
        busy = make_booking(
            status=BookingStatus.ASSIGNED, worker_id=leaving.id, created_at=now - timedelta(days=2)
        )
        free = make_booking(
            status=BookingStatus.ASSIGNED, worker_id=leaving.id, created_at=now - timedelta(days=1)
        )

        with booking_lock_sync(busy.id):
            result = reassignment_service.set_worker_availability(leaving.id, False, "sick", admin)

        outcomes = {o.booking_id: o.outcome for o in result.outcomes}
        assert outcomes == {busy.id: OUTCOME_SKIPPED, free.id: OUTCOME_REASSIGNED}
        assert busy.worker_id == leaving.id
        assert free.worker_id == replacement.id
        assert result.to_dict()["bookings_affected"] == 2

    def test_failed_booking_does_not_stop_the_cascade(
        self, db, reassignment_service, make_worker, make_booking, admin, now, caplog
    ):
        leaving = make_worker()
        replacement = make_worker(rating=4.0)
        first = make_booking(
            status=BookingStatus.ASSIGNED, worker_id=leaving.id, created_at=now - timedelta(days=2)
        )
        second = make_booking(
            status=BookingStatus.ASSIGNED, worker_id=leaving.id, created_at=now - timedelta(days=1)
        )
        repository = reassignment_service.reassignment_repository
        real_create = repository.create
        calls = []

        def create_failing_once(**kwargs):
            calls.append(kwargs["booking_id"])
            if len(calls) == 1:
                raise RepositoryException("disk full")
            return real_create(**kwargs)

        with patch.object(repository, "create", side_effect=create_failing_once):
            result = reassignment_service.set_worker_availability(leaving.id, False, "sick", admin)

        outcomes = {o.booking_id: o.outcome for o in result.outcomes}
        assert outcomes == {first.id: OUTCOME_FAILED, second.id: OUTCOME_REASSIGNED}
        assert result.failed == 1
        assert result.to_dict()["failed"] == 1
        assert first.worker_id == leaving.id
        assert first.status == BookingStatus.ASSIGNED.value
        assert second.worker_id == replacement.id
        assert leaving.is_available is False
        assert _records(db, first.id) == []
        assert "Cascade failed to re-home booking" in caplog.text

    def test_going_available_runs_no_cascade(
        self, reassignment_service, make_worker, make_booking, owner
    ):
        worker = make_worker(is_available=False, unavailable_reason="sick")

        result = reassignment_service.set_worker_availability(worker.id, True, None, owner)

        assert result.outcomes == []
        assert worker.is_available is True
        assert worker.unavailable_reason is None

    def test_other_workers_cannot_flip_availability(
        self, reassignment_service, make_worker, as_worker, customer
    ):
        worker = make_worker()
        with pytest.raises(ForbiddenException):
            reassignment_service.set_worker_availability(worker.id, False, "x", as_worker(make_worker()))
        with pytest.raises(ForbiddenException):
            reassignment_service.set_worker_availability(worker.id, False, "x", customer)
        assert worker.is_available is True


class TestEmergency:
    def test_worker_drops_out_of_one_booking(
        self, db, reassignment_service, make_worker, make_booking, as_worker, now
    ):
        worker = make_worker(rating=4.9)
        replacement = make_worker(rating=4.2)
        booking = make_booking(status=BookingStatus.ARRIVED, worker_id=worker.id)
        other = make_booking(status=BookingStatus.ASSIGNED, worker_id=worker.id)

        outcome = reassignment_service.report_worker_emergency(
            worker.id, booking.id, "Flat tire", as_worker(worker)
        )

        assert outcome.outcome == OUTCOME_REASSIGNED
        assert booking.worker_id == replacement.id
        assert worker.is_available is False
        assert worker.unavailable_reason == "Flat tire"
        # Only the named booking is re-homed
        assert other.worker_id == worker.id

        (record,) = _records(db, booking.id)
        assert record.reason == "Worker emergency: Flat tire"
        assert record.reassigned_by == worker.id

        (emergency,) = db.query(WorkerEmergency).filter_by(worker_id=worker.id).all()
        assert emergency.booking_id == booking.id
        assert emergency.reason == "Flat tire"
        assert emergency.reported_by == worker.id
        assert emergency.emergency_at == now

    def test_worker_not_assigned_to_the_booking(
        self, db, reassignment_service, make_worker, make_booking, as_worker
    ):
        worker = make_worker()
        holder = make_worker()
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=holder.id)

        with pytest.raises(ForbiddenException) as exc_info:
            reassignment_service.report_worker_emergency(
                worker.id, booking.id, "Flat tire", as_worker(worker)
            )
        assert exc_info.value.message == "Worker not assigned to this booking"
        assert worker.is_available is True
        assert db.query(WorkerEmergency).count() == 0

    def test_reason_is_required(self, reassignment_service, make_worker, make_booking, as_worker):
        worker = make_worker()
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=worker.id)
        with pytest.raises(ValidationException):
            reassignment_service.report_worker_emergency(worker.id, booking.id, "  ", as_worker(worker))

    def test_no_replacement_queues_the_booking(
        self, reassignment_service, make_worker, make_booking, as_worker
    ):
        worker = make_worker()
        booking = make_booking(status=BookingStatus.IN_PROGRESS, worker_id=worker.id)

        outcome = reassignment_service.report_worker_emergency(
            worker.id, booking.id, "Accident", as_worker(worker)
        )

        assert outcome.outcome == OUTCOME_QUEUED
        assert outcome.requires_manual_assignment
        assert booking.status == BookingStatus.PENDING_MANUAL_ASSIGNMENT.value
        assert booking.held_status == BookingStatus.IN_PROGRESS.value


class TestExplicitReassignment:
    def test_customer_requests_a_new_worker(
        self, db, reassignment_service, make_worker, make_booking, customer
    ):
        current = make_worker(rating=4.9)
        replacement = make_worker(rating=4.0)
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        outcome = reassignment_service.reassign_booking(booking.id, customer)

        assert outcome.outcome == OUTCOME_REASSIGNED
        assert outcome.new_worker_id == replacement.id
        (record,) = _records(db, booking.id)
        assert record.reason == "Worker unavailable"
        assert record.reassigned_by == customer.id
        # An explicit hand-off does not touch the old worker's availability
        assert current.is_available is True

    def test_chosen_worker(self, db, reassignment_service, make_worker, make_booking, owner):
        current = make_worker(rating=4.9)
        make_worker(rating=4.8)
        chosen = make_worker(rating=3.0)
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        outcome = reassignment_service.reassign_booking(
            booking.id, owner, reason="Customer asked for Sam", new_worker_id=chosen.id
        )

        assert outcome.new_worker_id == chosen.id
        assert booking.worker_id == chosen.id
        (record,) = _records(db, booking.id)
        assert record.reason == "Customer asked for Sam"
        assert record.is_fallback is False

    def test_chosen_worker_must_be_available(
        self, reassignment_service, make_worker, make_booking, admin
    ):
        current = make_worker()
        off_shift = make_worker(is_available=False)
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        with pytest.raises(BusinessRuleException) as exc_info:
            reassignment_service.reassign_booking(booking.id, admin, new_worker_id=off_shift.id)
        assert exc_info.value.code == "WORKER_UNAVAILABLE"
        assert booking.worker_id == current.id

    def test_chosen_worker_must_differ_and_share_the_shop(
        self, reassignment_service, make_worker, make_booking, admin
    ):
        current = make_worker()
        elsewhere = make_worker(shop_id=generate_ulid())
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        with pytest.raises(ValidationException):
            reassignment_service.reassign_booking(booking.id, admin, new_worker_id=current.id)
        with pytest.raises(ValidationException):
            reassignment_service.reassign_booking(booking.id, admin, new_worker_id=elsewhere.id)

    @pytest.mark.parametrize(
        "status", [BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED]
    )
    def test_booking_without_an_active_worker_is_a_conflict(
        self, reassignment_service, make_booking, admin, status
    ):
        booking = make_booking(status=status)
        with pytest.raises(StateConflictException):
            reassignment_service.reassign_booking(booking.id, admin)

    def test_stranger_is_forbidden(self, reassignment_service, make_worker, make_booking):
        worker = make_worker()
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=worker.id)
        stranger = Actor(id=generate_ulid(), role=RoleName.OWNER, shop_id=generate_ulid())
        with pytest.raises(ForbiddenException):
            reassignment_service.reassign_booking(booking.id, stranger)


class TestPreview:
    def test_unknown_reason_while_the_worker_is_available(
        self, reassignment_service, make_worker, make_booking, customer
    ):
        current = make_worker(rating=4.9)
        suggested = make_worker(rating=4.1)
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        preview = reassignment_service.preview_reassignment(booking.id, customer)

        assert preview.previous_worker.id == current.id
        assert preview.previous_worker_reason == "Unknown reason"
        assert preview.suggested_worker.id == suggested.id
        assert preview.status_message == "A replacement worker is available"

    def test_reports_the_recorded_reason_and_changes_nothing(
        self, db, reassignment_service, make_worker, make_booking, customer
    ):
        current = make_worker(is_available=False, unavailable_reason="Engine trouble")
        booking = make_booking(status=BookingStatus.ASSIGNED, worker_id=current.id)

        preview = reassignment_service.preview_reassignment(booking.id, customer)

        assert preview.previous_worker_reason == "Engine trouble"
        assert preview.suggested_worker is None
        assert "manual assignment" in preview.status_message
        assert booking.worker_id == current.id
        assert _records(db, booking.id) == []


class TestManualQueue:
    def _queued(self, make_booking, now, **overrides):
        data = {
            "status": BookingStatus.PENDING_MANUAL_ASSIGNMENT,
            "held_status": BookingStatus.IN_PROGRESS.value,
            "assigned_at": now - timedelta(hours=2),
            "started_at": now - timedelta(hours=1),
        }
        data.update(overrides)
        return make_booking(**data)

    def test_pending_list_is_oldest_first(
        self, reassignment_service, make_booking, admin, now
    ):
        newer = self._queued(make_booking, now, created_at=now - timedelta(hours=1))
        older = self._queued(make_booking, now, created_at=now - timedelta(hours=5))
        make_booking(status=BookingStatus.ASSIGNED)

        pending = reassignment_service.get_pending_manual_assignments(admin)

        assert [b.id for b in pending] == [older.id, newer.id]

    def test_owner_only_sees_their_shop(self, reassignment_service, make_booking, owner, now):
        mine = self._queued(make_booking, now)
        self._queued(make_booking, now, shop_id=generate_ulid())

        assert [b.id for b in reassignment_service.get_pending_manual_assignments(owner)] == [mine.id]

    def test_customers_cannot_see_the_queue(self, reassignment_service, customer):
        with pytest.raises(ForbiddenException):
            reassignment_service.get_pending_manual_assignments(customer)

    def test_manual_assignment_restores_the_held_status(
        self, db, reassignment_service, make_worker, make_booking, admin, now, published_events
    ):
        booking = self._queued(make_booking, now)
        worker = make_worker()

        outcome = reassignment_service.manually_assign(booking.id, worker.id, admin)

        assert outcome.outcome == OUTCOME_REASSIGNED
        assert booking.status == BookingStatus.IN_PROGRESS.value
        assert booking.worker_id == worker.id
        assert booking.held_status is None
        assert booking.started_at == now - timedelta(hours=1)

        (record,) = _records(db, booking.id)
        assert record.old_worker_id is None
        assert record.new_worker_id == worker.id
        assert record.reason == "Manual assignment"
        assert record.reassigned_by == admin.id

        assert isinstance(published_events[-1], WorkerAssigned)

    def test_only_queued_bookings(self, reassignment_service, make_worker, make_booking, admin):
        booking = make_booking(status=BookingStatus.CONFIRMED)
        with pytest.raises(StateConflictException):
            reassignment_service.manually_assign(booking.id, make_worker().id, admin)

    def test_worker_must_be_available(
        self, reassignment_service, make_worker, make_booking, owner, now
    ):
        booking = self._queued(make_booking, now)
        off_shift = make_worker(is_available=False)
        with pytest.raises(BusinessRuleException):
            reassignment_service.manually_assign(booking.id, off_shift.id, owner)
        assert booking.status == BookingStatus.PENDING_MANUAL_ASSIGNMENT.value

    def test_owner_of_another_shop_is_forbidden(
        self, reassignment_service, make_worker, make_booking, now
    ):
        booking = self._queued(make_booking, now)
        other_owner = Actor(id=generate_ulid(), role=RoleName.OWNER, shop_id=generate_ulid())
        with pytest.raises(ForbiddenException):
            reassignment_service.manually_assign(booking.id, make_worker().id, other_owner)

    def test_queue_then_resolve_round_trip(
        self, reassignment_service, make_worker, make_booking, as_worker, admin
    ):
        only = make_worker()
        booking = make_booking(status=BookingStatus.ARRIVED, worker_id=only.id)
        reassignment_service.set_worker_availability(only.id, False, "sick", as_worker(only))
        assert booking.status == BookingStatus.PENDING_MANUAL_ASSIGNMENT.value

        newcomer = make_worker()
        reassignment_service.manually_assign(booking.id, newcomer.id, admin)

        assert booking.status == BookingStatus.ARRIVED.value
        assert booking.worker_id == newcomer.id
