# backend/tests/unit/models/test_booking_status.py
import pytest

from motoserve.models.booking import Booking, BookingStatus, TERMINAL_STATUSES


class TestLegacyVocabulary:
    """Both legacy screens map onto the one enumeration."""

    @pytest.mark.parametrize(
        "legacy, expected",
        [
            ("pending", BookingStatus.CREATED),
            ("confirmed", BookingStatus.CONFIRMED),
            ("assigned", BookingStatus.ASSIGNED),
            ("started", BookingStatus.IN_PROGRESS),
            ("completed", BookingStatus.COMPLETED),
            ("cancelled", BookingStatus.CANCELLED),
            ("pending_manual_assignment", BookingStatus.PENDING_MANUAL_ASSIGNMENT),
        ],
    )
    def test_customer_vocabulary(self, legacy, expected):
        assert BookingStatus.from_legacy(legacy) == expected

    @pytest.mark.parametrize(
        "legacy, expected",
        [
            ("pending", BookingStatus.ASSIGNED),
            ("accepted", BookingStatus.ASSIGNED),
            ("arrived", BookingStatus.ARRIVED),
            ("in-progress", BookingStatus.IN_PROGRESS),
            ("completed", BookingStatus.COMPLETED),
        ],
    )
    def test_worker_vocabulary(self, legacy, expected):
        assert BookingStatus.from_legacy(legacy, vocabulary="worker") == expected

    def test_normalizes_case_and_whitespace(self):
        assert BookingStatus.from_legacy("  Confirmed ") == BookingStatus.CONFIRMED

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError, match="Unknown worker status"):
            BookingStatus.from_legacy("cancelled", vocabulary="worker")


class TestBookingModel:
    def test_defaults_to_created(self):
        booking = Booking(customer_id="c", shop_id="s", service_id="x", base_cost=10)
        assert booking.status == BookingStatus.CREATED.value
        assert booking.status_enum == BookingStatus.CREATED
        assert not booking.is_terminal

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
        booking = Booking(status=BookingStatus.COMPLETED.value)
        assert booking.is_terminal

    def test_is_owned_by(self):
        booking = Booking(customer_id="customer-1")
        assert booking.is_owned_by("customer-1")
        assert not booking.is_owned_by("customer-2")
        assert not booking.is_owned_by(None)
