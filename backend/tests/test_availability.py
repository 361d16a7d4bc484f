"""Tests for the availability coordinator: interval overlap, reserve/release, manual overrides."""
from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.constants import BookingStatus
from app.core.errors import ConflictError, NotFoundError
from app.services import availability, booking_service, slot_registry

from conftest import hours_from_now


class TestOverlap:
    def test_half_open_intervals_do_not_touch(self, db, owner, slot, book, make_user):
        first = book(make_user("alice"), slot, start_in=2, hours=2)
        booking_service.decide(db, owner, first.id, "approved")
        start, end = hours_from_now(4, 2)
        assert availability.overlapping_bookings(db, slot.id, start, end) == []

    def test_partial_overlap_is_found(self, db, owner, slot, book, make_user):
        first = book(make_user("alice"), slot, start_in=2, hours=2)
        booking_service.decide(db, owner, first.id, "approved")
        start, end = hours_from_now(3, 2)
        assert [b.id for b in availability.overlapping_bookings(db, slot.id, start, end)] == [first.id]

    def test_pending_requests_do_not_occupy(self, db, slot, book, make_user):
        book(make_user("alice"), slot, start_in=2, hours=2)
        assert availability.overlapping_bookings(db, slot.id, *hours_from_now(2, 2)) == []

    def test_excluded_booking_is_ignored(self, db, owner, slot, book, make_user):
        first = book(make_user("alice"), slot, start_in=2, hours=2)
        booking_service.decide(db, owner, first.id, "approved")
        found = availability.overlapping_bookings(
            db, slot.id, *hours_from_now(2, 2), exclude_booking_id=first.id
        )
        assert found == []


class TestReserveRelease:
    def test_reserve_bumps_version(self, db, driver, slot, book):
        booking = book(driver, slot)
        version = slot.occupancy_version
        assert availability.check_and_reserve(db, booking) is True
        db.commit()
        db.refresh(slot)
        assert slot.occupancy_version == version + 1

    def test_future_reservation_keeps_slot_listed(self, db, driver, slot, book):
        booking = book(driver, slot, start_in=48, hours=2)
        assert availability.check_and_reserve(db, booking) is True
        db.commit()
        db.refresh(slot)
        assert slot.is_available is True
        assert [s.id for s in slot_registry.list_available(db)] == [slot.id]

    def test_reservation_covering_now_closes_slot(self, db, driver, slot, book):
        booking = book(driver, slot, start_in=2, hours=3)
        during = booking.start_time + timedelta(minutes=30)
        assert availability.check_and_reserve(db, booking, now=during) is True
        db.commit()
        db.refresh(slot)
        assert slot.is_available is False

    def test_stale_version_loses_compare_and_swap(self, db, slot):
        stale = slot.occupancy_version
        locked = availability.lock_slot(db, slot.id)
        assert availability._compare_and_swap(db, locked, stale, is_available=False) is True
        assert availability._compare_and_swap(db, locked, stale, is_available=False) is False
        db.rollback()

    def test_release_frees_slot_when_later_booking_has_not_started(self, db, owner, slot, book, make_user):
        early = book(make_user("alice"), slot, start_in=2, hours=2)
        late = book(make_user("bob"), slot, start_in=48, hours=2)
        booking_service.decide(db, owner, early.id, "approved")
        booking_service.decide(db, owner, late.id, "approved")

        booking_service.finalize(db, early.id, "cancelled", actor=owner)
        db.refresh(slot)
        assert slot.is_available is True

    def test_release_keeps_slot_held_by_running_booking(self, db, owner, slot, book, make_user):
        early = book(make_user("alice"), slot, start_in=2, hours=2)
        late = book(make_user("bob"), slot, start_in=6, hours=2)
        booking_service.decide(db, owner, early.id, "approved")
        booking_service.decide(db, owner, late.id, "approved")

        during_late = late.start_time + timedelta(minutes=30)
        booking_service.finalize(db, early.id, "completed", actor=owner, now=during_late)
        db.refresh(slot)
        assert slot.is_available is False

    def test_lock_missing_slot(self, db):
        with pytest.raises(NotFoundError):
            availability.lock_slot(db, "missing")


class TestRefreshOccupancy:
    def test_closes_slot_once_booking_starts(self, db, driver, owner, slot, book):
        booking = book(driver, slot, start_in=2, hours=3)
        booking_service.decide(db, owner, booking.id, "approved")
        assert availability.slots_starting_occupancy(db, utcnow()) == []

        during = booking.start_time + timedelta(minutes=30)
        assert availability.slots_starting_occupancy(db, during) == [slot.id]
        assert availability.refresh_occupancy(db, slot.id, during) is True
        db.commit()
        db.refresh(slot)
        assert slot.is_available is False
        assert availability.refresh_occupancy(db, slot.id, during) is False

    def test_ignores_pending_requests(self, db, driver, slot, book):
        booking = book(driver, slot, start_in=2, hours=3)
        during = booking.start_time + timedelta(minutes=30)
        assert availability.refresh_occupancy(db, slot.id, during) is False
        db.rollback()
        db.refresh(slot)
        assert slot.is_available is True

class TestOverride:
    def test_toggle_without_bookings(self, db, owner, slot):
        slot = slot_registry.set_availability_override(db, owner, slot.id, False)
        assert slot.is_available is False
        slot = slot_registry.set_availability_override(db, owner, slot.id, True)
        assert slot.is_available is True

    def test_refused_while_request_pending(self, db, driver, owner, slot, book):
        book(driver, slot)
        with pytest.raises(ConflictError):
            slot_registry.set_availability_override(db, owner, slot.id, False)

    def test_refused_while_booking_approved(self, db, driver, owner, slot, book):
        booking = book(driver, slot)
        booking_service.decide(db, owner, booking.id, "approved")
        with pytest.raises(ConflictError):
            slot_registry.set_availability_override(db, owner, slot.id, False)
        db.refresh(slot)
        assert slot.is_available is True

    def test_allowed_after_terminal(self, db, driver, owner, slot, book):
        booking = book(driver, slot)
        booking_service.decide(db, owner, booking.id, "rejected")
        assert not availability.has_active_bookings(db, slot.id)
        slot = slot_registry.set_availability_override(db, owner, slot.id, False)
        assert slot.is_available is False


def test_no_overlapping_occupying_bookings_after_mixed_decisions(db, owner, slot, book, make_user):
    bookings = [
        book(make_user(f"user{i}"), slot, start_in=start_in, hours=hours)
        for i, (start_in, hours) in enumerate([(2, 3), (3, 1), (5, 2), (6, 2), (9, 1)])
    ]
    for booking in bookings:
        try:
            booking_service.decide(db, owner, booking.id, "approved")
        except ConflictError:
            pass

    held = [b for b in bookings if db.get(type(b), b.id).status == BookingStatus.APPROVED]
    for i, a in enumerate(held):
        for b in held[i + 1:]:
            assert not (a.start_time < b.end_time and b.start_time < a.end_time)
    # [2,5) wins, [3,4) conflicts, [5,7) wins, [6,8) conflicts, [9,10) wins
    assert len(held) == 3
