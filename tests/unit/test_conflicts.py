"""Unit tests for the booking admission rules."""
import os
from datetime import date, datetime, timedelta
from itertools import combinations

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from common.conflicts import (
    CONFLICT_MESSAGE,
    BookingConflictChecker,
    ConflictError,
    find_conflict,
    overlaps,
    too_close,
)
from common.models import Booking, BookingStatus

DAY = date(2030, 3, 4)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 3, 4, hour, minute)


def make_booking(start: datetime, end: datetime, status=BookingStatus.BOOKED, booking_id="existing", room_id=1):
    return Booking(
        id=booking_id,
        room_id=room_id,
        member_id=1,
        booking_date=start.date(),
        start_time=start,
        end_time=end,
        status=status,
    )


class FakeStore:
    """Returns every booking of the room and date, whatever its status."""

    def __init__(self, bookings=()):
        self.bookings = list(bookings)

    def find_active_bookings(self, room_id, booking_date):
        return [b for b in self.bookings if b.room_id == room_id and b.booking_date == booking_date]

    def insert_booking(self, booking):
        self.bookings.append(booking)
        return booking.id


class TestOverlap:
    def test_exact_duplicate_overlaps(self):
        existing = make_booking(at(10), at(11))
        assert overlaps(existing, at(10), at(11)) is True

    def test_start_inside_existing(self):
        existing = make_booking(at(10), at(12))
        assert overlaps(existing, at(11), at(13)) is True

    def test_end_inside_existing(self):
        existing = make_booking(at(10), at(12))
        assert overlaps(existing, at(9), at(11)) is True

    def test_new_interval_contains_existing(self):
        existing = make_booking(at(10), at(11))
        assert overlaps(existing, at(9), at(12)) is True

    def test_adjacent_intervals_do_not_overlap(self):
        existing = make_booking(at(11), at(12))
        assert overlaps(existing, at(10), at(11)) is False
        assert overlaps(existing, at(12), at(13)) is False


class TestMinimumGap:
    def test_adjacent_booking_is_too_close(self):
        existing = make_booking(at(11), at(12))
        assert too_close(existing, at(10), at(11)) is True

    def test_exactly_one_hour_apart_is_allowed(self):
        existing = make_booking(at(10), at(11))
        assert too_close(existing, at(8), at(9)) is False

    def test_start_within_an_hour_of_existing_end(self):
        existing = make_booking(at(10), at(11))
        assert too_close(existing, at(11, 30), at(13)) is True

    def test_custom_gap(self):
        existing = make_booking(at(11), at(12))
        assert too_close(existing, at(10), at(11), gap=timedelta(0)) is False
        assert too_close(existing, at(12, 30), at(14), gap=timedelta(minutes=45)) is True


class TestFindConflict:
    def test_overlap_is_reported_before_gap(self):
        near = make_booking(at(8), at(9), booking_id="near")
        same = make_booking(at(10), at(11), booking_id="same")
        conflict = find_conflict([near, same], at(10), at(11))
        assert conflict.reason == "overlap"
        assert conflict.booking.id == "same"

    def test_gap_reason(self):
        conflict = find_conflict([make_booking(at(11), at(12))], at(10), at(11))
        assert conflict.reason == "gap"

    def test_no_bookings_no_conflict(self):
        assert find_conflict([], at(10), at(11)) is None


class TestBookingConflictChecker:
    def test_exact_duplicate_refused(self):
        checker = BookingConflictChecker(FakeStore([make_booking(at(10), at(11))]))
        with pytest.raises(ConflictError) as exc_info:
            checker.ensure_admissible(1, DAY, at(10), at(11))
        assert exc_info.value.reason == "overlap"
        assert exc_info.value.booking_id == "existing"

    def test_adjacent_refused(self):
        checker = BookingConflictChecker(FakeStore([make_booking(at(11), at(12))]))
        with pytest.raises(ConflictError) as exc_info:
            checker.ensure_admissible(1, DAY, at(10), at(11))
        assert exc_info.value.reason == "gap"

    def test_both_causes_share_one_message(self):
        checker = BookingConflictChecker(FakeStore([make_booking(at(11), at(12))]))
        messages = set()
        for start, end in ((at(11), at(12)), (at(9), at(10, 30))):
            with pytest.raises(ConflictError) as exc_info:
                checker.ensure_admissible(1, DAY, start, end)
            messages.add(exc_info.value.detail)
        assert messages == {CONFLICT_MESSAGE}

    def test_exactly_one_hour_gap_admitted(self):
        checker = BookingConflictChecker(FakeStore([make_booking(at(10), at(11))]))
        checker.ensure_admissible(1, DAY, at(8), at(9))
        assert checker.is_available(1, DAY, at(8), at(9)) is True

    def test_four_hour_gap_admitted(self):
        checker = BookingConflictChecker(FakeStore([make_booking(at(13), at(14))]))
        assert checker.is_available(1, DAY, at(8), at(9)) is True

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.CANCELLED, BookingStatus.NO_SHOW, BookingStatus.CHECKED_IN],
    )
    def test_inactive_bookings_do_not_block(self, status):
        checker = BookingConflictChecker(FakeStore([make_booking(at(10), at(11), status=status)]))
        assert checker.is_available(1, DAY, at(10), at(11)) is True

    def test_pending_approval_blocks(self):
        pending = make_booking(at(10), at(11), status=BookingStatus.PENDING_APPROVAL)
        checker = BookingConflictChecker(FakeStore([pending]))
        assert checker.is_available(1, DAY, at(10), at(11)) is False

    def test_other_rooms_and_dates_ignored(self):
        other_room = make_booking(at(10), at(11), room_id=2)
        other_day = make_booking(at(10) + timedelta(days=1), at(11) + timedelta(days=1))
        checker = BookingConflictChecker(FakeStore([other_room, other_day]))
        assert checker.is_available(1, DAY, at(10), at(11)) is True

    def test_admitted_bookings_keep_pairwise_separation(self):
        store = FakeStore()
        checker = BookingConflictChecker(store)
        slot = at(7)
        while slot < at(20):
            for length in (timedelta(minutes=30), timedelta(hours=1), timedelta(minutes=90)):
                start, end = slot, slot + length
                if checker.is_available(1, DAY, start, end):
                    store.insert_booking(make_booking(start, end, booking_id=f"{start:%H%M}-{end:%H%M}"))
            slot += timedelta(minutes=15)

        assert len(store.bookings) > 1
        for first, second in combinations(store.bookings, 2):
            assert not overlaps(first, second.start_time, second.end_time)
            assert not too_close(first, second.start_time, second.end_time)
