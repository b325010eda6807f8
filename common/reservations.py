"""Booking lifecycle: creation under the conflict rules and status transitions."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterator, Optional

from sqlalchemy.orm import Session

from .booking_store import SqlBookingStore, SqlRoomCatalog
from .config import get_settings
from .conflicts import BookingConflictChecker, BookingError
from .models import BlacklistEntry, Booking, BookingStatus, Member

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_room_locks: Dict[int, threading.Lock] = {}


class BookingNotFoundError(BookingError):
    status_code = 404

    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking not found")
        self.booking_id = booking_id


class RoomNotFoundError(BookingError):
    status_code = 404

    def __init__(self, room_id: int) -> None:
        super().__init__("Room not found or inactive")
        self.room_id = room_id


class MemberBlacklistedError(BookingError):
    status_code = 403

    def __init__(self, member_id: int) -> None:
        super().__init__("Member is blacklisted and cannot book rooms")
        self.member_id = member_id


class InvalidTransitionError(BookingError):
    status_code = 409

    def __init__(self, current: BookingStatus, target: BookingStatus) -> None:
        super().__init__(f"Cannot change booking from {current.value} to {target.value}")
        self.current = current
        self.target = target


# Allowed source statuses for each target status.
TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.BOOKED: frozenset({BookingStatus.PENDING_APPROVAL}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.BOOKED}),
    BookingStatus.NO_SHOW: frozenset({BookingStatus.BOOKED}),
    BookingStatus.CANCELLED: frozenset({BookingStatus.BOOKED, BookingStatus.PENDING_APPROVAL}),
}


@contextmanager
def room_lock(room_id: int) -> Iterator[None]:
    """Serialize check-and-insert for one room within this process."""
    with _locks_guard:
        lock = _room_locks.setdefault(room_id, threading.Lock())
    with lock:
        yield


def combine(booking_date: date, moment: time) -> datetime:
    return datetime.combine(booking_date, moment)


def conflict_checker(db: Session) -> BookingConflictChecker:
    gap = timedelta(minutes=get_settings().minimum_gap_minutes)
    return BookingConflictChecker(SqlBookingStore(db), gap=gap)


def is_blacklisted(db: Session, member_id: int) -> bool:
    return db.query(BlacklistEntry.id).filter(BlacklistEntry.member_id == member_id).first() is not None


def create_booking(
    db: Session,
    requester: Member,
    room_id: int,
    booking_date: date,
    start: datetime,
    end: datetime,
) -> Booking:
    """Admit and persist a new booking, or raise a ``BookingError``.

    ``start < end`` is the caller's responsibility.
    """
    if is_blacklisted(db, requester.id):
        raise MemberBlacklistedError(requester.id)

    catalog = SqlRoomCatalog(db)
    if not catalog.room_exists(room_id):
        raise RoomNotFoundError(room_id)

    store = SqlBookingStore(db)
    checker = conflict_checker(db)
    with room_lock(room_id):
        try:
            catalog.lock_room(room_id)
            checker.ensure_admissible(room_id, booking_date, start, end)
            status = (
                BookingStatus.PENDING_APPROVAL if catalog.room_requires_approval(room_id) else BookingStatus.BOOKED
            )
            booking = Booking(
                member_id=requester.id,
                room_id=room_id,
                booking_date=booking_date,
                start_time=start,
                end_time=end,
                status=status,
            )
            store.insert_booking(booking)
            db.commit()
        except Exception:
            db.rollback()
            raise
    db.refresh(booking)
    logger.info("Booking %s created for room %s as %s", booking.id, room_id, booking.status.value)
    return booking


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return booking


def transition(db: Session, booking: Booking, target: BookingStatus) -> Booking:
    if booking.status not in TRANSITIONS[target]:
        raise InvalidTransitionError(booking.status, target)
    booking.status = target
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s is now %s", booking.id, target.value)
    return booking


def cancel_booking(db: Session, booking: Booking, reason: str) -> Booking:
    if booking.status not in TRANSITIONS[BookingStatus.CANCELLED]:
        raise InvalidTransitionError(booking.status, BookingStatus.CANCELLED)
    booking.cancel_reason = reason
    return transition(db, booking, BookingStatus.CANCELLED)


def check_in(db: Session, booking: Booking) -> Booking:
    return transition(db, booking, BookingStatus.CHECKED_IN)


def approve_booking(db: Session, booking: Booking) -> Booking:
    return transition(db, booking, BookingStatus.BOOKED)


def sweep_no_shows(db: Session, now: Optional[datetime] = None) -> int:
    """Mark every elapsed, never checked-in booking as a no-show.

    Booking times are naive local wall-clock values, so ``now`` defaults to local time.
    """
    now = now or datetime.now()
    updated = (
        db.query(Booking)
        .filter(Booking.status == BookingStatus.BOOKED, Booking.end_time < now)
        .update({Booking.status: BookingStatus.NO_SHOW}, synchronize_session=False)
    )
    db.commit()
    if updated:
        logger.info("Marked %d bookings as no-show", updated)
    return updated
