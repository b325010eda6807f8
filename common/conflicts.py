"""Admission rules for new bookings of a room.

A proposed booking is compared against the active bookings of the same room
on the same date. It is refused when it overlaps one of them, or when any of
its endpoints lies less than the minimum gap away from an endpoint of one of
them. Both refusals surface to clients as the same ``ConflictError`` message.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Protocol

from .models import Booking

logger = logging.getLogger(__name__)

MINIMUM_GAP = timedelta(hours=1)
CONFLICT_MESSAGE = "Room already booked in this period"


class BookingError(Exception):
    """Base class for booking lifecycle errors."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConflictError(BookingError):
    """The requested period collides with an active booking of the room."""

    status_code = 409

    def __init__(self, reason: str, booking_id: Optional[str] = None) -> None:
        super().__init__(CONFLICT_MESSAGE)
        self.reason = reason
        self.booking_id = booking_id


class BookingStore(Protocol):
    def find_active_bookings(self, room_id: int, booking_date: date) -> List[Booking]:
        ...

    def insert_booking(self, booking: Booking) -> str:
        ...


class RoomCatalog(Protocol):
    def room_exists(self, room_id: int) -> bool:
        ...

    def room_requires_approval(self, room_id: int) -> bool:
        ...


def overlaps(existing: Booking, start: datetime, end: datetime) -> bool:
    # Boundary instants count as overlapping for the first two clauses.
    return (
        (existing.start_time <= start and existing.end_time > start)
        or (existing.start_time < end and existing.end_time >= end)
        or (start <= existing.start_time and end >= existing.end_time)
    )


def too_close(existing: Booking, start: datetime, end: datetime, gap: timedelta = MINIMUM_GAP) -> bool:
    """Return True when an endpoint of ``existing`` is less than ``gap`` from ``start`` or ``end``.

    All four endpoint pairs are compared, cross pairs included: back-to-back
    bookings such as ``[10, 11)`` and ``[11, 12)`` must be refused.
    """
    for theirs in (existing.start_time, existing.end_time):
        for ours in (start, end):
            if abs(theirs - ours) < gap:
                return True
    return False


@dataclass(frozen=True)
class Conflict:
    reason: str
    booking: Booking


def find_conflict(
    bookings: Iterable[Booking],
    start: datetime,
    end: datetime,
    gap: timedelta = MINIMUM_GAP,
) -> Optional[Conflict]:
    """Run the overlap check over every booking, then the gap check."""
    candidates = list(bookings)
    for booking in candidates:
        if overlaps(booking, start, end):
            return Conflict("overlap", booking)
    for booking in candidates:
        if too_close(booking, start, end, gap):
            return Conflict("gap", booking)
    return None


class BookingConflictChecker:
    """Decides whether a room may be reserved for a period."""

    def __init__(self, store: BookingStore, gap: timedelta = MINIMUM_GAP) -> None:
        self._store = store
        self._gap = gap

    def find_conflict(self, room_id: int, booking_date: date, start: datetime, end: datetime) -> Optional[Conflict]:
        active = [b for b in self._store.find_active_bookings(room_id, booking_date) if b.is_active]
        return find_conflict(active, start, end, self._gap)

    def is_available(self, room_id: int, booking_date: date, start: datetime, end: datetime) -> bool:
        return self.find_conflict(room_id, booking_date, start, end) is None

    def ensure_admissible(self, room_id: int, booking_date: date, start: datetime, end: datetime) -> None:
        conflict = self.find_conflict(room_id, booking_date, start, end)
        if conflict is None:
            return
        logger.info(
            "Refused room=%s %s-%s: %s with booking %s",
            room_id,
            start.isoformat(),
            end.isoformat(),
            conflict.reason,
            conflict.booking.id,
        )
        raise ConflictError(conflict.reason, conflict.booking.id)
