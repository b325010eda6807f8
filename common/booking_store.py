"""SQLAlchemy-backed collaborators of the conflict checker."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from .models import ACTIVE_STATUSES, Booking, Room


class SqlBookingStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_active_bookings(self, room_id: int, booking_date: date) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.room_id == room_id,
                Booking.booking_date == booking_date,
                Booking.status.in_(list(ACTIVE_STATUSES)),
            )
            .order_by(Booking.start_time)
            .all()
        )

    def insert_booking(self, booking: Booking) -> str:
        self.db.add(booking)
        self.db.flush()
        return booking.id


class SqlRoomCatalog:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _active_room(self, room_id: int) -> Optional[Room]:
        return self.db.query(Room).filter(Room.id == room_id, Room.is_active.is_(True)).first()

    def room_exists(self, room_id: int) -> bool:
        return self._active_room(room_id) is not None

    def room_requires_approval(self, room_id: int) -> bool:
        room = self._active_room(room_id)
        return bool(room and room.requires_approval)

    def lock_room(self, room_id: int) -> Optional[Room]:
        """Take a row lock on the room for the rest of the transaction.

        SQLite has no row locks and ignores ``FOR UPDATE``.
        """
        return self.db.query(Room).filter(Room.id == room_id).with_for_update().first()
