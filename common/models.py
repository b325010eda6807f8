"""SQLAlchemy models shared across all services."""
from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class RoleEnum(str, Enum):
    ADMIN = "admin"
    HEAD = "head"
    EMPLOYEE = "employee"


class RoomTypeEnum(str, Enum):
    STANDARD = "standard"
    CONFERENCE = "conference"
    VIP = "vip"


class BookingStatus(str, Enum):
    BOOKED = "booked"
    NO_SHOW = "no_show"
    CHECKED_IN = "checked_in"
    PENDING_APPROVAL = "pending_approval"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({BookingStatus.BOOKED, BookingStatus.PENDING_APPROVAL})
MANAGER_ROLES = frozenset({RoleEnum.ADMIN, RoleEnum.HEAD})


def _new_booking_id() -> str:
    return str(uuid.uuid4())


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    hashed_password: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), default=RoleEnum.EMPLOYEE)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="member", cascade="all, delete")
    blacklist_entries: Mapped[List["BlacklistEntry"]] = relationship(
        back_populates="member", cascade="all, delete"
    )


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    building: Mapped[str] = mapped_column(String(100), index=True)
    floor: Mapped[str] = mapped_column(String(50), index=True)
    room_type: Mapped[RoomTypeEnum] = mapped_column(SqlEnum(RoomTypeEnum), default=RoomTypeEnum.STANDARD)
    capacity: Mapped[int] = mapped_column(Integer, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="room", cascade="all, delete")

    @property
    def requires_approval(self) -> bool:
        return self.room_type == RoomTypeEnum.VIP


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_booking_id)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.BOOKED, index=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    member: Mapped[Member] = relationship(back_populates="bookings")
    room: Mapped[Room] = relationship(back_populates="bookings")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class BlacklistEntry(Base):
    __tablename__ = "blacklist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id", ondelete="CASCADE"), index=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    member: Mapped[Member] = relationship(back_populates="blacklist_entries")
