"""Unit tests for schema validation."""
import os
from datetime import date, time

import pytest
from pydantic import ValidationError

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from common.models import RoleEnum, RoomTypeEnum
from common.schemas import BookingCreate, CancelRequest, MemberCreate, RoomCreate


class TestMemberSchemas:
    def test_member_create_default_role(self):
        member = MemberCreate(
            username="janedoe",
            email="jane@example.com",
            first_name="Jane",
            last_name="Doe",
            password="SecurePass123!",
        )

        assert member.role == RoleEnum.EMPLOYEE

    def test_member_create_invalid_email(self):
        with pytest.raises(ValidationError):
            MemberCreate(
                username="testuser",
                email="invalid-email",
                first_name="Test",
                last_name="User",
                password="Password123",
            )

    def test_member_password_too_short(self):
        with pytest.raises(ValidationError):
            MemberCreate(
                username="testuser",
                email="test@example.com",
                first_name="Test",
                last_name="User",
                password="short",
            )


class TestRoomSchemas:
    def test_room_create_defaults(self):
        room = RoomCreate(name="A-101", building="A", floor="1", capacity=10)

        assert room.room_type == RoomTypeEnum.STANDARD
        assert room.is_active is True

    def test_room_capacity_must_be_positive(self):
        with pytest.raises(ValidationError):
            RoomCreate(name="A-101", building="A", floor="1", capacity=0)


class TestBookingSchemas:
    def test_booking_create_parses_clock_times(self):
        booking = BookingCreate(room_id=1, booking_date="2030-01-15", start_time="10:00", end_time="11:30")

        assert booking.booking_date == date(2030, 1, 15)
        assert booking.start_time == time(10, 0)
        assert booking.end_time == time(11, 30)

    def test_cancel_reason_is_stripped(self):
        assert CancelRequest(reason="  moved online ").reason == "moved online"

    def test_cancel_reason_required(self):
        with pytest.raises(ValidationError):
            CancelRequest(reason="   ")
