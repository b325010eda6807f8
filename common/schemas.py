"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import BookingStatus, RoleEnum, RoomTypeEnum


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MemberBase(BaseModel):
    username: str = Field(..., max_length=50)
    email: EmailStr
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    role: RoleEnum = RoleEnum.EMPLOYEE


class MemberCreate(MemberBase):
    password: str = Field(..., min_length=8)


class MemberUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8)


class MemberRead(MemberBase):
    id: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BlacklistRead(BaseModel):
    id: int
    member_id: int
    locked_at: datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    name: str = Field(..., max_length=100)
    building: str
    floor: str
    room_type: RoomTypeEnum = RoomTypeEnum.STANDARD
    capacity: int = Field(..., ge=1)
    is_active: bool = True


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    building: Optional[str] = None
    floor: Optional[str] = None
    room_type: Optional[RoomTypeEnum] = None
    capacity: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class RoomRead(RoomBase):
    id: int
    requires_approval: bool

    model_config = {"from_attributes": True}


class BookingCreate(BaseModel):
    room_id: int
    booking_date: date
    start_time: time
    end_time: time


class BookingCreated(BaseModel):
    booking_id: str
    status: BookingStatus


class BookingRead(BaseModel):
    id: str
    room_id: int
    member_id: int
    booking_date: date
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingStatusRead(BaseModel):
    booking_id: str
    status: BookingStatus


class CancelRequest(BaseModel):
    reason: str = Field(..., max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("A cancellation reason is required")
        return value


class CancelReasonRead(BaseModel):
    booking_id: str
    reason: Optional[str] = None


class AvailabilityRead(BaseModel):
    room_id: int
    available: bool


class SweepResult(BaseModel):
    updated: int


class NoShowReportRow(BaseModel):
    member_id: int
    username: str
    no_show_count: int
    lock_count: int
