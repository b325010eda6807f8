from contextlib import asynccontextmanager
from datetime import date, time
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import func
from sqlalchemy.orm import Session

from common import reservations
from common.booking_store import SqlRoomCatalog
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import allow_roles, get_current_active_member, require_service_key
from common.events import publish_booking_event
from common.logging_middleware import add_audit_middleware
from common.models import MANAGER_ROLES, BlacklistEntry, Booking, BookingStatus, Member, RoleEnum
from common.rate_limit import apply_error_handlers, apply_rate_limiter, limiter
from common.schemas import (
    AvailabilityRead,
    BookingCreate,
    BookingCreated,
    BookingRead,
    BookingStatusRead,
    CancelReasonRead,
    CancelRequest,
    NoShowReportRow,
    SweepResult,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _owned_or_managed(booking: Booking, member: Member) -> None:
    if booking.member_id != member.id and member.role not in MANAGER_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/bookings", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> BookingCreated:
    if booking_in.end_time <= booking_in.start_time:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")

    booking = reservations.create_booking(
        db,
        current_member,
        booking_in.room_id,
        booking_in.booking_date,
        reservations.combine(booking_in.booking_date, booking_in.start_time),
        reservations.combine(booking_in.booking_date, booking_in.end_time),
    )
    publish_booking_event("booking_created", booking)
    return BookingCreated(booking_id=booking.id, status=booking.status)


@app.get("/bookings", response_model=List[BookingRead])
@limiter.limit("30/minute")
def list_bookings(
    request: Request,
    booking_date: Optional[date] = None,
    room_id: Optional[int] = None,
    _: Member = Depends(allow_roles(RoleEnum.ADMIN, RoleEnum.HEAD)),
    db: Session = Depends(get_db),
) -> List[Booking]:
    query = db.query(Booking)
    if booking_date:
        query = query.filter(Booking.booking_date == booking_date)
    if room_id:
        query = query.filter(Booking.room_id == room_id)
    return query.order_by(Booking.start_time.desc()).all()


@app.get("/bookings/me", response_model=List[BookingRead])
@limiter.limit("30/minute")
def my_bookings(
    request: Request,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.member_id == current_member.id)
        .order_by(Booking.start_time.desc())
        .all()
    )


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    room_id: int,
    booking_date: date = Query(...),
    start_time: time = Query(...),
    end_time: time = Query(...),
    _: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    if end_time <= start_time:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")
    if not SqlRoomCatalog(db).room_exists(room_id):
        raise reservations.RoomNotFoundError(room_id)
    available = reservations.conflict_checker(db).is_available(
        room_id,
        booking_date,
        reservations.combine(booking_date, start_time),
        reservations.combine(booking_date, end_time),
    )
    return AvailabilityRead(room_id=room_id, available=available)


@app.post("/bookings/no-show-sweep", response_model=SweepResult, dependencies=[Depends(require_service_key)])
def no_show_sweep(db: Session = Depends(get_db)) -> SweepResult:
    return SweepResult(updated=reservations.sweep_no_shows(db))


@app.get("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    booking_id: str,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> Booking:
    booking = reservations.get_booking(db, booking_id)
    _owned_or_managed(booking, current_member)
    return booking


@app.get("/bookings/{booking_id}/status", response_model=BookingStatusRead)
@limiter.limit("60/minute")
def booking_status(
    request: Request,
    booking_id: str,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> BookingStatusRead:
    booking = reservations.get_booking(db, booking_id)
    _owned_or_managed(booking, current_member)
    return BookingStatusRead(booking_id=booking.id, status=booking.status)


@app.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    booking_id: str,
    cancel_in: CancelRequest,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> Booking:
    booking = reservations.get_booking(db, booking_id)
    _owned_or_managed(booking, current_member)
    booking = reservations.cancel_booking(db, booking, cancel_in.reason)
    publish_booking_event("booking_cancelled", booking)
    return booking


@app.get("/bookings/{booking_id}/cancel-reason", response_model=CancelReasonRead)
@limiter.limit("30/minute")
def cancel_reason(
    request: Request,
    booking_id: str,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> CancelReasonRead:
    booking = reservations.get_booking(db, booking_id)
    _owned_or_managed(booking, current_member)
    return CancelReasonRead(booking_id=booking.id, reason=booking.cancel_reason)


@app.post("/bookings/{booking_id}/check-in", response_model=BookingRead)
@limiter.limit("20/minute")
def check_in(
    request: Request,
    booking_id: str,
    current_member: Member = Depends(get_current_active_member),
    db: Session = Depends(get_db),
) -> Booking:
    booking = reservations.get_booking(db, booking_id)
    if booking.member_id != current_member.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the requester can check in")
    return reservations.check_in(db, booking)


@app.post("/bookings/{booking_id}/approve", response_model=BookingRead)
@limiter.limit("20/minute")
def approve_booking(
    request: Request,
    booking_id: str,
    _: Member = Depends(allow_roles(RoleEnum.ADMIN, RoleEnum.HEAD)),
    db: Session = Depends(get_db),
) -> Booking:
    booking = reservations.get_booking(db, booking_id)
    return reservations.approve_booking(db, booking)


@app.get("/reports/no-shows", response_model=List[NoShowReportRow])
@limiter.limit("30/minute")
def no_show_report(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    _: Member = Depends(allow_roles(RoleEnum.ADMIN, RoleEnum.HEAD)),
    db: Session = Depends(get_db),
) -> List[NoShowReportRow]:
    no_shows = (
        db.query(Booking.member_id, func.count(Booking.id).label("cnt"))
        .filter(Booking.status == BookingStatus.NO_SHOW)
        .group_by(Booking.member_id)
        .subquery()
    )
    locks = (
        db.query(BlacklistEntry.member_id, func.count(BlacklistEntry.id).label("cnt"))
        .group_by(BlacklistEntry.member_id)
        .subquery()
    )
    no_show_count = func.coalesce(no_shows.c.cnt, 0)
    lock_count = func.coalesce(locks.c.cnt, 0)
    rows = (
        db.query(Member.id, Member.username, no_show_count, lock_count)
        .outerjoin(no_shows, no_shows.c.member_id == Member.id)
        .outerjoin(locks, locks.c.member_id == Member.id)
        .order_by((no_show_count + lock_count).desc(), Member.id)
        .limit(limit)
        .all()
    )
    return [
        NoShowReportRow(member_id=member_id, username=username, no_show_count=ns, lock_count=lc)
        for member_id, username, ns, lc in rows
    ]
