from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.cache import SimpleTTLCache
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import allow_roles
from common.logging_middleware import add_audit_middleware
from common.models import Booking, BookingStatus, Member, RoleEnum, Room
from common.rate_limit import apply_error_handlers, apply_rate_limiter, limiter
from common.schemas import RoomCreate, RoomRead, RoomUpdate

settings = get_settings()
room_status_cache: SimpleTTLCache[dict[str, str]] = SimpleTTLCache(ttl=settings.room_cache_ttl)
room_list_cache: SimpleTTLCache[list[RoomRead]] = SimpleTTLCache(ttl=settings.room_cache_ttl)

# Bookings that still occupy the room while their period runs.
OCCUPYING_STATUSES = (BookingStatus.BOOKED, BookingStatus.PENDING_APPROVAL, BookingStatus.CHECKED_IN)


def _room_status_key(room_id: int) -> str:
    return f"room-status:{room_id}"


def _invalidate_room_cache(room_id: int) -> None:
    room_status_cache.pop(_room_status_key(room_id))
    room_list_cache.clear()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    return fastapi_app


app = create_app()
manage_rooms = allow_roles(RoleEnum.ADMIN)


def _get_room_or_404(db: Session, room_id: int) -> Room:
    room = db.query(Room).filter(Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    _: Member = Depends(manage_rooms),
    db: Session = Depends(get_db),
) -> Room:
    if db.query(Room).filter(Room.name == room_in.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room name already exists")
    room = Room(**room_in.model_dump())
    db.add(room)
    db.commit()
    db.refresh(room)
    _invalidate_room_cache(room.id)
    return room


@circuit(failure_threshold=5, recovery_timeout=60)
def _query_rooms(
    db: Session, building: Optional[str], floor: Optional[str], participants: Optional[int]
) -> list[RoomRead]:
    query = db.query(Room).filter(Room.is_active.is_(True))
    if building:
        query = query.filter(Room.building == building)
    if floor:
        query = query.filter(Room.floor == floor)
    if participants:
        query = query.filter(Room.capacity >= participants)
    return [RoomRead.model_validate(room) for room in query.order_by(Room.id).all()]


@app.get("/rooms", response_model=List[RoomRead])
@limiter.limit("60/minute")
def list_rooms(
    request: Request,
    building: Optional[str] = None,
    floor: Optional[str] = None,
    participants: Optional[int] = None,
    db: Session = Depends(get_db),
) -> list[RoomRead]:
    cache_key = f"room-list:{building}:{floor}:{participants}"
    return room_list_cache.get_or_set(cache_key, lambda: _query_rooms(db, building, floor, participants))


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: int, db: Session = Depends(get_db)) -> Room:
    return _get_room_or_404(db, room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    _: Member = Depends(manage_rooms),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(room, key, value)
    db.commit()
    db.refresh(room)
    _invalidate_room_cache(room.id)
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    _: Member = Depends(manage_rooms),
    db: Session = Depends(get_db),
) -> None:
    room = _get_room_or_404(db, room_id)
    db.delete(room)
    db.commit()
    _invalidate_room_cache(room_id)


@app.get("/rooms/{room_id}/status")
@limiter.limit("30/minute")
def room_status(
    request: Request,
    room_id: int,
    db: Session = Depends(get_db),
    force_refresh: bool = False,
) -> dict[str, str]:
    _get_room_or_404(db, room_id)
    cache_key = _room_status_key(room_id)
    if not force_refresh:
        cached = room_status_cache.get(cache_key)
        if cached:
            return cached
    now = datetime.now()
    current_booking = (
        db.query(Booking)
        .filter(
            Booking.room_id == room_id,
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.start_time <= now,
            Booking.end_time >= now,
        )
        .first()
    )
    payload = {
        "room_id": str(room_id),
        "status": "busy" if current_booking else "available",
        "checked_at": now.isoformat(),
    }
    room_status_cache.set(cache_key, payload)
    return payload
