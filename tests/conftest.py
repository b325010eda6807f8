import os
import time
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("BOOKING_EVENTS_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.auth import get_password_hash  # noqa: E402
from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import Member, RoleEnum, Room, RoomTypeEnum  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import room_list_cache, room_status_cache  # noqa: E402
from services.users.app import app as users_app  # noqa: E402


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_list_cache.clear()
    room_status_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def member(db_session) -> Member:
    employee = Member(
        username="somchai",
        email="somchai@example.com",
        first_name="Somchai",
        last_name="Dee",
        role=RoleEnum.EMPLOYEE,
        hashed_password=get_password_hash("Passw0rd!"),
    )
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture()
def room(db_session) -> Room:
    standard = Room(name="A-101", building="A", floor="1", room_type=RoomTypeEnum.STANDARD, capacity=10)
    db_session.add(standard)
    db_session.commit()
    db_session.refresh(standard)
    return standard


@pytest.fixture()
def vip_room(db_session) -> Room:
    vip = Room(name="B-201", building="B", floor="1", room_type=RoomTypeEnum.VIP, capacity=8)
    db_session.add(vip)
    db_session.commit()
    db_session.refresh(vip)
    return vip


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture(params=["Asia/Bangkok", "America/Los_Angeles"])
def local_timezone(request, monkeypatch) -> Generator[str, None, None]:
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    monkeypatch.setenv("TZ", request.param)
    time.tzset()
    yield request.param
    monkeypatch.undo()
    time.tzset()
