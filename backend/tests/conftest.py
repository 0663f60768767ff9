# lesson-booking-backend/tests/conftest.py
"""
Pytest fixtures.

Every test gets its own SQLite file database under tmp_path, so tests
never touch sql_app.db and can open several connections (one per worker
thread) against the same data.
"""

import os
import sys

# Set before any app import so the module-level engine never opens a real file
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import date

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import sessionmaker

from calendar_view import CalendarView
from database import get_db, make_engine
from locks import KeyedLocks
import main
import models
from reservations import ReservationEngine, StudentInfo
from slot_store import SlotStore
import teachers
from unit_of_work import UnitOfWork

TODAY = date(2025, 12, 1)
LESSON_DAY = date(2025, 12, 10)


def fixed_today() -> date:
    return TODAY


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    models.create_db_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest.fixture
def uow(db, locks):
    return UnitOfWork(db, locks=locks, lock_timeout=5)


@pytest.fixture
def reservation_engine():
    return ReservationEngine(today=fixed_today)


@pytest.fixture
def slot_store(reservation_engine):
    return SlotStore(reservation_engine, today=fixed_today)


@pytest.fixture
def calendar_view(slot_store, reservation_engine):
    return CalendarView(slot_store, reservation_engine, today=fixed_today)


@pytest.fixture
def teacher(uow):
    return teachers.create_teacher(uow, "Aiko Tanaka", "aiko@example.com", "hashed-secret")


@pytest.fixture
def other_teacher(uow):
    return teachers.create_teacher(uow, "Ben Ito", "ben@example.com", "hashed-secret")


@pytest.fixture
def student():
    return StudentInfo(name="Ken Sato", email="ken@example.com", phone="090-1234-5678")


@pytest.fixture
def client(session_factory, reservation_engine, slot_store, calendar_view):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_reservation_engine] = lambda: reservation_engine
    main.app.dependency_overrides[main.get_slot_store] = lambda: slot_store
    main.app.dependency_overrides[main.get_calendar_view] = lambda: calendar_view
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
