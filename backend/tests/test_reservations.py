# lesson-booking-backend/tests/test_reservations.py

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timedelta
import threading

import pytest

from conftest import LESSON_DAY, TODAY
from exceptions import HasReservationError, NotFoundError, SlotUnavailableError, ValidationError
from models import LessonSlot, Reservation, ReservationStatus
from reservations import ReservationEngine, StudentInfo
from unit_of_work import UnitOfWork


@pytest.fixture
def slot(uow, slot_store, teacher):
    return slot_store.create_slot(uow, teacher.id, LESSON_DAY, time(10, 0), 30)


def active_count(db, slot_id):
    db.expire_all()
    return (
        db.query(Reservation)
        .filter(Reservation.slot_id == slot_id, Reservation.status == ReservationStatus.ACTIVE)
        .count()
    )


class TestReserve:
    def test_claims_open_slot(self, uow, db, reservation_engine, slot, student):
        reservation = reservation_engine.reserve(uow, slot.id, student)

        assert reservation.id is not None
        assert reservation.slot_id == slot.id
        assert reservation.status == ReservationStatus.ACTIVE
        assert reservation.student_name == "Ken Sato"
        assert reservation.student_email == "ken@example.com"
        assert reservation.lesson_date == LESSON_DAY
        assert reservation.start_time == time(10, 0)
        assert reservation.end_time == time(10, 30)
        db.expire_all()
        assert db.get(LessonSlot, slot.id).is_available is False
        assert reservation_engine.has_active_reservation(uow, slot.id)

    def test_token_is_long_and_unique(self, uow, slot_store, reservation_engine, teacher, student):
        slots = slot_store.create_slots(uow, teacher.id, LESSON_DAY, [time(9, 0), time(10, 0)], 60)

        tokens = [reservation_engine.reserve(uow, s.id, student).cancel_token for s in slots]

        assert len(set(tokens)) == 2
        assert all(len(token) >= 40 for token in tokens)

    def test_reserved_slot_is_unavailable(self, uow, db, reservation_engine, slot, student):
        reservation_engine.reserve(uow, slot.id, student)

        with pytest.raises(SlotUnavailableError):
            reservation_engine.reserve(uow, slot.id, StudentInfo("Mika", "mika@example.com"))
        assert active_count(db, slot.id) == 1

    def test_unknown_slot(self, uow, reservation_engine, student):
        with pytest.raises(NotFoundError):
            reservation_engine.reserve(uow, 404, student)

    def test_past_slot_is_unavailable(self, uow, slot_store, teacher, student, slot):
        later = ReservationEngine(today=lambda: date(2025, 12, 11))

        with pytest.raises(SlotUnavailableError):
            later.reserve(uow, slot.id, student)

    @pytest.mark.parametrize("name, email", [("", "ken@example.com"), ("Ken", "  ")])
    def test_student_contact_is_required(self, uow, reservation_engine, slot, name, email):
        with pytest.raises(ValidationError):
            reservation_engine.reserve(uow, slot.id, StudentInfo(name, email))

    def test_concurrent_claims_yield_exactly_one_reservation(
        self, session_factory, locks, reservation_engine, slot, db
    ):
        attempts = 10
        slot_id = slot.id
        barrier = threading.Barrier(attempts)

        def attempt(n):
            session = session_factory()
            try:
                barrier.wait()
                try:
                    reservation_engine.reserve(
                        UnitOfWork(session, locks=locks),
                        slot_id,
                        StudentInfo(f"Student {n}", f"student{n}@example.com"),
                    )
                    return "reserved"
                except SlotUnavailableError:
                    return "unavailable"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=attempts) as executor:
            results = list(executor.map(attempt, range(attempts)))

        assert results.count("reserved") == 1
        assert results.count("unavailable") == attempts - 1
        assert active_count(db, slot_id) == 1
        assert len(locks) == 0


class TestCancel:
    def test_reopens_slot(self, uow, db, reservation_engine, slot, student):
        reservation = reservation_engine.reserve(uow, slot.id, student)

        cancelled = reservation_engine.cancel(uow, reservation.cancel_token)

        assert cancelled.id == reservation.id
        assert cancelled.status == ReservationStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        db.expire_all()
        assert db.get(LessonSlot, slot.id).is_available is True
        assert not reservation_engine.has_active_reservation(uow, slot.id)

    def test_second_cancel_is_rejected_and_slot_stays_open(
        self, uow, db, reservation_engine, slot, student
    ):
        reservation = reservation_engine.reserve(uow, slot.id, student)
        reservation_engine.cancel(uow, reservation.cancel_token)

        with pytest.raises(NotFoundError):
            reservation_engine.cancel(uow, reservation.cancel_token)

        db.expire_all()
        assert db.get(LessonSlot, slot.id).is_available is True

    def test_stale_token_does_not_release_new_reservation(
        self, uow, db, reservation_engine, slot, student
    ):
        first = reservation_engine.reserve(uow, slot.id, student)
        first_token = first.cancel_token
        reservation_engine.cancel(uow, first_token)
        second = reservation_engine.reserve(uow, slot.id, StudentInfo("Mika", "mika@example.com"))

        with pytest.raises(NotFoundError):
            reservation_engine.cancel(uow, first_token)

        db.expire_all()
        assert db.get(LessonSlot, slot.id).is_available is False
        assert db.get(Reservation, second.id).status == ReservationStatus.ACTIVE

    @pytest.mark.parametrize("token", ["", "not-a-real-token"])
    def test_unknown_token(self, uow, reservation_engine, token):
        with pytest.raises(NotFoundError):
            reservation_engine.cancel(uow, token)

    def test_slot_can_be_booked_again(self, uow, reservation_engine, slot, student):
        reservation = reservation_engine.reserve(uow, slot.id, student)
        reservation_engine.cancel(uow, reservation.cancel_token)

        again = reservation_engine.reserve(uow, slot.id, student)

        assert again.id != reservation.id
        assert again.status == ReservationStatus.ACTIVE


class TestQueries:
    def test_get_reservation(self, uow, reservation_engine, slot, student):
        reservation = reservation_engine.reserve(uow, slot.id, student)

        assert reservation_engine.get_reservation(uow, reservation.id).id == reservation.id

    def test_get_unknown_reservation(self, uow, reservation_engine):
        with pytest.raises(NotFoundError):
            reservation_engine.get_reservation(uow, 404)

    def test_list_for_student_newest_first(self, uow, slot_store, teacher, student):
        clock = iter(datetime(2025, 12, 1, 9, 0) + timedelta(minutes=n) for n in range(10))
        engine = ReservationEngine(today=lambda: TODAY, now=lambda: next(clock))
        slots = slot_store.create_slots(
            uow, teacher.id, LESSON_DAY, [time(9, 0), time(10, 0), time(11, 0)], 60
        )
        first = engine.reserve(uow, slots[0].id, student)
        engine.reserve(uow, slots[1].id, StudentInfo("Mika", "mika@example.com"))
        second = engine.reserve(uow, slots[2].id, student)
        engine.cancel(uow, first.cancel_token)

        history = engine.list_for_student(uow, "KEN@example.com")

        assert [r.id for r in history] == [second.id, first.id]
        assert [r.status for r in history] == [ReservationStatus.ACTIVE, ReservationStatus.CANCELLED]

    def test_list_for_unknown_student_is_empty(self, uow, reservation_engine):
        assert reservation_engine.list_for_student(uow, "nobody@example.com") == []

    def test_active_slot_ids(self, uow, slot_store, reservation_engine, teacher, student):
        slots = slot_store.create_slots(uow, teacher.id, LESSON_DAY, [time(9, 0), time(10, 0)], 60)
        reservation_engine.reserve(uow, slots[1].id, student)

        assert reservation_engine.active_slot_ids(uow, [s.id for s in slots]) == {slots[1].id}
        assert reservation_engine.active_slot_ids(uow, []) == set()


def test_reserved_slot_lifecycle(uow, db, slot_store, reservation_engine, slot, student):
    slot_id = slot.id
    reservation = reservation_engine.reserve(uow, slot_id, student)
    with pytest.raises(HasReservationError):
        slot_store.delete_slot(uow, slot_id)

    reservation_engine.cancel(uow, reservation.cancel_token)
    slot_store.delete_slot(uow, slot_id)

    assert db.get(LessonSlot, slot_id) is None
