# lesson-booking-backend/slot_store.py
"""
Slot store: a teacher's bookable lesson slots.

For a given teacher and date no two slots may overlap. Every mutation
re-reads the teacher's slots for the target date inside a unit of work
locked on that teacher, so the overlap check and the write commit
together. Slots with an active reservation are frozen: they cannot be
moved, resized or deleted until the reservation is cancelled.
"""

from datetime import date, time
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from exceptions import (
    HasReservationError,
    NotFoundError,
    OverlapError,
    PastDateError,
    ValidationError,
)
from intervals import compute_end, overlaps, validate_duration
from locks import slot_key, teacher_key
from models import LessonSlot, Teacher
from reservations import ReservationEngine
from teachers import get_teacher
from unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def _clock_time(value: time) -> time:
    return value.replace(tzinfo=None)


def _first_overlap(
    slots: Iterable[LessonSlot], start: time, end: time, exclude_id: Optional[int] = None
) -> Optional[LessonSlot]:
    for slot in slots:
        if slot.id == exclude_id:
            continue
        if overlaps(slot.start_time, slot.end_time, start, end):
            return slot
    return None


class SlotStore:
    def __init__(self, reservations: ReservationEngine, today: Callable[[], date] = date.today):
        self.reservations = reservations
        self.today = today

    # --- Queries ---

    def list_slots(
        self, uow: UnitOfWork, teacher_id: int, start_date: date, end_date: date
    ) -> List[LessonSlot]:
        """Slots of one teacher between two dates (inclusive), ordered by date then start time."""
        if end_date < start_date:
            raise ValidationError(
                "end_date must be on or after start_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        get_teacher(uow, teacher_id)
        return (
            uow.session.query(LessonSlot)
            .filter(
                LessonSlot.teacher_id == teacher_id,
                LessonSlot.date >= start_date,
                LessonSlot.date <= end_date,
            )
            .order_by(LessonSlot.date, LessonSlot.start_time)
            .all()
        )

    def get_slot(self, uow: UnitOfWork, slot_id: int, teacher_id: Optional[int] = None) -> LessonSlot:
        slot = uow.session.get(LessonSlot, slot_id)
        if slot is None or (teacher_id is not None and slot.teacher_id != teacher_id):
            raise NotFoundError("Lesson slot", slot_id)
        return slot

    # --- Helpers used inside a unit of work ---

    def _check_not_past(self, slot_date: date) -> None:
        if slot_date < self.today():
            raise PastDateError(slot_date)

    def _lock_teacher(self, db: Session, teacher_id: int) -> Teacher:
        teacher = db.query(Teacher).filter(Teacher.id == teacher_id).with_for_update().one_or_none()
        if teacher is None:
            raise NotFoundError("Teacher", teacher_id)
        return teacher

    def _lock_slot(self, db: Session, slot_id: int, teacher_id: int) -> LessonSlot:
        slot = db.query(LessonSlot).filter(LessonSlot.id == slot_id).with_for_update().one_or_none()
        if slot is None or slot.teacher_id != teacher_id:
            raise NotFoundError("Lesson slot", slot_id)
        return slot

    def _slots_on(self, db: Session, teacher_id: int, slot_date: date) -> List[LessonSlot]:
        return (
            db.query(LessonSlot)
            .filter(LessonSlot.teacher_id == teacher_id, LessonSlot.date == slot_date)
            .order_by(LessonSlot.start_time)
            .all()
        )

    def _owner_of(self, uow: UnitOfWork, slot_id: int, teacher_id: Optional[int]) -> int:
        # A slot never changes teacher, so the owner can be read before locking
        return self.get_slot(uow, slot_id, teacher_id).teacher_id

    # --- Mutations ---

    def create_slot(
        self, uow: UnitOfWork, teacher_id: int, slot_date: date, start_time: time, duration: int
    ) -> LessonSlot:
        return self.create_slots(uow, teacher_id, slot_date, [start_time], duration)[0]

    def create_slots(
        self,
        uow: UnitOfWork,
        teacher_id: int,
        slot_date: date,
        start_times: Sequence[time],
        duration: int,
    ) -> List[LessonSlot]:
        """
        Create one or more slots on the same day, all or nothing.

        Candidates must not overlap each other nor any stored slot of the
        teacher on that date; otherwise OverlapError is raised and nothing
        is written.
        """
        validate_duration(duration)
        self._check_not_past(slot_date)
        if not start_times:
            raise ValidationError("At least one start time is required", details={"field": "start_times"})

        candidates: List[Tuple[time, time]] = sorted(
            (_clock_time(start), compute_end(_clock_time(start), duration)) for start in start_times
        )
        for (a_start, a_end), (b_start, b_end) in zip(candidates, candidates[1:]):
            if overlaps(a_start, a_end, b_start, b_end):
                raise OverlapError()

        with uow.atomic(teacher_key(teacher_id)) as db:
            self._lock_teacher(db, teacher_id)
            existing = self._slots_on(db, teacher_id, slot_date)
            for start, end in candidates:
                clash = _first_overlap(existing, start, end)
                if clash is not None:
                    logger.info(
                        "Slot %s-%s on %s for teacher %s overlaps slot %s",
                        start, end, slot_date, teacher_id, clash.id,
                    )
                    raise OverlapError(clash.id)

            slots = [
                LessonSlot(
                    teacher_id=teacher_id,
                    date=slot_date,
                    start_time=start,
                    end_time=end,
                    duration=duration,
                    is_available=True,
                )
                for start, end in candidates
            ]
            db.add_all(slots)
            db.flush()

        logger.info(
            "Teacher %s created %d slot(s) on %s: %s",
            teacher_id, len(slots), slot_date, [slot.id for slot in slots],
        )
        return slots

    def update_slot(
        self,
        uow: UnitOfWork,
        slot_id: int,
        slot_date: Optional[date] = None,
        start_time: Optional[time] = None,
        duration: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> LessonSlot:
        """
        Move or resize an open slot.

        Fields left as None keep their stored value; the end time is always
        recomputed from the resulting start time and duration.
        """
        if duration is not None:
            validate_duration(duration)
        if slot_date is not None:
            self._check_not_past(slot_date)

        owner = self._owner_of(uow, slot_id, teacher_id)
        with uow.atomic(teacher_key(owner), slot_key(slot_id)) as db:
            self._lock_teacher(db, owner)
            slot = self._lock_slot(db, slot_id, owner)
            if self.reservations.has_active_reservation(uow, slot_id):
                raise HasReservationError(slot_id)

            new_date = slot_date if slot_date is not None else slot.date
            new_start = _clock_time(start_time) if start_time is not None else slot.start_time
            new_duration = duration if duration is not None else slot.duration
            new_end = compute_end(new_start, new_duration)

            clash = _first_overlap(self._slots_on(db, owner, new_date), new_start, new_end, exclude_id=slot.id)
            if clash is not None:
                logger.info("Update of slot %s rejected, overlaps slot %s", slot_id, clash.id)
                raise OverlapError(clash.id)

            slot.date = new_date
            slot.start_time = new_start
            slot.end_time = new_end
            slot.duration = new_duration
            db.flush()

        logger.info("Slot %s updated to %s %s-%s", slot_id, new_date, new_start, new_end)
        return slot

    def delete_slot(self, uow: UnitOfWork, slot_id: int, teacher_id: Optional[int] = None) -> None:
        owner = self._owner_of(uow, slot_id, teacher_id)
        with uow.atomic(teacher_key(owner), slot_key(slot_id)) as db:
            self._lock_teacher(db, owner)
            slot = self._lock_slot(db, slot_id, owner)
            if self.reservations.has_active_reservation(uow, slot_id):
                raise HasReservationError(slot_id)
            self.reservations.detach_slot(uow, slot_id)
            db.delete(slot)

        logger.info("Slot %s of teacher %s deleted", slot_id, owner)
