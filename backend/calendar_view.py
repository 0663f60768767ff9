# lesson-booking-backend/calendar_view.py
"""Read-only projections over the slot store and reservation engine for calendar rendering."""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import date, time
from typing import Callable, Dict, List, Optional

from exceptions import ValidationError
from models import LessonSlot
from reservations import ReservationEngine
from slot_store import SlotStore
from unit_of_work import UnitOfWork


@dataclass(frozen=True)
class CalendarEntry:
    slot_id: int
    start_time: time
    end_time: time
    duration: int
    is_available: bool
    has_reservation: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start_time"] = self.start_time.strftime("%H:%M")
        data["end_time"] = self.end_time.strftime("%H:%M")
        return data


Calendar = Dict[date, List[CalendarEntry]]


def inconsistencies(calendar: Calendar) -> List[CalendarEntry]:
    """Entries whose stored availability flag disagrees with the reservation records."""
    return [
        entry
        for entries in calendar.values()
        for entry in entries
        if entry.is_available == entry.has_reservation
    ]


class CalendarView:
    def __init__(
        self,
        slots: SlotStore,
        reservations: ReservationEngine,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.slots = slots
        self.reservations = reservations
        self.today = today

    def calendar_for(
        self, uow: UnitOfWork, teacher_id: int, start_date: date, end_date: date
    ) -> Calendar:
        """
        Group a teacher's slots by date.

        `has_reservation` comes from the reservation records, not from the
        slot's `is_available` flag, so the two can be cross-checked.
        """
        slots = self.slots.list_slots(uow, teacher_id, start_date, end_date)
        reserved = self.reservations.active_slot_ids(uow, (slot.id for slot in slots))

        calendar: Calendar = OrderedDict()
        for slot in slots:
            calendar.setdefault(slot.date, []).append(
                CalendarEntry(
                    slot_id=slot.id,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    duration=slot.duration,
                    is_available=slot.is_available,
                    has_reservation=slot.id in reserved,
                )
            )
        return calendar

    def available_slots(
        self,
        uow: UnitOfWork,
        start_date: date,
        end_date: date,
        teacher_id: Optional[int] = None,
    ) -> List[LessonSlot]:
        """Open slots students can still book, from today onwards."""
        if end_date < start_date:
            raise ValidationError(
                "end_date must be on or after start_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        start_date = max(start_date, self.today())
        query = uow.session.query(LessonSlot).filter(
            LessonSlot.is_available.is_(True),
            LessonSlot.date >= start_date,
            LessonSlot.date <= end_date,
        )
        if teacher_id is not None:
            query = query.filter(LessonSlot.teacher_id == teacher_id)
        candidates = query.order_by(
            LessonSlot.date, LessonSlot.start_time, LessonSlot.teacher_id
        ).all()
        reserved = self.reservations.active_slot_ids(uow, (slot.id for slot in candidates))
        return [slot for slot in candidates if slot.id not in reserved]
