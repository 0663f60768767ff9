# lesson-booking-backend/reservations.py
"""
Reservation engine: binds a student to a lesson slot.

A claim and the slot's availability flip happen in one unit of work that
is serialized per slot, so concurrent attempts on the same slot yield a
single reservation. Cancellation needs nothing but the token handed out
at creation; it is single use, and a second attempt is rejected with
NotFoundError without touching the slot.
"""

from dataclasses import dataclass
from datetime import date, datetime
import logging
import secrets
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import config
from exceptions import NotFoundError, SlotUnavailableError, ValidationError
from locks import slot_key
from models import LessonSlot, Reservation, ReservationStatus
from unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentInfo:
    """Contact details a student leaves when booking. The email identifies the student."""
    name: str
    email: str
    phone: Optional[str] = None
    notes: Optional[str] = None

    def normalized(self) -> "StudentInfo":
        name = (self.name or "").strip()
        email = (self.email or "").strip().lower()
        if not name:
            raise ValidationError("Student name is required", details={"field": "name"})
        if not email:
            raise ValidationError("Student email is required", details={"field": "email"})
        return StudentInfo(
            name=name,
            email=email,
            phone=(self.phone or "").strip() or None,
            notes=self.notes or None,
        )


class ReservationEngine:
    def __init__(
        self,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.now,
        token_bytes: Optional[int] = None,
    ) -> None:
        self.today = today
        self.now = now
        self.token_bytes = config.CANCEL_TOKEN_BYTES if token_bytes is None else token_bytes

    def _new_token(self) -> str:
        return secrets.token_urlsafe(self.token_bytes)

    # --- Lookups ---

    def has_active_reservation(self, uow: UnitOfWork, slot_id: int) -> bool:
        query = uow.session.query(Reservation.id).filter(
            Reservation.slot_id == slot_id,
            Reservation.status == ReservationStatus.ACTIVE,
        )
        return uow.session.query(query.exists()).scalar()

    def active_slot_ids(self, uow: UnitOfWork, slot_ids: Iterable[int]) -> Set[int]:
        slot_ids = list(slot_ids)
        if not slot_ids:
            return set()
        rows = (
            uow.session.query(Reservation.slot_id)
            .filter(
                Reservation.slot_id.in_(slot_ids),
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .all()
        )
        return {row.slot_id for row in rows}

    def get_reservation(self, uow: UnitOfWork, reservation_id: int) -> Reservation:
        reservation = uow.session.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    def list_for_student(self, uow: UnitOfWork, student_email: str) -> List[Reservation]:
        """All reservations (active and cancelled) made with this email, newest first."""
        email = (student_email or "").strip().lower()
        if not email:
            raise ValidationError("Student email is required", details={"field": "email"})
        return (
            uow.session.query(Reservation)
            .filter(func.lower(Reservation.student_email) == email)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .all()
        )

    # --- Mutations ---

    def detach_slot(self, uow: UnitOfWork, slot_id: int) -> int:
        """Unlink past (cancelled) reservations from a slot that is about to be deleted."""
        return (
            uow.session.query(Reservation)
            .filter(
                Reservation.slot_id == slot_id,
                Reservation.status != ReservationStatus.ACTIVE,
            )
            .update({Reservation.slot_id: None}, synchronize_session=False)
        )

    def reserve(self, uow: UnitOfWork, slot_id: int, student: StudentInfo) -> Reservation:
        student = student.normalized()

        with uow.atomic(slot_key(slot_id)) as db:
            slot = (
                db.query(LessonSlot)
                .filter(LessonSlot.id == slot_id)
                .with_for_update()
                .one_or_none()
            )
            if slot is None:
                raise NotFoundError("Lesson slot", slot_id)

            if (
                not slot.is_available
                or slot.date < self.today()
                or self.has_active_reservation(uow, slot_id)
            ):
                logger.info("Reservation rejected: slot %s is not open", slot_id)
                raise SlotUnavailableError(slot_id)

            reservation = Reservation(
                slot_id=slot.id,
                teacher_id=slot.teacher_id,
                lesson_date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                student_name=student.name,
                student_email=student.email,
                student_phone=student.phone,
                notes=student.notes,
                cancel_token=self._new_token(),
                status=ReservationStatus.ACTIVE,
                created_at=self.now(),
            )
            db.add(reservation)
            slot.is_available = False
            try:
                db.flush()
            except IntegrityError as e:
                # Another process claimed the slot between our check and insert
                logger.warning("Reservation for slot %s lost a race: %s", slot_id, e.orig)
                raise SlotUnavailableError(slot_id) from e

        logger.info("Reservation %s created for slot %s", reservation.id, slot_id)
        return reservation

    def cancel(self, uow: UnitOfWork, cancel_token: str) -> Reservation:
        if not cancel_token:
            raise NotFoundError("Reservation")

        found = (
            uow.session.query(Reservation.slot_id)
            .filter(Reservation.cancel_token == cancel_token)
            .first()
        )
        if found is None:
            raise NotFoundError("Reservation")
        if found.slot_id is None:
            # Slot was deleted, which only happens once nothing is active against it
            raise NotFoundError("Active reservation")

        with uow.atomic(slot_key(found.slot_id)) as db:
            reservation = (
                db.query(Reservation)
                .filter(Reservation.cancel_token == cancel_token)
                .with_for_update()
                .one_or_none()
            )
            if reservation is None or reservation.status != ReservationStatus.ACTIVE:
                logger.info("Cancel rejected: reservation for token is not active")
                raise NotFoundError("Active reservation")

            slot = (
                db.query(LessonSlot)
                .filter(LessonSlot.id == reservation.slot_id)
                .with_for_update()
                .one_or_none()
            )
            reservation.status = ReservationStatus.CANCELLED
            reservation.cancelled_at = self.now()
            if slot is not None:
                slot.is_available = True

        logger.info("Reservation %s cancelled, slot %s reopened", reservation.id, reservation.slot_id)
        return reservation
