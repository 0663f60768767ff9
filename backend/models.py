# lesson-booking-backend/models.py

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    text,
)

# Import Base from your database.py
from database import Base, engine


class ReservationStatus:
    ACTIVE = "active"
    CANCELLED = "cancelled"


ACTIVE_ONLY = text("status = 'active'")


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class LessonSlot(Base):
    __tablename__ = "lesson_slots"

    id = Column(Integer, primary_key=True, index=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False) # start_time + duration
    duration = Column(Integer, nullable=False) # minutes
    # Maintained by the reservation engine; True while no active reservation claims the slot
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("ix_lesson_slots_teacher_date_start", "teacher_id", "date", "start_time"),
    )


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    # Lookup relation only: a slot does not own its reservations.
    # Cleared when an open slot is deleted; the snapshot columns keep the history readable.
    slot_id = Column(Integer, ForeignKey("lesson_slots.id", ondelete="SET NULL"), nullable=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False)
    lesson_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    student_name = Column(String(255), nullable=False)
    student_email = Column(String(255), nullable=False, index=True)
    student_phone = Column(String(50), nullable=True)
    notes = Column(String, nullable=True)
    cancel_token = Column(String(128), nullable=False, unique=True)
    status = Column(String(16), nullable=False, default=ReservationStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # At most one active reservation per slot; cancelled rows are kept for history
        Index(
            "uq_reservations_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
    )


# This function creates the database tables if they don't exist
def create_db_tables(bind=None):
    Base.metadata.create_all(bind=bind or engine)
