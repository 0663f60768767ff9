# lesson-booking-backend/teachers.py
"""Minimal teacher identity records. Authentication lives outside this service."""

import logging

from sqlalchemy import func

from exceptions import NotFoundError, ValidationError
from models import Teacher
from unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def create_teacher(uow: UnitOfWork, name: str, email: str, password_hash: str) -> Teacher:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationError("Name is required", details={"field": "name"})
    if not email:
        raise ValidationError("Email is required", details={"field": "email"})
    if not password_hash:
        raise ValidationError("Credential hash is required", details={"field": "password_hash"})

    with uow.atomic(f"teacher-email:{email}") as db:
        taken = db.query(Teacher.id).filter(func.lower(Teacher.email) == email).first()
        if taken:
            raise ValidationError(
                "This email address is already registered", details={"field": "email"}
            )
        teacher = Teacher(name=name, email=email, password_hash=password_hash)
        db.add(teacher)
        db.flush()
        logger.info("Teacher %s registered", teacher.id)
    return teacher


def get_teacher(uow: UnitOfWork, teacher_id: int) -> Teacher:
    teacher = uow.session.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFoundError("Teacher", teacher_id)
    return teacher
