# lesson-booking-backend/main.py

import datetime as dt
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

import config
import models
import teachers
from calendar_view import CalendarView
from database import get_db
from exceptions import BookingError
from reservations import ReservationEngine, StudentInfo
from slot_store import SlotStore
from unit_of_work import UnitOfWork

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Lesson Booking API",
    description="API for publishing lesson slots and reserving them.",
    version="0.1.0",
)

# --- CORS Configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Core services (stateless; state lives in the database) ---
reservation_engine = ReservationEngine()
slot_store = SlotStore(reservation_engine)
calendar_view = CalendarView(slot_store, reservation_engine)


# --- Dependencies ---
def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    return UnitOfWork(db)


def get_reservation_engine() -> ReservationEngine:
    return reservation_engine


def get_slot_store() -> SlotStore:
    return slot_store


def get_calendar_view() -> CalendarView:
    return calendar_view


def get_current_teacher_id(x_teacher_id: Optional[int] = Header(None)) -> int:
    """The identity layer in front of this service authenticates teachers and forwards their id."""
    if x_teacher_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Teacher authentication required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return x_teacher_id


# --- Pydantic Models for API Request/Response ---
class SlotResponse(BaseModel):
    id: int
    teacher_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    duration: int
    is_available: bool

    class Config:
        from_attributes = True


class SlotCreateRequest(BaseModel):
    date: dt.date
    start_time: dt.time
    duration: int


class SlotBulkCreateRequest(BaseModel):
    date: dt.date
    start_times: List[dt.time]
    duration: int


class SlotUpdateRequest(BaseModel):
    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    duration: Optional[int] = None


class ReservationRequest(BaseModel):
    slot_id: int
    student_name: str
    student_email: EmailStr
    student_phone: Optional[str] = None
    notes: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    slot_id: Optional[int] = None # None once the (open) slot has been deleted
    teacher_id: int
    lesson_date: dt.date
    start_time: dt.time
    end_time: dt.time
    student_name: str
    student_email: EmailStr
    student_phone: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_at: dt.datetime
    cancelled_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class ReservationCreatedResponse(ReservationResponse):
    # Only ever returned once, to the student who booked
    cancel_token: str


class TeacherCreateRequest(BaseModel):
    name: str
    email: EmailStr
    password_hash: str # produced by the identity service


class TeacherResponse(BaseModel):
    id: int
    name: str
    email: EmailStr

    class Config:
        from_attributes = True


def envelope(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


# --- Error handling ---
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "code": "InternalError", "message": "Internal server error"},
    )


@app.on_event("startup")
async def startup_event():
    # Create database tables if they don't exist
    models.create_db_tables()


# --- API Endpoints ---
@app.get("/")
async def read_root():
    return {"message": "Welcome to the Lesson Booking API!"}


@app.post("/api/teachers", status_code=status.HTTP_201_CREATED)
def register_teacher(body: TeacherCreateRequest, uow: UnitOfWork = Depends(get_uow)):
    teacher = teachers.create_teacher(uow, body.name, body.email, body.password_hash)
    return envelope(TeacherResponse.model_validate(teacher), "Teacher registered")


@app.get("/api/lesson-slots")
def get_calendar(
    teacher_id: int,
    start_date: dt.date,
    end_date: dt.date,
    uow: UnitOfWork = Depends(get_uow),
    view: CalendarView = Depends(get_calendar_view),
):
    """Slots of one teacher grouped by date, for calendar rendering."""
    calendar = view.calendar_for(uow, teacher_id, start_date, end_date)
    return envelope(
        {day.isoformat(): [entry.to_dict() for entry in entries] for day, entries in calendar.items()}
    )


@app.get("/api/lesson-slots/{slot_id}")
def get_slot(
    slot_id: int = Path(..., description="The ID of the lesson slot"),
    uow: UnitOfWork = Depends(get_uow),
    store: SlotStore = Depends(get_slot_store),
):
    return envelope(SlotResponse.model_validate(store.get_slot(uow, slot_id)))


@app.post("/api/lesson-slots", status_code=status.HTTP_201_CREATED)
def create_slot(
    body: SlotCreateRequest,
    teacher_id: int = Depends(get_current_teacher_id),
    uow: UnitOfWork = Depends(get_uow),
    store: SlotStore = Depends(get_slot_store),
):
    slot = store.create_slot(uow, teacher_id, body.date, body.start_time, body.duration)
    return envelope(SlotResponse.model_validate(slot), "Slot created")


@app.post("/api/lesson-slots/bulk", status_code=status.HTTP_201_CREATED)
def create_slots(
    body: SlotBulkCreateRequest,
    teacher_id: int = Depends(get_current_teacher_id),
    uow: UnitOfWork = Depends(get_uow),
    store: SlotStore = Depends(get_slot_store),
):
    slots = store.create_slots(uow, teacher_id, body.date, body.start_times, body.duration)
    return envelope([SlotResponse.model_validate(slot) for slot in slots], f"{len(slots)} slots created")


@app.put("/api/lesson-slots/{slot_id}")
def update_slot(
    body: SlotUpdateRequest,
    slot_id: int = Path(..., description="The ID of the lesson slot"),
    teacher_id: int = Depends(get_current_teacher_id),
    uow: UnitOfWork = Depends(get_uow),
    store: SlotStore = Depends(get_slot_store),
):
    slot = store.update_slot(
        uow,
        slot_id,
        slot_date=body.date,
        start_time=body.start_time,
        duration=body.duration,
        teacher_id=teacher_id,
    )
    return envelope(SlotResponse.model_validate(slot), "Slot updated")


@app.delete("/api/lesson-slots/{slot_id}")
def delete_slot(
    slot_id: int = Path(..., description="The ID of the lesson slot"),
    teacher_id: int = Depends(get_current_teacher_id),
    uow: UnitOfWork = Depends(get_uow),
    store: SlotStore = Depends(get_slot_store),
):
    store.delete_slot(uow, slot_id, teacher_id=teacher_id)
    return envelope(message="Slot deleted")


@app.get("/api/reservations/available-slots")
def get_available_slots(
    start_date: dt.date,
    end_date: dt.date,
    teacher_id: Optional[int] = None,
    uow: UnitOfWork = Depends(get_uow),
    view: CalendarView = Depends(get_calendar_view),
):
    slots = view.available_slots(uow, start_date, end_date, teacher_id=teacher_id)
    return envelope([SlotResponse.model_validate(slot) for slot in slots])


@app.post("/api/reservations", status_code=status.HTTP_201_CREATED)
def create_reservation(
    body: ReservationRequest,
    uow: UnitOfWork = Depends(get_uow),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    student = StudentInfo(
        name=body.student_name,
        email=body.student_email,
        phone=body.student_phone,
        notes=body.notes,
    )
    reservation = engine.reserve(uow, body.slot_id, student)
    return envelope(ReservationCreatedResponse.model_validate(reservation), "Reservation created")


@app.get("/api/reservations/student/history")
def get_student_reservations(
    email: EmailStr = Query(..., description="The student's email address"),
    uow: UnitOfWork = Depends(get_uow),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    reservations = engine.list_for_student(uow, email)
    return envelope([ReservationResponse.model_validate(r) for r in reservations])


@app.get("/api/reservations/{reservation_id}")
def get_reservation(
    reservation_id: int = Path(..., description="The ID of the reservation"),
    uow: UnitOfWork = Depends(get_uow),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    reservation = engine.get_reservation(uow, reservation_id)
    return envelope(ReservationResponse.model_validate(reservation))


@app.post("/api/reservations/cancel/{cancel_token}")
def cancel_reservation(
    cancel_token: str = Path(..., description="Token handed out when the reservation was made"),
    uow: UnitOfWork = Depends(get_uow),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    reservation = engine.cancel(uow, cancel_token)
    return envelope(ReservationResponse.model_validate(reservation), "Reservation cancelled")
