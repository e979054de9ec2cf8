from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling.slot_generation import (
    ConsultationTypeNotFoundError,
    InvalidSlotError,
    SlotGenerationService,
    SlotUnavailableError,
    TimeSlot,
    generate_session_id,
    to_clinic_time,
)

router = APIRouter(tags=['slots'])

MAX_SESSION_ID_LENGTH = 64


class TimeSlotResponse(BaseModel):
    start: datetime
    end: datetime
    start_time: str
    end_time: str
    status: str
    available: bool
    locked: bool


class CreateSlotLockRequest(BaseModel):
    doctor_id: int
    start_time: datetime
    end_time: datetime
    session_id: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_seconds(cls, value: datetime) -> datetime:
        return to_clinic_time(value).replace(second=0, microsecond=0)

    @field_validator('session_id')
    @classmethod
    def validate_session_id(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_SESSION_ID_LENGTH:
            raise ValueError(f'Session id must be {MAX_SESSION_ID_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_range(self) -> 'CreateSlotLockRequest':
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time.')
        return self


class SlotLockResponse(BaseModel):
    id: int
    doctor_id: int
    start_at: datetime
    end_at: datetime
    locked_by_session: str
    expires_at: datetime

    class Config:
        from_attributes = True


def to_slot_response(slot: TimeSlot) -> TimeSlotResponse:
    return TimeSlotResponse(
        start=slot.start,
        end=slot.end,
        start_time=slot.start_label,
        end_time=slot.end_label,
        status=slot.status,
        available=slot.available,
        locked=slot.locked,
    )


def get_active_doctor(doctor_id: int, db: Session) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id, Doctor.is_active.is_(True)).first()
    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor not found.',
        )
    return doctor


@router.get('', response_model=list[TimeSlotResponse])
def list_slots(
    doctor_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    consultation_type_id: int = Query(...),
    session_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_active_doctor(doctor_id, db)
        service = SlotGenerationService(db, doctor_id)
        slots = service.get_available_slots(slot_date, consultation_type_id, session_id=session_id)
        return [to_slot_response(slot) for slot in slots]
    except ConsultationTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/range', response_model=dict[str, list[TimeSlotResponse]])
def list_slots_for_range(
    doctor_id: int = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    consultation_type_id: int = Query(...),
    session_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='end_date must not be before start_date.',
        )

    if (end_date - start_date).days + 1 > config.MAX_SLOT_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Slot ranges are limited to {config.MAX_SLOT_RANGE_DAYS} days.',
        )

    ensure_database_ready()

    try:
        get_active_doctor(doctor_id, db)
        service = SlotGenerationService(db, doctor_id)
        slots_by_day = service.get_available_slots_for_range(
            start_date,
            end_date,
            consultation_type_id,
            session_id=session_id,
        )
        return {
            day: [to_slot_response(slot) for slot in slots]
            for day, slots in slots_by_day.items()
        }
    except ConsultationTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/locks', response_model=SlotLockResponse, status_code=status.HTTP_201_CREATED)
def create_slot_lock(data: CreateSlotLockRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    session_id = data.session_id or generate_session_id()

    try:
        get_active_doctor(data.doctor_id, db)
        service = SlotGenerationService(db, data.doctor_id)
        return service.lock_slot(data.start_time, data.end_time, session_id)
    except InvalidSlotError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SlotUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/locks/{lock_id}', status_code=status.HTTP_204_NO_CONTENT)
def release_slot_lock(
    lock_id: int,
    doctor_id: int = Query(...),
    session_id: str = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = SlotGenerationService(db, doctor_id)
        released = service.unlock_slot(lock_id, session_id.strip())
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    if not released:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Slot lock not found.',
        )
