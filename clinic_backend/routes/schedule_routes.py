from datetime import date, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_doctor
from clinic_backend.database import get_db
from clinic_backend.models.availability import BlackoutDate, DoctorAvailability
from clinic_backend.models.consultation_type import ConsultationType
from clinic_backend.models.doctor import Doctor
from clinic_backend.routes.common import database_unavailable, ensure_database_ready

router = APIRouter(tags=['schedule'])

CONSULTATION_TYPES = ('standard', 'followup', 'emergency')
MAX_CONSULTATION_MINUTES = 240
MAX_BLACKOUT_REASON_LENGTH = 200


class AvailabilityWindow(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
        return value

    @model_validator(mode='after')
    def validate_window(self) -> 'AvailabilityWindow':
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time.')
        return self


class AvailabilityWindowResponse(AvailabilityWindow):
    id: int

    class Config:
        from_attributes = True


class ReplaceAvailabilityRequest(BaseModel):
    windows: list[AvailabilityWindow]

    @model_validator(mode='after')
    def validate_no_overlap(self) -> 'ReplaceAvailabilityRequest':
        by_day: dict[int, list[AvailabilityWindow]] = {}
        for window in self.windows:
            if window.is_available:
                by_day.setdefault(window.day_of_week, []).append(window)

        for windows in by_day.values():
            windows.sort(key=lambda window: window.start_time)
            for previous, current in zip(windows, windows[1:]):
                if current.start_time < previous.end_time:
                    raise ValueError('Availability windows on the same day must not overlap.')
        return self


class CreateBlackoutDateRequest(BaseModel):
    date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLACKOUT_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLACKOUT_REASON_LENGTH} characters or fewer.')

        return normalized


class BlackoutDateResponse(BaseModel):
    id: int
    date: date
    reason: str | None = None

    class Config:
        from_attributes = True


class CreateConsultationTypeRequest(BaseModel):
    type: str
    name: str
    duration_minutes: int
    fee: Decimal = Decimal('0')

    @field_validator('type')
    @classmethod
    def validate_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in CONSULTATION_TYPES:
            raise ValueError('Invalid consultation type.')
        return normalized

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if not 5 <= value <= MAX_CONSULTATION_MINUTES:
            raise ValueError(f'Duration must be between 5 and {MAX_CONSULTATION_MINUTES} minutes.')
        return value

    @field_validator('fee')
    @classmethod
    def validate_fee(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError('Fee cannot be negative.')
        return value


class ConsultationTypeResponse(BaseModel):
    id: int
    doctor_id: int
    type: str
    name: str
    duration_minutes: int
    fee: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class DoctorDirectoryEntry(BaseModel):
    id: int
    tenant_id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


@router.get('', response_model=list[DoctorDirectoryEntry])
def list_doctors(
    tenant_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Doctor).filter(Doctor.is_active.is_(True))
        if tenant_id:
            query = query.filter(Doctor.tenant_id == tenant_id)

        return query.order_by(Doctor.full_name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/me/availability', response_model=list[AvailabilityWindowResponse])
def list_my_availability(
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == current_doctor.id,
        ).order_by(DoctorAvailability.day_of_week.asc(), DoctorAvailability.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/me/availability', response_model=list[AvailabilityWindowResponse])
def replace_my_availability(
    data: ReplaceAvailabilityRequest,
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == current_doctor.id,
        ).delete(synchronize_session=False)

        windows = [
            DoctorAvailability(
                doctor_id=current_doctor.id,
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time,
                is_available=window.is_available,
            )
            for window in data.windows
        ]
        db.add_all(windows)
        db.commit()

        for window in windows:
            db.refresh(window)

        return sorted(windows, key=lambda window: (window.day_of_week, window.start_time))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/me/blackout-dates', response_model=list[BlackoutDateResponse])
def list_my_blackout_dates(
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(BlackoutDate).filter(
            BlackoutDate.doctor_id == current_doctor.id,
            BlackoutDate.date >= date.today(),
        ).order_by(BlackoutDate.date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/me/blackout-dates', response_model=BlackoutDateResponse, status_code=status.HTTP_201_CREATED)
def create_my_blackout_date(
    data: CreateBlackoutDateRequest,
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    if data.date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Blackout dates must be today or later.',
        )

    ensure_database_ready()

    blackout = BlackoutDate(doctor_id=current_doctor.id, date=data.date, reason=data.reason)
    try:
        db.add(blackout)
        db.commit()
        db.refresh(blackout)
        return blackout
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This date is already blocked.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/me/blackout-dates/{blackout_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_my_blackout_date(
    blackout_id: int,
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        blackout = db.query(BlackoutDate).filter(
            BlackoutDate.id == blackout_id,
            BlackoutDate.doctor_id == current_doctor.id,
        ).first()

        if not blackout:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blackout date not found.',
            )

        db.delete(blackout)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/me/consultation-types', response_model=list[ConsultationTypeResponse])
def list_my_consultation_types(
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(ConsultationType).filter(
            ConsultationType.doctor_id == current_doctor.id,
        ).order_by(ConsultationType.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/me/consultation-types', response_model=ConsultationTypeResponse, status_code=status.HTTP_201_CREATED)
def create_my_consultation_type(
    data: CreateConsultationTypeRequest,
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    consultation_type = ConsultationType(
        doctor_id=current_doctor.id,
        type=data.type,
        name=data.name,
        duration_minutes=data.duration_minutes,
        fee=data.fee,
        is_active=True,
    )
    try:
        db.add(consultation_type)
        db.commit()
        db.refresh(consultation_type)
        return consultation_type
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}/consultation-types', response_model=list[ConsultationTypeResponse])
def list_doctor_consultation_types(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(ConsultationType).filter(
            ConsultationType.doctor_id == doctor_id,
            ConsultationType.is_active.is_(True),
        ).order_by(ConsultationType.duration_minutes.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
