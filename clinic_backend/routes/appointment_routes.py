import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_doctor
from clinic_backend.database import get_db
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.patient import Patient
from clinic_backend.models.slot_lock import SlotLock
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.routes.slot_routes import get_active_doctor
from clinic_backend.scheduling.appointment_status import (
    APPOINTMENT_MODES,
    APPOINTMENT_STATUSES,
    can_cancel_appointment,
    can_change_status,
    can_join_meeting,
    generate_meeting_link,
    get_next_possible_statuses,
    is_upcoming,
    occupies_slot,
)
from clinic_backend.scheduling.slot_generation import (
    ConsultationTypeNotFoundError,
    SlotGenerationService,
    to_clinic_time,
)
from clinic_backend.services import whatsapp_service

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    patient_id: int
    consultation_type_id: int
    start_time: datetime
    mode: str = 'in_person'
    session_id: str | None = None
    notes: str | None = None

    @field_validator('start_time')
    @classmethod
    def strip_seconds(cls, value: datetime) -> datetime:
        return to_clinic_time(value).replace(second=0, microsecond=0)

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_MODES:
            raise ValueError('Invalid appointment mode.')
        return normalized

    @field_validator('session_id')
    @classmethod
    def normalize_session_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateAppointmentStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


class StatusOptionResponse(BaseModel):
    value: str
    label: str


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    consultation_type_id: int | None = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    mode: str
    notes: str | None = None
    meeting_link: str | None = None
    is_upcoming: bool
    can_join_meeting: bool
    can_cancel: bool
    next_statuses: list[StatusOptionResponse]


def to_appointment_response(appointment: Appointment, now: datetime | None = None) -> AppointmentResponse:
    mode = appointment.mode or 'in_person'
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        consultation_type_id=appointment.consultation_type_id,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        duration_minutes=int((appointment.end_time - appointment.start_time).total_seconds() // 60),
        status=appointment.status,
        mode=mode,
        notes=appointment.notes,
        meeting_link=generate_meeting_link(appointment.id) if mode == 'video' else None,
        is_upcoming=is_upcoming(appointment.start_time, appointment.status, now=now),
        can_join_meeting=can_join_meeting(appointment.start_time, appointment.status, now=now),
        can_cancel=can_cancel_appointment(appointment.status),
        next_statuses=[
            StatusOptionResponse(**option) for option in get_next_possible_statuses(appointment.status)
        ],
    )


def notify_booking(appointment: Appointment, patient: Patient, doctor: Doctor) -> None:
    if not whatsapp_service.send_booking_confirmation(appointment, patient, doctor):
        logger.warning('Booking confirmation not delivered for appointment %s', appointment.id)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    now = datetime.now()
    if data.start_time <= now:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    try:
        doctor = get_active_doctor(data.doctor_id, db)

        patient = db.query(Patient).filter(Patient.id == data.patient_id).first()
        if patient is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Patient not found.',
            )
        if patient.tenant_id != doctor.tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Patient and doctor belong to different clinics.',
            )

        service = SlotGenerationService(db, doctor.id)
        slots = service.get_available_slots(
            data.start_time.date(),
            data.consultation_type_id,
            now=now,
            session_id=data.session_id,
        )
        slot = next((candidate for candidate in slots if candidate.start == data.start_time), None)

        if slot is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Requested time is not a bookable slot for this consultation type.',
            )
        if not slot.available:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'This slot is {slot.status}.',
            )

        appointment = Appointment(
            tenant_id=doctor.tenant_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            consultation_type_id=data.consultation_type_id,
            start_time=slot.start,
            end_time=slot.end,
            status='scheduled',
            mode=data.mode,
            notes=data.notes,
        )
        db.add(appointment)

        if data.session_id:
            db.query(SlotLock).filter(
                SlotLock.doctor_id == doctor.id,
                SlotLock.locked_by_session == data.session_id,
            ).delete(synchronize_session=False)

        db.commit()
        db.refresh(appointment)
    except ConsultationTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This slot has already been booked.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Booked appointment %s for doctor %s at %s', appointment.id, doctor.id, appointment.start_time)
    notify_booking(appointment, patient, doctor)

    return to_appointment_response(appointment, now=now)


@router.get('/doctor', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    include_past: bool = Query(default=False),
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        now = datetime.now()
        query = db.query(Appointment).filter(Appointment.doctor_id == current_doctor.id)
        if not include_past:
            query = query.filter(Appointment.end_time > now)

        appointments = query.order_by(Appointment.start_time.asc()).all()
        return [to_appointment_response(appointment, now=now) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    current_doctor: Doctor = Depends(get_current_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.doctor_id == current_doctor.id,
        ).first()

        if appointment is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        if not can_change_status(appointment.status, data.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Cannot change status from {appointment.status} to {data.status}.',
            )

        if occupies_slot(data.status) and not occupies_slot(appointment.status):
            service = SlotGenerationService(db, current_doctor.id)
            if service.get_appointments(
                appointment.start_time,
                appointment.end_time,
                exclude_appointment_id=appointment.id,
            ):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='This time has been booked by another appointment.',
                )

        appointment.status = data.status
        db.commit()
        db.refresh(appointment)

        return to_appointment_response(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This time has been booked by another appointment.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
