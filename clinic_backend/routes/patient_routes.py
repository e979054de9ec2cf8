import re

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.database import get_db
from clinic_backend.models.patient import Patient
from clinic_backend.routes.common import database_unavailable, ensure_database_ready

router = APIRouter(tags=['patients'])

PHONE_PATTERN = re.compile(r'^\+[1-9]\d{7,14}$')


class RegisterPatientRequest(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    tenant_id: str | None = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = re.sub(r'[\s\-()]', '', value)
        if not normalized:
            return None

        if not PHONE_PATTERN.match(normalized):
            raise ValueError('Phone number must be in E.164 format (e.g., +919876543210).')

        return normalized


class PatientResponse(BaseModel):
    id: int
    tenant_id: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def register_patient(data: RegisterPatientRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    patient = Patient(
        tenant_id=data.tenant_id or config.DEFAULT_TENANT_ID,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        phone=data.phone,
    )
    try:
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
