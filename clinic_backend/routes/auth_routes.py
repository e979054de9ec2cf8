from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.auth.dependencies import get_current_doctor
from clinic_backend.auth.passwords import verify_password
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor
from clinic_backend.routes.common import database_unavailable, ensure_database_ready

router = APIRouter(tags=['auth'])


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


class DoctorProfileResponse(BaseModel):
    id: int
    email: str
    full_name: str
    tenant_id: str
    role: str

    class Config:
        from_attributes = True


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if doctor is None or not doctor.is_active or not verify_password(data.password, doctor.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid email or password.',
        )

    token = jwt_handler.create_access_token(subject=doctor.email, tenant_id=doctor.tenant_id)
    return TokenResponse(access_token=token)


@router.get('/me', response_model=DoctorProfileResponse)
def me(current_doctor: Doctor = Depends(get_current_doctor)):
    return current_doctor
