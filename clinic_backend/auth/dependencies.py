import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor

security = HTTPBearer()


def get_current_doctor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Doctor:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    tenant_id = payload.get("tenant")
    if not email or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    doctor = db.query(Doctor).filter(
        Doctor.email == email,
        Doctor.tenant_id == tenant_id,
    ).first()
    if doctor is None or not doctor.is_active:
        raise HTTPException(status_code=401, detail="Doctor not found")
    return doctor
