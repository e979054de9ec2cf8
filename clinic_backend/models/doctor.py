"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from clinic_backend.database import Base


class Doctor(Base):
    """Represents a doctor who owns a schedule within a clinic tenant."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    phone = Column(String)
    hashed_password = Column(String)
    role = Column(String, default="doctor")  # doctor/admin
    is_active = Column(Boolean, default=True)
