"""Consultation type model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from clinic_backend.database import Base


class ConsultationType(Base):
    """A bookable kind of visit; its duration sets the slot length."""
    __tablename__ = "consultation_types"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # standard/followup/emergency
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    fee = Column(Numeric(10, 2), default=0)
    is_active = Column(Boolean, default=True)
