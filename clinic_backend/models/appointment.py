"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, func, text
from clinic_backend.database import Base, OCCUPYING_STATUSES

_occupying_clause = text(
    "status IN ({})".format(", ".join(f"'{status}'" for status in OCCUPYING_STATUSES))
)


class Appointment(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    consultation_type_id = Column(Integer, ForeignKey("consultation_types.id"))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="scheduled")
    mode = Column(String, default="in_person")
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_appointments_doctor_range", "doctor_id", "start_time", "end_time"),
        Index(
            "uq_appointments_doctor_active_start",
            "doctor_id",
            "start_time",
            unique=True,
            sqlite_where=_occupying_clause,
            postgresql_where=_occupying_clause,
        ),
    )
