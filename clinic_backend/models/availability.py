"""Doctor availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from clinic_backend.database import Base


class DoctorAvailability(Base):
    """Recurring weekly working window for a doctor.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "doctor_availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True)


class BlackoutDate(Base):
    """A full day on which a doctor takes no appointments."""
    __tablename__ = "doctor_blackout_dates"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    reason = Column(String)

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_blackout_doctor_date"),
    )
