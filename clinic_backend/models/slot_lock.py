"""Slot lock model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from clinic_backend.database import Base


class SlotLock(Base):
    """Short-lived hold on a doctor's time range while a patient checks out."""
    __tablename__ = "slot_locks"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    locked_by_session = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("doctor_id", "start_at", name="uq_slot_locks_doctor_start"),
        Index("idx_slot_locks_expires_at", "expires_at"),
    )
