"""Outbound notification log definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from clinic_backend.database import Base


class ReminderLog(Base):
    """Record of an automated WhatsApp message sent for an appointment."""
    __tablename__ = "whatsapp_automation_log"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String)
    patient_id = Column(Integer, ForeignKey("patients.id"))
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    message_type = Column(String, nullable=False)
    phone_number = Column(String)
    delivery_status = Column(String, default="sent")
    triggered_by = Column(String)
    message_text = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("appointment_id", "message_type", name="uq_reminder_appointment_type"),
    )
