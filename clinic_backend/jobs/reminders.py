"""
Video consultation reminders.

Finds confirmed video appointments starting roughly
``VIDEO_REMINDER_LEAD_MINUTES`` from now and sends each patient one WhatsApp
reminder. Sent reminders are logged so repeated runs do not resend.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.notification_log import ReminderLog
from clinic_backend.models.patient import Patient
from clinic_backend.services import whatsapp_service

logger = logging.getLogger(__name__)

VIDEO_REMINDER_MESSAGE_TYPE = "video_15min_reminder"


def find_due_video_appointments(db: Session, now: datetime) -> list[tuple[Appointment, Patient, Doctor]]:
    lead = timedelta(minutes=config.VIDEO_REMINDER_LEAD_MINUTES)
    window = timedelta(minutes=config.VIDEO_REMINDER_WINDOW_MINUTES)

    return (
        db.query(Appointment, Patient, Doctor)
        .join(Patient, Patient.id == Appointment.patient_id)
        .join(Doctor, Doctor.id == Appointment.doctor_id)
        .filter(
            Appointment.mode == "video",
            Appointment.status == "confirmed",
            Appointment.start_time >= now + lead - window,
            Appointment.start_time <= now + lead + window,
        )
        .order_by(Appointment.start_time.asc())
        .all()
    )


def reminder_already_sent(db: Session, appointment_id: int) -> bool:
    existing = db.query(ReminderLog.id).filter(
        ReminderLog.appointment_id == appointment_id,
        ReminderLog.message_type == VIDEO_REMINDER_MESSAGE_TYPE,
    ).first()
    return existing is not None


def send_video_reminders(db: Session, now: datetime | None = None, sender=None) -> int:
    """Send due reminders and return how many went out."""
    now = now or datetime.now()
    sender = sender or whatsapp_service.send_video_reminder

    due = find_due_video_appointments(db, now)
    if not due:
        return 0

    logger.info("Found %d video appointments starting in ~%d minutes", len(due), config.VIDEO_REMINDER_LEAD_MINUTES)

    sent_count = 0
    for appointment, patient, doctor in due:
        if reminder_already_sent(db, appointment.id):
            logger.debug("Reminder already sent for appointment %s", appointment.id)
            continue

        if not patient.phone:
            logger.info("No phone for patient in appointment %s", appointment.id)
            continue

        if not sender(appointment, patient, doctor):
            continue

        time_label = appointment.start_time.strftime(whatsapp_service.TIME_LABEL_FORMAT)
        db.add(
            ReminderLog(
                tenant_id=appointment.tenant_id or config.DEFAULT_TENANT_ID,
                patient_id=patient.id,
                appointment_id=appointment.id,
                message_type=VIDEO_REMINDER_MESSAGE_TYPE,
                phone_number=patient.phone,
                delivery_status="sent",
                triggered_by="system_cron",
                message_text=f"Video reminder sent for {time_label}",
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # Another run logged this reminder first.
            db.rollback()
            continue

        sent_count += 1
        logger.info("Sent 15-min reminder for appointment %s", appointment.id)

    return sent_count
