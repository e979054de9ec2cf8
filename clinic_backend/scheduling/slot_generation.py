"""
Slot generation and locking.

Available slots for a doctor on a date are derived from:
- the doctor's weekly availability windows
- blackout dates
- the consultation type duration
- occupying appointments
- unexpired slot locks (temporary holds during checkout)
"""

import logging
import secrets
import time as time_module
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.database import OCCUPYING_STATUSES
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.availability import BlackoutDate, DoctorAvailability
from clinic_backend.models.consultation_type import ConsultationType
from clinic_backend.models.slot_lock import SlotLock

logger = logging.getLogger(__name__)

SLOT_LABEL_FORMAT = '%I:%M %p'


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class ConsultationTypeNotFoundError(SchedulingError):
    pass


class InvalidSlotError(SchedulingError):
    pass


class SlotUnavailableError(SchedulingError):
    pass


@dataclass
class TimeSlot:
    start: datetime
    end: datetime
    available: bool = True
    locked: bool = False
    booked: bool = False
    past: bool = False

    @property
    def start_label(self) -> str:
        return self.start.strftime(SLOT_LABEL_FORMAT)

    @property
    def end_label(self) -> str:
        return self.end.strftime(SLOT_LABEL_FORMAT)

    @property
    def status(self) -> str:
        if self.booked:
            return 'booked'
        if self.locked:
            return 'locked'
        if self.past:
            return 'past'
        return 'available'


def generate_session_id() -> str:
    return f'session_{int(time_module.time() * 1000)}_{secrets.token_hex(4)}'


def to_clinic_time(value: datetime) -> datetime:
    """Convert an aware datetime to naive clinic wall-clock time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(config.CLINIC_TIMEZONE)).replace(tzinfo=None)


def day_of_week_for(slot_date: date) -> int:
    """Sunday-based weekday index (0 = Sunday ... 6 = Saturday)."""
    return (slot_date.weekday() + 1) % 7


def is_time_overlapping(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return start1 < end2 and end1 > start2


def generate_time_slots(
    slot_date: date,
    start_time: time,
    end_time: time,
    duration_minutes: int,
) -> list[TimeSlot]:
    if duration_minutes <= 0:
        raise InvalidSlotError('Slot duration must be positive.')

    slots: list[TimeSlot] = []
    current_start = datetime.combine(slot_date, start_time)
    window_end = datetime.combine(slot_date, end_time)
    step = timedelta(minutes=duration_minutes)

    while current_start + step <= window_end:
        slots.append(TimeSlot(start=current_start, end=current_start + step))
        current_start += step

    return slots


def mark_slot_availability(
    slots: list[TimeSlot],
    appointments: list[tuple[datetime, datetime]],
    locks: list[tuple[datetime, datetime]],
    now: datetime,
) -> list[TimeSlot]:
    for slot in slots:
        slot.booked = any(
            is_time_overlapping(slot.start, slot.end, booked_start, booked_end)
            for booked_start, booked_end in appointments
        )
        slot.locked = any(
            is_time_overlapping(slot.start, slot.end, lock_start, lock_end)
            for lock_start, lock_end in locks
        )
        slot.past = slot.start <= now
        slot.available = not slot.booked and not slot.locked and not slot.past

    return slots


class SlotGenerationService:
    """Slot lookup and slot locking for a single doctor."""

    def __init__(self, db: Session, doctor_id: int):
        self.db = db
        self.doctor_id = doctor_id

    def get_available_slots(
        self,
        slot_date: date,
        consultation_type_id: int,
        now: datetime | None = None,
        session_id: str | None = None,
    ) -> list[TimeSlot]:
        """Return every slot for ``slot_date`` with its availability marked.

        Locks held by ``session_id`` do not count against the caller, so a
        patient still sees the slot they are holding as available.
        """
        now = now or datetime.now()
        consultation_type = self.get_consultation_type(consultation_type_id)

        if self.is_blackout_date(slot_date):
            return []

        windows = self.get_doctor_availability(day_of_week_for(slot_date))
        if not windows:
            return []

        slots: list[TimeSlot] = []
        for window in windows:
            slots.extend(
                generate_time_slots(
                    slot_date,
                    window.start_time,
                    window.end_time,
                    consultation_type.duration_minutes,
                )
            )
        slots.sort(key=lambda slot: slot.start)

        day_start = datetime.combine(slot_date, time.min)
        day_end = day_start + timedelta(days=1)
        appointments = self.get_appointments(day_start, day_end)
        locks = [
            (lock.start_at, lock.end_at)
            for lock in self.get_slot_locks(day_start, day_end, now)
            if session_id is None or lock.locked_by_session != session_id
        ]

        return mark_slot_availability(slots, appointments, locks, now)

    def get_available_slots_for_range(
        self,
        start_date: date,
        end_date: date,
        consultation_type_id: int,
        now: datetime | None = None,
        session_id: str | None = None,
    ) -> dict[str, list[TimeSlot]]:
        slots_by_day: dict[str, list[TimeSlot]] = {}
        current_day = start_date

        while current_day <= end_date:
            slots_by_day[current_day.isoformat()] = self.get_available_slots(
                current_day,
                consultation_type_id,
                now=now,
                session_id=session_id,
            )
            current_day += timedelta(days=1)

        return slots_by_day

    def lock_slot(
        self,
        start_time: datetime,
        end_time: datetime,
        session_id: str,
        expiry_minutes: int | None = None,
        now: datetime | None = None,
    ) -> SlotLock:
        """Hold ``start_time``-``end_time`` for ``session_id``.

        The insert is guarded by the ``(doctor_id, start_at)`` unique
        constraint, so two sessions racing for the same slot cannot both win.
        """
        now = now or datetime.now()
        expiry_minutes = expiry_minutes or config.SLOT_LOCK_EXPIRY_MINUTES

        if end_time <= start_time:
            raise InvalidSlotError('Slot end must be after its start.')
        if start_time <= now:
            raise InvalidSlotError('Only future slots can be reserved.')
        if not self.is_within_working_hours(start_time, end_time):
            raise InvalidSlotError("Requested time is outside the doctor's working hours.")

        self.cleanup_expired_locks(now)

        self.db.query(SlotLock).filter(
            SlotLock.doctor_id == self.doctor_id,
            SlotLock.locked_by_session == session_id,
        ).delete(synchronize_session=False)

        if self.get_appointments(start_time, end_time):
            self.db.rollback()
            raise SlotUnavailableError('This slot has already been booked.')

        competing_lock = self.db.query(SlotLock).filter(
            SlotLock.doctor_id == self.doctor_id,
            SlotLock.expires_at > now,
            SlotLock.start_at < end_time,
            SlotLock.end_at > start_time,
        ).first()
        if competing_lock:
            self.db.rollback()
            raise SlotUnavailableError('This slot is being reserved by someone else.')

        lock = SlotLock(
            doctor_id=self.doctor_id,
            start_at=start_time,
            end_at=end_time,
            locked_by_session=session_id,
            expires_at=now + timedelta(minutes=expiry_minutes),
        )
        self.db.add(lock)

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise SlotUnavailableError('This slot is being reserved by someone else.') from exc

        self.db.refresh(lock)
        logger.info(
            'Locked slot %s-%s for doctor %s (session %s)',
            start_time,
            end_time,
            self.doctor_id,
            session_id,
        )
        return lock

    def unlock_slot(self, lock_id: int, session_id: str) -> bool:
        deleted = self.db.query(SlotLock).filter(
            SlotLock.id == lock_id,
            SlotLock.doctor_id == self.doctor_id,
            SlotLock.locked_by_session == session_id,
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def cleanup_expired_locks(self, now: datetime | None = None) -> int:
        return cleanup_expired_locks(self.db, now, doctor_id=self.doctor_id)

    def get_consultation_type(self, consultation_type_id: int) -> ConsultationType:
        consultation_type = self.db.query(ConsultationType).filter(
            ConsultationType.id == consultation_type_id,
            ConsultationType.doctor_id == self.doctor_id,
            ConsultationType.is_active.is_(True),
        ).first()

        if consultation_type is None:
            raise ConsultationTypeNotFoundError('Consultation type not found.')

        return consultation_type

    def get_doctor_availability(self, day_of_week: int) -> list[DoctorAvailability]:
        return self.db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == self.doctor_id,
            DoctorAvailability.day_of_week == day_of_week,
            DoctorAvailability.is_available.is_(True),
        ).order_by(DoctorAvailability.start_time.asc()).all()

    def is_within_working_hours(self, start_time: datetime, end_time: datetime) -> bool:
        slot_date = start_time.date()
        if end_time.date() != slot_date or self.is_blackout_date(slot_date):
            return False

        return any(
            datetime.combine(slot_date, window.start_time) <= start_time
            and end_time <= datetime.combine(slot_date, window.end_time)
            for window in self.get_doctor_availability(day_of_week_for(slot_date))
        )

    def is_blackout_date(self, slot_date: date) -> bool:
        blackout = self.db.query(BlackoutDate.id).filter(
            BlackoutDate.doctor_id == self.doctor_id,
            BlackoutDate.date == slot_date,
        ).first()
        return blackout is not None

    def get_appointments(
        self,
        range_start: datetime,
        range_end: datetime,
        exclude_appointment_id: int | None = None,
    ) -> list[tuple[datetime, datetime]]:
        query = self.db.query(Appointment.start_time, Appointment.end_time).filter(
            Appointment.doctor_id == self.doctor_id,
            Appointment.status.in_(OCCUPYING_STATUSES),
            Appointment.start_time < range_end,
            Appointment.end_time > range_start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return [(start, end) for start, end in query.all()]

    def get_slot_locks(self, range_start: datetime, range_end: datetime, now: datetime) -> list[SlotLock]:
        return self.db.query(SlotLock).filter(
            SlotLock.doctor_id == self.doctor_id,
            SlotLock.start_at < range_end,
            SlotLock.end_at > range_start,
            SlotLock.expires_at > now,
        ).all()


def cleanup_expired_locks(db: Session, now: datetime | None = None, doctor_id: int | None = None) -> int:
    now = now or datetime.now()
    query = db.query(SlotLock).filter(SlotLock.expires_at <= now)
    if doctor_id is not None:
        query = query.filter(SlotLock.doctor_id == doctor_id)

    deleted = query.delete(synchronize_session=False)
    db.commit()
    return deleted
