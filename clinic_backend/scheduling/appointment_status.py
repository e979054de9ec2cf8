"""Appointment status workflow and time-based helpers."""

from datetime import datetime, timedelta

from clinic_backend.core import config
from clinic_backend.database import OCCUPYING_STATUSES

APPOINTMENT_STATUSES = (
    'pending_payment',
    'scheduled',
    'confirmed',
    'in_progress',
    'completed',
    'cancelled',
    'no_show',
)

APPOINTMENT_MODES = ('video', 'audio', 'in_person', 'chat')

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    'pending_payment': ('scheduled', 'cancelled'),
    'scheduled': ('confirmed', 'cancelled'),
    'confirmed': ('in_progress', 'no_show', 'cancelled'),
    'in_progress': ('completed', 'cancelled'),
    'completed': (),
    'cancelled': ('scheduled',),
    'no_show': ('scheduled',),
}

TRANSITION_LABELS = {
    ('pending_payment', 'scheduled'): 'Mark as Scheduled',
    ('scheduled', 'confirmed'): 'Confirm',
    ('confirmed', 'in_progress'): 'Start Consultation',
    ('confirmed', 'no_show'): 'Mark as No-Show',
    ('in_progress', 'completed'): 'Complete',
    ('cancelled', 'scheduled'): 'Rebook',
    ('no_show', 'scheduled'): 'Rebook',
}

JOIN_WINDOW_MINUTES = 15


def can_change_status(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, ())


def get_next_possible_statuses(current_status: str) -> list[dict[str, str]]:
    return [
        {'value': new_status, 'label': TRANSITION_LABELS.get((current_status, new_status), 'Cancel')}
        for new_status in ALLOWED_TRANSITIONS.get(current_status, ())
    ]


def occupies_slot(status: str) -> bool:
    return status in OCCUPYING_STATUSES


def is_upcoming(start_time: datetime, status: str, now: datetime | None = None) -> bool:
    now = now or datetime.now()
    return start_time > now and status not in ('cancelled', 'no_show', 'completed')


def can_join_meeting(start_time: datetime, status: str, now: datetime | None = None) -> bool:
    now = now or datetime.now()
    opens_at = start_time - timedelta(minutes=JOIN_WINDOW_MINUTES)
    return opens_at <= now <= start_time and status in ('confirmed', 'in_progress')


def can_cancel_appointment(status: str) -> bool:
    return status not in ('completed', 'cancelled', 'no_show')


def generate_meeting_link(appointment_id: int) -> str:
    return f'{config.MEETING_LINK_PREFIX}{appointment_id}'
