from datetime import date, datetime, time, timedelta

import pytest

from clinic_backend.models.appointment import Appointment
from clinic_backend.models.availability import BlackoutDate, DoctorAvailability
from clinic_backend.models.slot_lock import SlotLock
from clinic_backend.scheduling.slot_generation import (
    ConsultationTypeNotFoundError,
    InvalidSlotError,
    SlotGenerationService,
    SlotUnavailableError,
    day_of_week_for,
    generate_session_id,
    generate_time_slots,
    is_time_overlapping,
)
from conftest import BOOKING_DATE

NOW = datetime(2030, 1, 6, 12, 0)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(BOOKING_DATE, time(hour, minute))


def test_generate_time_slots_drops_slot_that_overruns_window() -> None:
    slots = generate_time_slots(date(2030, 1, 7), time(9, 0), time(10, 15), 30)

    assert [(slot.start_label, slot.end_label) for slot in slots] == [
        ('09:00 AM', '09:30 AM'),
        ('09:30 AM', '10:00 AM'),
    ]


def test_generate_time_slots_rejects_non_positive_duration() -> None:
    with pytest.raises(InvalidSlotError):
        generate_time_slots(date(2030, 1, 7), time(9, 0), time(10, 0), 0)


def test_touching_ranges_do_not_overlap() -> None:
    assert not is_time_overlapping(_at(9), _at(9, 30), _at(9, 30), _at(10))
    assert is_time_overlapping(_at(9), _at(9, 30), _at(9, 15), _at(9, 45))


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week_for(date(2030, 1, 6)) == 0
    assert day_of_week_for(date(2030, 1, 7)) == 1
    assert day_of_week_for(date(2030, 1, 12)) == 6


def test_generate_session_id_is_unique_and_prefixed() -> None:
    first = generate_session_id()
    second = generate_session_id()

    assert first.startswith('session_')
    assert first != second


def test_get_available_slots_lists_all_slots_for_free_day(booking_db, doctor, consultation_type, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    slots = service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)

    assert [slot.start for slot in slots] == [_at(9), _at(9, 30), _at(10), _at(10, 30)]
    assert all(slot.available and slot.status == 'available' for slot in slots)


def test_get_available_slots_merges_multiple_windows(booking_db, doctor, consultation_type, monday_hours) -> None:
    booking_db.add(
        DoctorAvailability(
            doctor_id=doctor.id,
            day_of_week=1,
            start_time=time(14, 0),
            end_time=time(15, 0),
            is_available=True,
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    slots = service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)

    assert [slot.start for slot in slots][-2:] == [_at(14), _at(14, 30)]
    assert len(slots) == 6


def test_get_available_slots_returns_nothing_on_blackout_date(booking_db, doctor, consultation_type, monday_hours) -> None:
    booking_db.add(BlackoutDate(doctor_id=doctor.id, date=BOOKING_DATE, reason='Conference'))
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    assert service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW) == []


def test_get_available_slots_returns_nothing_without_availability(booking_db, doctor, consultation_type, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    assert service.get_available_slots(BOOKING_DATE + timedelta(days=1), consultation_type.id, now=NOW) == []


def test_get_available_slots_ignores_disabled_window(booking_db, doctor, consultation_type, monday_hours) -> None:
    monday_hours.is_available = False
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    assert service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW) == []


def test_get_available_slots_rejects_unknown_consultation_type(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    with pytest.raises(ConsultationTypeNotFoundError):
        service.get_available_slots(BOOKING_DATE, 999, now=NOW)


def test_booked_slot_is_not_available(booking_db, doctor, patient, consultation_type, monday_hours) -> None:
    booking_db.add(
        Appointment(
            tenant_id=doctor.tenant_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            start_time=_at(9, 30),
            end_time=_at(10),
            status='confirmed',
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    slots = {slot.start: slot for slot in service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)}

    assert slots[_at(9, 30)].available is False
    assert slots[_at(9, 30)].status == 'booked'
    assert slots[_at(9)].available is True
    assert slots[_at(10)].available is True


def test_cancelled_appointment_does_not_block_slot(booking_db, doctor, patient, consultation_type, monday_hours) -> None:
    booking_db.add(
        Appointment(
            tenant_id=doctor.tenant_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            start_time=_at(9),
            end_time=_at(9, 30),
            status='cancelled',
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    slots = service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)

    assert slots[0].available is True


def test_active_lock_marks_slot_locked_except_for_owner(booking_db, doctor, consultation_type, monday_hours) -> None:
    booking_db.add(
        SlotLock(
            doctor_id=doctor.id,
            start_at=_at(10),
            end_at=_at(10, 30),
            locked_by_session='session_a',
            expires_at=NOW + timedelta(minutes=10),
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    for_others = {slot.start: slot for slot in service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)}
    for_owner = {
        slot.start: slot
        for slot in service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW, session_id='session_a')
    }

    assert for_others[_at(10)].locked is True
    assert for_others[_at(10)].available is False
    assert for_owner[_at(10)].available is True


def test_expired_lock_does_not_block_slot(booking_db, doctor, consultation_type, monday_hours) -> None:
    booking_db.add(
        SlotLock(
            doctor_id=doctor.id,
            start_at=_at(10),
            end_at=_at(10, 30),
            locked_by_session='session_a',
            expires_at=NOW - timedelta(minutes=1),
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    slots = {slot.start: slot for slot in service.get_available_slots(BOOKING_DATE, consultation_type.id, now=NOW)}

    assert slots[_at(10)].available is True
    assert slots[_at(10)].locked is False


def test_slots_in_the_past_are_unavailable(booking_db, doctor, consultation_type, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    slots = service.get_available_slots(BOOKING_DATE, consultation_type.id, now=_at(9, 30))

    assert [slot.status for slot in slots] == ['past', 'past', 'available', 'available']


def test_get_available_slots_for_range_keys_each_day(booking_db, doctor, consultation_type, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    slots_by_day = service.get_available_slots_for_range(
        BOOKING_DATE - timedelta(days=1),
        BOOKING_DATE + timedelta(days=1),
        consultation_type.id,
        now=NOW,
    )

    assert list(slots_by_day) == ['2030-01-06', '2030-01-07', '2030-01-08']
    assert slots_by_day['2030-01-06'] == []
    assert len(slots_by_day['2030-01-07']) == 4


def test_lock_slot_creates_expiring_lock(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    lock = service.lock_slot(_at(9), _at(9, 30), 'session_a', expiry_minutes=10, now=NOW)

    assert lock.id is not None
    assert lock.expires_at == NOW + timedelta(minutes=10)
    assert lock.locked_by_session == 'session_a'


def test_lock_slot_rejects_overlapping_lock_from_other_session(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)

    with pytest.raises(SlotUnavailableError):
        service.lock_slot(_at(9, 15), _at(9, 45), 'session_b', now=NOW)


def test_lock_slot_replaces_previous_lock_of_same_session(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)

    service.lock_slot(_at(10), _at(10, 30), 'session_a', now=NOW)

    locks = booking_db.query(SlotLock).filter(SlotLock.locked_by_session == 'session_a').all()
    assert [lock.start_at for lock in locks] == [_at(10)]


def test_lock_slot_allows_taking_over_expired_lock(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', expiry_minutes=5, now=NOW)

    later = NOW + timedelta(minutes=6)
    lock = service.lock_slot(_at(9), _at(9, 30), 'session_b', now=later)

    assert lock.locked_by_session == 'session_b'
    assert booking_db.query(SlotLock).count() == 1


def test_lock_slot_rejects_booked_range(booking_db, doctor, patient, monday_hours) -> None:
    booking_db.add(
        Appointment(
            tenant_id=doctor.tenant_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            start_time=_at(9),
            end_time=_at(9, 30),
            status='scheduled',
        )
    )
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    with pytest.raises(SlotUnavailableError):
        service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)


def test_lock_slot_failure_keeps_existing_session_lock(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)
    service.lock_slot(_at(10), _at(10, 30), 'session_b', now=NOW)

    with pytest.raises(SlotUnavailableError):
        service.lock_slot(_at(10), _at(10, 30), 'session_a', now=NOW)

    held = booking_db.query(SlotLock).filter(SlotLock.locked_by_session == 'session_a').one()
    assert held.start_at == _at(9)


def test_unique_bucket_rejects_racing_insert(
    booking_db, doctor, monday_hours, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)

    # Simulate a second client whose overlap re-check ran before the first insert landed.
    monkeypatch.setattr(SlotGenerationService, 'get_appointments', lambda self, start, end: [])
    original_query = booking_db.query

    def query_without_lock_check(*entities):
        query = original_query(*entities)
        if entities == (SlotLock,):
            return _NoMatchQuery(query)
        return query

    monkeypatch.setattr(booking_db, 'query', query_without_lock_check)

    with pytest.raises(SlotUnavailableError):
        service.lock_slot(_at(9), _at(9, 30), 'session_b', now=NOW)


class _NoMatchQuery:
    def __init__(self, query):
        self._query = query

    def filter(self, *criteria):
        return _NoMatchQuery(self._query.filter(*criteria))

    def first(self):
        return None

    def delete(self, **kwargs):
        return self._query.delete(**kwargs)


def test_lock_slot_rejects_range_outside_working_hours(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)

    with pytest.raises(InvalidSlotError):
        service.lock_slot(_at(3, 30), _at(4), 'session_a', now=NOW)
    with pytest.raises(InvalidSlotError):
        service.lock_slot(_at(10, 45), _at(11, 15), 'session_a', now=NOW)

    assert booking_db.query(SlotLock).count() == 0


def test_lock_slot_rejects_blackout_date(booking_db, doctor, monday_hours) -> None:
    booking_db.add(BlackoutDate(doctor_id=doctor.id, date=BOOKING_DATE, reason='Conference'))
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    with pytest.raises(InvalidSlotError):
        service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)


def test_unlock_slot_requires_owning_session(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    lock = service.lock_slot(_at(9), _at(9, 30), 'session_a', now=NOW)

    assert service.unlock_slot(lock.id, 'session_b') is False
    assert service.unlock_slot(lock.id, 'session_a') is True
    assert booking_db.query(SlotLock).count() == 0


def test_cleanup_expired_locks_removes_only_expired(booking_db, doctor) -> None:
    booking_db.add_all([
        SlotLock(
            doctor_id=doctor.id,
            start_at=_at(9),
            end_at=_at(9, 30),
            locked_by_session='old',
            expires_at=NOW - timedelta(minutes=1),
        ),
        SlotLock(
            doctor_id=doctor.id,
            start_at=_at(10),
            end_at=_at(10, 30),
            locked_by_session='fresh',
            expires_at=NOW + timedelta(minutes=5),
        ),
    ])
    booking_db.commit()
    service = SlotGenerationService(booking_db, doctor.id)

    assert service.cleanup_expired_locks(NOW) == 1
    assert [lock.locked_by_session for lock in booking_db.query(SlotLock).all()] == ['fresh']


def test_lock_expiring_exactly_now_is_swept_and_slot_can_be_relocked(booking_db, doctor, monday_hours) -> None:
    service = SlotGenerationService(booking_db, doctor.id)
    service.lock_slot(_at(9), _at(9, 30), 'session_a', expiry_minutes=5, now=NOW)
    expiry = NOW + timedelta(minutes=5)

    assert service.get_slot_locks(_at(0), _at(23), expiry) == []

    lock = service.lock_slot(_at(9), _at(9, 30), 'session_b', now=expiry)

    assert lock.locked_by_session == 'session_b'
    assert booking_db.query(SlotLock).count() == 1
