import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ['DOUBLETICK_API_KEY'] = ''

from clinic_backend.auth.passwords import hash_password  # noqa: E402
from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models.appointment import Appointment  # noqa: E402, F401
from clinic_backend.models.availability import BlackoutDate, DoctorAvailability  # noqa: E402, F401
from clinic_backend.models.consultation_type import ConsultationType  # noqa: E402
from clinic_backend.models.doctor import Doctor  # noqa: E402
from clinic_backend.models.notification_log import ReminderLog  # noqa: E402, F401
from clinic_backend.models.patient import Patient  # noqa: E402
from clinic_backend.models.slot_lock import SlotLock  # noqa: E402, F401

TENANT_ID = 'tenant-a'
# Monday; Sunday-based day_of_week 1.
BOOKING_DATE = date(2030, 1, 7)
DOCTOR_PASSWORD = 'correct horse battery staple'


@pytest.fixture
def booking_db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def doctor(booking_db) -> Doctor:
    record = Doctor(
        tenant_id=TENANT_ID,
        email='dr.rao@clinic.example',
        full_name='Dr. Rao',
        phone='+919800000001',
        hashed_password=hash_password(DOCTOR_PASSWORD),
        role='doctor',
        is_active=True,
    )
    booking_db.add(record)
    booking_db.commit()
    booking_db.refresh(record)
    return record


@pytest.fixture
def patient(booking_db) -> Patient:
    record = Patient(
        tenant_id=TENANT_ID,
        first_name='Asha',
        last_name='Menon',
        email='asha@example.com',
        phone='+919811111111',
    )
    booking_db.add(record)
    booking_db.commit()
    booking_db.refresh(record)
    return record


@pytest.fixture
def consultation_type(booking_db, doctor) -> ConsultationType:
    record = ConsultationType(
        doctor_id=doctor.id,
        type='standard',
        name='Standard Consultation',
        duration_minutes=30,
        fee=500,
        is_active=True,
    )
    booking_db.add(record)
    booking_db.commit()
    booking_db.refresh(record)
    return record


@pytest.fixture
def monday_hours(booking_db, doctor) -> DoctorAvailability:
    window = DoctorAvailability(
        doctor_id=doctor.id,
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(11, 0),
        is_available=True,
    )
    booking_db.add(window)
    booking_db.commit()
    booking_db.refresh(window)
    return window


@pytest.fixture
def schema_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in ('auth_routes', 'schedule_routes', 'slot_routes', 'appointment_routes', 'patient_routes'):
        monkeypatch.setattr(f'clinic_backend.routes.{module}.ensure_database_ready', lambda: None)
