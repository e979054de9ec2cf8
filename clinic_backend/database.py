from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False

# Statuses that hold a doctor's time; mirrored by the partial unique index below.
OCCUPYING_STATUSES = ('scheduled', 'confirmed', 'in_progress')
_OCCUPYING_STATUS_SQL = ', '.join(f"'{status}'" for status in OCCUPYING_STATUSES)

_COLUMN_MIGRATIONS = {
    'doctors': [
        ('tenant_id', 'ALTER TABLE doctors ADD COLUMN tenant_id VARCHAR'),
        ('is_active', 'ALTER TABLE doctors ADD COLUMN is_active BOOLEAN DEFAULT TRUE'),
    ],
    'patients': [
        ('tenant_id', 'ALTER TABLE patients ADD COLUMN tenant_id VARCHAR'),
    ],
    'appointments': [
        ('tenant_id', 'ALTER TABLE appointments ADD COLUMN tenant_id VARCHAR'),
        ('mode', 'ALTER TABLE appointments ADD COLUMN mode VARCHAR'),
        ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ('consultation_type_id', 'ALTER TABLE appointments ADD COLUMN consultation_type_id INTEGER'),
    ],
    'slot_locks': [
        ('created_at', 'ALTER TABLE slot_locks ADD COLUMN created_at TIMESTAMP'),
    ],
}

_INDEX_STATEMENTS = {
    'appointments': [
        'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_range ON appointments(doctor_id, start_time, end_time)',
        (
            'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_doctor_active_start '
            f'ON appointments(doctor_id, start_time) WHERE status IN ({_OCCUPYING_STATUS_SQL})'
        ),
    ],
    'slot_locks': [
        'CREATE INDEX IF NOT EXISTS idx_slot_locks_expires_at ON slot_locks(expires_at)',
        'CREATE UNIQUE INDEX IF NOT EXISTS uq_slot_locks_doctor_start ON slot_locks(doctor_id, start_at)',
    ],
    'doctor_availability': [
        'CREATE INDEX IF NOT EXISTS idx_doctor_availability_day ON doctor_availability(doctor_id, day_of_week)',
    ],
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    """Bring tables created by older deployments up to the current layout.

    Missing columns are added and the unique indexes that make slot locks and
    bookings conditional inserts are created. Safe to call repeatedly.
    """
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        with engine.begin() as connection:
            for table_name, migration_steps in _COLUMN_MIGRATIONS.items():
                if table_name not in table_names:
                    continue

                existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
                for column_name, statement in migration_steps:
                    if column_name not in existing_columns:
                        connection.execute(text(statement))

            for table_name, statements in _INDEX_STATEMENTS.items():
                if table_name not in table_names:
                    continue

                for statement in statements:
                    connection.execute(text(statement))

        _booking_schema_checked = True
