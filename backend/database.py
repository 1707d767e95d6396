import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_doctor_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_doctor_schema() -> None:
    global _doctor_schema_checked

    if _doctor_schema_checked:
        return

    with _schema_lock:
        if _doctor_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctors' not in inspector.get_table_names():
            _doctor_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('doctors')}
        migration_steps = [
            ('slots_booked', 'ALTER TABLE doctors ADD COLUMN slots_booked JSON'),
            ('available', 'ALTER TABLE doctors ADD COLUMN available BOOLEAN DEFAULT TRUE'),
            ('degree', 'ALTER TABLE doctors ADD COLUMN degree VARCHAR'),
            ('about', 'ALTER TABLE doctors ADD COLUMN about VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_doctors_speciality ON doctors(speciality)')
            )

        _doctor_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('payment_provider', 'ALTER TABLE appointments ADD COLUMN payment_provider VARCHAR'),
            ('payment_reference', 'ALTER TABLE appointments ADD COLUMN payment_reference VARCHAR'),
            ('paid_at', 'ALTER TABLE appointments ADD COLUMN paid_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(doctor_id, slot_date, slot_time) WHERE cancelled = false'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_created ON appointments(patient_id, created_at)')
            )

        _appointment_schema_checked = True
