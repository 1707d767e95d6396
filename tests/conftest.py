import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from backend.auth.principal import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE, Principal  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.doctor import Doctor  # noqa: E402
from backend.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Doctor.__table__, Appointment.__table__])

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__, Doctor.__table__, User.__table__])
        engine.dispose()


@pytest.fixture
def make_doctor(db):
    def _make_doctor(**overrides) -> Doctor:
        values = {
            'name': 'Dr. Richard James',
            'email': f'doctor{db.query(Doctor).count() + 1}@example.com',
            'image': 'https://img.example.com/doc.png',
            'speciality': 'General physician',
            'degree': 'MBBS',
            'experience': '4 Years',
            'about': 'Primary care.',
            'fee': 500,
            'address': {'line1': '17th Cross, Richmond', 'line2': 'Circle, Ring Road, London'},
            'available': True,
            'slots_booked': {},
        }
        values.update(overrides)
        doctor = Doctor(**values)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor


@pytest.fixture
def make_patient(db):
    def _make_patient(**overrides) -> User:
        values = {
            'name': 'Jane Patient',
            'email': f'patient{db.query(User).count() + 1}@example.com',
            'hashed_password': '',
            'image': 'https://img.example.com/jane.png',
        }
        values.update(overrides)
        patient = User(**values)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient


@pytest.fixture
def doctor(make_doctor) -> Doctor:
    return make_doctor()


@pytest.fixture
def patient(make_patient) -> User:
    return make_patient()


@pytest.fixture
def patient_principal(patient) -> Principal:
    return Principal(id=patient.id, role=PATIENT_ROLE)


@pytest.fixture
def doctor_principal(doctor) -> Principal:
    return Principal(id=doctor.id, role=DOCTOR_ROLE)


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(id=1, role=ADMIN_ROLE)
