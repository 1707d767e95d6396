import pytest
from fastapi.testclient import TestClient

from backend.auth.jwt_handler import create_access_token
from backend.auth.principal import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE
from backend.database import get_db
from backend.main import app


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _bearer(subject, role: str) -> dict:
    return {'Authorization': f'Bearer {create_access_token(subject=subject, role=role)}'}


@pytest.fixture
def patient_headers(patient) -> dict:
    return _bearer(patient.id, PATIENT_ROLE)


@pytest.fixture
def doctor_headers(doctor) -> dict:
    return _bearer(doctor.id, DOCTOR_ROLE)


@pytest.fixture
def admin_headers() -> dict:
    return _bearer(1, ADMIN_ROLE)


@pytest.fixture
def headers_for():
    return _bearer
