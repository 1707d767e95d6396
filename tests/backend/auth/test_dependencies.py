import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_principal, require_admin, require_patient, require_staff
from backend.auth.principal import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE, Principal
from backend.core import config


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trips_subject_and_role() -> None:
    token = jwt_handler.create_access_token(subject=42, role=DOCTOR_ROLE)

    principal = get_current_principal(_credentials(token))

    assert principal == Principal(id=42, role=DOCTOR_ROLE)


def test_invalid_token_is_rejected() -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(_credentials('not-a-token'))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_expired_token_is_rejected() -> None:
    token = jwt.encode(
        {'sub': '1', 'role': PATIENT_ROLE, 'exp': 0},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(_credentials(token))

    assert exception_info.value.status_code == 401


@pytest.mark.parametrize(
    'payload',
    [
        {'role': PATIENT_ROLE},
        {'sub': '1', 'role': 'superuser'},
        {'sub': 'abc', 'role': PATIENT_ROLE},
    ],
)
def test_token_with_bad_subject_is_rejected(payload: dict) -> None:
    token = jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(_credentials(token))

    assert exception_info.value.detail == 'Invalid token subject'


def test_require_patient_checks_user_exists(db, patient) -> None:
    principal = Principal(id=patient.id, role=PATIENT_ROLE)

    assert require_patient(principal, db) == principal

    with pytest.raises(HTTPException) as exception_info:
        require_patient(Principal(id=999, role=PATIENT_ROLE), db)
    assert exception_info.value.status_code == 401


def test_require_patient_rejects_doctors(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_patient(Principal(id=1, role=DOCTOR_ROLE), db)

    assert exception_info.value.status_code == 403


def test_require_staff_accepts_doctors_and_admins() -> None:
    assert require_staff(Principal(id=1, role=DOCTOR_ROLE)).is_doctor
    assert require_staff(Principal(id=1, role=ADMIN_ROLE)).is_admin

    with pytest.raises(HTTPException):
        require_staff(Principal(id=1, role=PATIENT_ROLE))


def test_require_admin_rejects_doctors() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_admin(Principal(id=1, role=DOCTOR_ROLE))

    assert exception_info.value.status_code == 403


def test_principal_from_payload_reads_numeric_subject() -> None:
    assert jwt_handler.principal_from_payload({'sub': '7', 'role': ADMIN_ROLE}) == Principal(id=7, role=ADMIN_ROLE)

    with pytest.raises(jwt_handler.InvalidTokenSubject):
        jwt_handler.principal_from_payload({'sub': '7'})
