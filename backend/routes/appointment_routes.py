from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_principal, require_patient, require_staff
from backend.auth.principal import Principal
from backend.core.errors import Invalid, PersistenceFailure
from backend.database import ensure_appointment_schema, ensure_doctor_schema, get_db
from backend.routes.schemas import AppointmentResponse
from backend.services import booking, cancellation
from backend.services.slot_allocator import normalize_slot_date, normalize_slot_time

router = APIRouter(tags=['appointments'])


class BookAppointmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doctor_id: int = Field(alias='doctorId')
    slot_date: str = Field(alias='date')
    slot_time: str = Field(alias='time')

    @field_validator('slot_date')
    @classmethod
    def validate_slot_date(cls, value: str) -> str:
        try:
            return normalize_slot_date(value)
        except Invalid as exc:
            raise ValueError(exc.message) from exc

    @field_validator('slot_time')
    @classmethod
    def validate_slot_time(cls, value: str) -> str:
        try:
            return normalize_slot_time(value)
        except Invalid as exc:
            raise ValueError(exc.message) from exc


def ensure_database_ready() -> None:
    try:
        ensure_doctor_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise PersistenceFailure('Database unavailable. Verify DATABASE_URL and database credentials.') from exc


@router.post('', status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    principal: Principal = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = booking.book(db, principal.id, data.doctor_id, data.slot_date, data.slot_time)
    return {
        'success': True,
        'message': 'Appointment booked successfully',
        'appointment': AppointmentResponse.model_validate(appointment),
    }


@router.get('')
def list_my_appointments(
    principal: Principal = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointments = booking.list_patient_appointments(db, principal.id)
    return {
        'success': True,
        'appointments': [AppointmentResponse.model_validate(appointment) for appointment in appointments],
    }


@router.post('/{appointment_id}/cancel')
def cancel_appointment(
    appointment_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    cancellation.cancel(db, principal, appointment_id)
    return {'success': True, 'message': 'Appointment cancelled'}


@router.post('/{appointment_id}/complete')
def complete_appointment(
    appointment_id: int,
    principal: Principal = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    cancellation.complete(db, principal, appointment_id)
    return {'success': True, 'message': 'Appointment marked as completed'}
