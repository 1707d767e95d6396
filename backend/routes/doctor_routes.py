import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_doctor
from backend.auth.principal import Principal
from backend.core.errors import DoctorNotFound, PersistenceFailure
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.doctor import Doctor
from backend.routes.appointment_routes import ensure_database_ready
from backend.routes.schemas import AppointmentResponse, DoctorResponse
from backend.services import dashboard

router = APIRouter(tags=['doctors'])

logger = logging.getLogger(__name__)


@router.get('')
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        doctors = db.query(Doctor).order_by(Doctor.id.asc()).all()
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc
    return {'success': True, 'doctors': [DoctorResponse.model_validate(doctor) for doctor in doctors]}


@router.get('/me/appointments')
def list_doctor_appointments(
    principal: Principal = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = db.query(Appointment).filter(
            Appointment.doctor_id == principal.id,
        ).order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc
    return {
        'success': True,
        'appointments': [AppointmentResponse.model_validate(appointment) for appointment in appointments],
    }


@router.post('/me/availability')
def toggle_availability(
    principal: Principal = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.id == principal.id).first()
        if doctor is None:
            raise DoctorNotFound()

        doctor.available = not doctor.available
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure() from exc

    logger.info('Doctor %s availability set to %s', doctor.id, doctor.available)
    return {'success': True, 'message': 'Availability status updated', 'available': doctor.available}


@router.get('/me/dashboard')
def doctor_dashboard(
    principal: Principal = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    data = dashboard.doctor_dashboard(db, principal.id)
    data['latest_appointments'] = [
        AppointmentResponse.model_validate(appointment) for appointment in data['latest_appointments']
    ]
    return {'success': True, 'dashboard': data}
