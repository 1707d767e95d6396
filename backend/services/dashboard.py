"""Read-only rollups over the appointment ledger."""

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import DoctorNotFound, PersistenceFailure
from backend.models.appointment import Appointment
from backend.models.doctor import Doctor
from backend.models.user import User

LATEST_APPOINTMENTS_LIMIT = 5


def _latest(query):
    return query.order_by(Appointment.created_at.desc(), Appointment.id.desc()).limit(LATEST_APPOINTMENTS_LIMIT).all()


def doctor_dashboard(db: Session, doctor_id: int) -> dict:
    try:
        doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if doctor is None:
            raise DoctorNotFound()

        appointments = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
        # Earnings only count visits that happened and were paid for.
        earnings = (
            db.query(func.coalesce(func.sum(Appointment.amount), 0))
            .filter(
                Appointment.doctor_id == doctor_id,
                Appointment.completed.is_(True),
                Appointment.cancelled.is_(False),
                Appointment.paid.is_(True),
            )
            .scalar()
        )
        patients = (
            db.query(func.count(func.distinct(Appointment.patient_id)))
            .filter(Appointment.doctor_id == doctor_id)
            .scalar()
        )

        return {
            'earnings': float(earnings or 0),
            'appointments': appointments.count(),
            'patients': patients or 0,
            'latest_appointments': _latest(appointments),
        }
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc


def admin_dashboard(db: Session) -> dict:
    try:
        return {
            'doctors': db.query(Doctor).count(),
            'patients': db.query(User).count(),
            'appointments': db.query(Appointment).count(),
            'latest_appointments': _latest(db.query(Appointment)),
        }
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc
