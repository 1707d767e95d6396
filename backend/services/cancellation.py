"""Cancel and complete transitions for booked appointments.

``cancelled`` and ``completed`` are mutually exclusive. Each transition is a
single conditional UPDATE so that concurrent cancel/complete requests cannot
both win. Cancelling hands the slot back to the doctor's occupancy map on a
best-effort basis: the cancelled flag is the source of truth, so a failed
release is logged rather than failing the request.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.principal import Principal
from backend.core.errors import AppointmentNotFound, Forbidden, InvalidTransition, PersistenceFailure, ServiceError
from backend.models.appointment import Appointment
from backend.services import slot_allocator

logger = logging.getLogger(__name__)


def _load_appointment(db: Session, appointment_id: int) -> Appointment:
    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc
    if appointment is None:
        raise AppointmentNotFound()
    return appointment


def _is_staff_for(principal: Principal, appointment: Appointment) -> bool:
    if principal.is_admin:
        return True
    return principal.is_doctor and principal.id == appointment.doctor_id


def can_cancel(principal: Principal, appointment: Appointment) -> bool:
    if principal.is_patient and principal.id == appointment.patient_id:
        return True
    return _is_staff_for(principal, appointment)


def _transition(db: Session, appointment_id: int, values: dict) -> int:
    """Apply ``values`` only while the appointment is neither cancelled nor completed."""
    try:
        updated = (
            db.query(Appointment)
            .filter(
                Appointment.id == appointment_id,
                Appointment.cancelled.is_(False),
                Appointment.completed.is_(False),
            )
            .update(values, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update appointment %s', appointment_id)
        raise PersistenceFailure() from exc
    return updated


def cancel(db: Session, principal: Principal, appointment_id: int) -> Appointment:
    appointment = _load_appointment(db, appointment_id)

    if not can_cancel(principal, appointment):
        raise Forbidden()

    if appointment.cancelled:
        return appointment

    if not _transition(db, appointment_id, {Appointment.cancelled: True}):
        db.refresh(appointment)
        if appointment.cancelled:
            return appointment
        raise InvalidTransition('Completed appointments cannot be cancelled.')

    db.refresh(appointment)
    logger.info('Cancelled appointment %s by %s %s', appointment.id, principal.role, principal.id)

    try:
        slot_allocator.release(db, appointment.doctor_id, appointment.slot_date, appointment.slot_time)
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        logger.exception(
            'Slot release failed for appointment %s (doctor %s, %s %s)',
            appointment.id,
            appointment.doctor_id,
            appointment.slot_date,
            appointment.slot_time,
        )

    return appointment


def complete(db: Session, principal: Principal, appointment_id: int) -> Appointment:
    appointment = _load_appointment(db, appointment_id)

    if not _is_staff_for(principal, appointment):
        raise Forbidden()

    if appointment.completed:
        return appointment

    if not _transition(db, appointment_id, {Appointment.completed: True}):
        db.refresh(appointment)
        if appointment.completed:
            return appointment
        raise InvalidTransition('Cancelled appointments cannot be completed.')

    db.refresh(appointment)
    logger.info('Completed appointment %s by %s %s', appointment.id, principal.role, principal.id)
    return appointment
