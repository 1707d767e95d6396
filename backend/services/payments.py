import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import (
    AppointmentAlreadyPaid,
    AppointmentCancelled,
    AppointmentNotFound,
    Forbidden,
    PersistenceFailure,
)
from backend.models.appointment import Appointment
from backend.services.payment_providers import OrderHandle, PaymentProvider, VerificationResult

logger = logging.getLogger(__name__)


def _get_appointment(db: Session, appointment_id: int) -> Appointment | None:
    try:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc


def create_order(
    db: Session,
    provider: PaymentProvider,
    patient_id: int,
    appointment_id: int,
    origin: str | None = None,
) -> OrderHandle:
    appointment = _get_appointment(db, appointment_id)
    if appointment is None:
        raise AppointmentNotFound()
    if appointment.patient_id != patient_id:
        raise Forbidden()
    if appointment.cancelled:
        raise AppointmentCancelled()
    if appointment.paid:
        raise AppointmentAlreadyPaid()

    order = provider.create_order(appointment, origin)

    try:
        appointment.payment_provider = provider.name
        appointment.payment_reference = order.order_id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to record %s order %s for appointment %s', provider.name, order.order_id, appointment_id)
        raise PersistenceFailure() from exc

    logger.info('Created %s order %s for appointment %s', provider.name, order.order_id, appointment_id)
    return order


def reconcile(db: Session, result: VerificationResult) -> Appointment:
    """Mark the appointment paid. Repeated confirmations are a no-op."""
    try:
        updated = (
            db.query(Appointment)
            .filter(
                Appointment.id == result.appointment_id,
                Appointment.cancelled.is_(False),
                Appointment.paid.is_(False),
            )
            .update(
                {
                    Appointment.paid: True,
                    Appointment.paid_at: datetime.now(timezone.utc),
                    Appointment.payment_provider: result.provider,
                },
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to reconcile payment for appointment %s', result.appointment_id)
        raise PersistenceFailure() from exc

    appointment = _get_appointment(db, result.appointment_id)
    if appointment is None:
        raise AppointmentNotFound()
    db.refresh(appointment)

    if updated:
        logger.info(
            'Appointment %s paid via %s (confidence=%s)',
            appointment.id,
            result.provider,
            result.confidence.value,
        )
        return appointment

    if appointment.paid:
        return appointment
    raise AppointmentCancelled()


def verify_payment(db: Session, provider: PaymentProvider, payload: dict) -> tuple[Appointment, VerificationResult]:
    result = provider.verify(payload)
    return reconcile(db, result), result
