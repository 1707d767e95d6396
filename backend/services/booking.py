import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import DoctorNotFound, DoctorUnavailable, PatientNotFound, PersistenceFailure, SlotUnavailable
from backend.models.appointment import Appointment
from backend.models.doctor import Doctor
from backend.models.user import User
from backend.services import slot_allocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoctorSnapshot:
    id: int
    name: str
    image: str
    speciality: str
    experience: str
    fee: float
    address: dict = field(default_factory=dict)

    @classmethod
    def from_doctor(cls, doctor: Doctor) -> 'DoctorSnapshot':
        return cls(
            id=doctor.id,
            name=doctor.name or 'Unknown Doctor',
            image=doctor.image or '',
            speciality=doctor.speciality or 'N/A',
            experience=doctor.experience or 'N/A',
            fee=doctor.fee or 0,
            address=dict(doctor.address or {'line1': 'N/A', 'line2': ''}),
        )


@dataclass(frozen=True)
class PatientSnapshot:
    id: int
    name: str
    email: str
    image: str

    @classmethod
    def from_user(cls, user: User) -> 'PatientSnapshot':
        return cls(
            id=user.id,
            name=user.name or 'Unknown User',
            email=user.email or 'N/A',
            image=user.image or '',
        )


def book(db: Session, patient_id: int, doctor_id: int, slot_date: str, slot_time: str) -> Appointment:
    slot_date = slot_allocator.normalize_slot_date(slot_date)
    slot_time = slot_allocator.normalize_slot_time(slot_time)

    try:
        # Held until commit, so the slot map read below is current.
        doctor = slot_allocator.lock_doctor(db, doctor_id)
        if not doctor.available:
            raise DoctorUnavailable()

        patient = db.query(User).filter(User.id == patient_id).first()
        if patient is None:
            raise PatientNotFound()

        slot_allocator.reserve(db, doctor_id, slot_date, slot_time)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            slot_date=slot_date,
            slot_time=slot_time,
            amount=doctor.fee,
            created_at=datetime.now(timezone.utc),
            cancelled=False,
            paid=False,
            completed=False,
            doctor_snapshot=asdict(DoctorSnapshot.from_doctor(doctor)),
            patient_snapshot=asdict(PatientSnapshot.from_user(patient)),
        )
        db.add(appointment)
        # Slot map and ledger row commit together.
        db.commit()
        db.refresh(appointment)
    except (DoctorNotFound, DoctorUnavailable, PatientNotFound, SlotUnavailable):
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.info('Concurrent booking lost for doctor %s at %s %s', doctor_id, slot_date, slot_time)
        raise SlotUnavailable() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to book appointment for doctor %s', doctor_id)
        raise PersistenceFailure() from exc

    logger.info(
        'Booked appointment %s: patient %s with doctor %s at %s %s',
        appointment.id,
        patient_id,
        doctor_id,
        slot_date,
        slot_time,
    )
    return appointment


def list_patient_appointments(db: Session, patient_id: int) -> list[Appointment]:
    try:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise PersistenceFailure() from exc
