"""Per-doctor, per-day slot occupancy.

The allocator only stages changes on the caller's session; committing is the
caller's job so that a reservation and the appointment row it belongs to land
in the same transaction.
"""

import logging
import re
from datetime import datetime

from sqlalchemy.orm import Session

from backend.core.errors import DoctorNotFound, DoctorUnavailable, Invalid, SlotUnavailable
from backend.models.doctor import Doctor

logger = logging.getLogger(__name__)

SLOT_DATE_FORMAT = '%Y-%m-%d'
SLOT_TIME_FORMAT = '%H:%M'
TWELVE_HOUR_TIME_FORMAT = '%I:%M %p'

_ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def normalize_slot_date(value: str) -> str:
    normalized = (value or '').strip()
    if '_' in normalized:
        raise Invalid('Slot date must use the YYYY-MM-DD format.')
    if not _ISO_DATE_PATTERN.match(normalized):
        raise Invalid('Slot date must use the YYYY-MM-DD format.')
    try:
        parsed = datetime.strptime(normalized, SLOT_DATE_FORMAT)
    except ValueError as exc:
        raise Invalid('Slot date is not a valid calendar date.') from exc
    return parsed.strftime(SLOT_DATE_FORMAT)


def normalize_slot_time(value: str) -> str:
    normalized = ' '.join((value or '').strip().upper().split())
    for time_format in (SLOT_TIME_FORMAT, TWELVE_HOUR_TIME_FORMAT):
        try:
            parsed = datetime.strptime(normalized, time_format)
        except ValueError:
            continue
        return parsed.strftime(SLOT_TIME_FORMAT)
    raise Invalid('Slot time must use the HH:MM format.')


def lock_doctor(db: Session, doctor_id: int) -> Doctor:
    """Row-lock the doctor and reload it, discarding any copy already in the session."""
    doctor = (
        db.query(Doctor)
        .filter(Doctor.id == doctor_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if doctor is None:
        raise DoctorNotFound()
    return doctor


def reserve(db: Session, doctor_id: int, slot_date: str, slot_time: str) -> Doctor:
    doctor = lock_doctor(db, doctor_id)
    if not doctor.available:
        raise DoctorUnavailable()

    slots_booked = {day: list(times) for day, times in (doctor.slots_booked or {}).items()}
    day_slots = slots_booked.get(slot_date, [])
    if slot_time in day_slots:
        raise SlotUnavailable()

    slots_booked[slot_date] = sorted([*day_slots, slot_time])
    doctor.slots_booked = slots_booked
    db.flush()

    logger.debug('Reserved slot %s %s for doctor %s', slot_date, slot_time, doctor_id)
    return doctor


def release(db: Session, doctor_id: int, slot_date: str, slot_time: str) -> bool:
    """Remove a reserved time. Returns False when there was nothing to remove."""
    doctor = lock_doctor(db, doctor_id)

    day_slots = (doctor.slots_booked or {}).get(slot_date)
    if not day_slots or slot_time not in day_slots:
        return False

    slots_booked = {day: list(times) for day, times in doctor.slots_booked.items()}
    slots_booked[slot_date] = [booked for booked in day_slots if booked != slot_time]
    doctor.slots_booked = slots_booked
    db.flush()

    logger.debug('Released slot %s %s for doctor %s', slot_date, slot_time, doctor_id)
    return True
