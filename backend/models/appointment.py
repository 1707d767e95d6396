"""Appointment model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String
from backend.database import Base


class Appointment(Base):
    """Represents a booked appointment.

    Doctor and patient display fields are copied into the snapshot columns at
    booking time. Cancellation is a flag; rows are never deleted.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    slot_date = Column(String, nullable=False)
    slot_time = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    cancelled = Column(Boolean, default=False, nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    doctor_snapshot = Column(JSON, nullable=False)
    patient_snapshot = Column(JSON, nullable=False)
    payment_provider = Column(String)
    payment_reference = Column(String)
    paid_at = Column(DateTime(timezone=True))


# At most one live (non-cancelled) appointment per doctor slot.
Index(
    "uq_appointments_active_slot",
    Appointment.doctor_id,
    Appointment.slot_date,
    Appointment.slot_time,
    unique=True,
    sqlite_where=Appointment.cancelled.is_(False),
    postgresql_where=Appointment.cancelled.is_(False),
)
