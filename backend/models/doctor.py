"""Doctor model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, func
from backend.database import Base


class Doctor(Base):
    """Represents a doctor and the slots already reserved on each day.

    ``slots_booked`` maps an ISO date (``YYYY-MM-DD``) to the sorted list of
    ``HH:MM`` times reserved on that day. Only the slot allocator writes it.
    """
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    image = Column(String, default="")
    speciality = Column(String)
    degree = Column(String)
    experience = Column(String)
    about = Column(String)
    fee = Column(Float, nullable=False)
    address = Column(JSON, default=dict)
    available = Column(Boolean, default=True, nullable=False)
    slots_booked = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
