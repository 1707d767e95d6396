from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    slot_date: str
    slot_time: str
    amount: float
    created_at: datetime
    cancelled: bool
    paid: bool
    completed: bool
    doctor_snapshot: dict
    patient_snapshot: dict
    payment_provider: str | None = None


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    image: str | None = None
    speciality: str | None = None
    degree: str | None = None
    experience: str | None = None
    about: str | None = None
    fee: float
    address: dict | None = None
    available: bool
    slots_booked: dict[str, list[str]]