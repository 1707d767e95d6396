from dataclasses import dataclass

PATIENT_ROLE = "patient"
DOCTOR_ROLE = "doctor"
ADMIN_ROLE = "admin"
ROLES = frozenset({PATIENT_ROLE, DOCTOR_ROLE, ADMIN_ROLE})


@dataclass(frozen=True)
class Principal:
    """Authenticated caller: a patient id, a doctor id, or an admin."""

    id: int
    role: str

    @property
    def is_patient(self) -> bool:
        return self.role == PATIENT_ROLE

    @property
    def is_doctor(self) -> bool:
        return self.role == DOCTOR_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE
