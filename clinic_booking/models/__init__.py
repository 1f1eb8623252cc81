from .appointment import Appointment, AppointmentStatus
from .doctor import Doctor
from .patient import Patient
from .snapshot import DoctorSnapshot, PatientSnapshot

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Doctor",
    "DoctorSnapshot",
    "Patient",
    "PatientSnapshot",
]
