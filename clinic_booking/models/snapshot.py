"""
Point-in-time copies of directory data stored on an appointment.

They are captured once when the appointment is booked and never re-synced
with the Patient or Doctor rows; a doctor changing their fee or photo
later does not alter what an existing appointment shows.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class PatientSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: Optional[str] = None
    image: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[str] = None

    @classmethod
    def capture(cls, patient) -> "PatientSnapshot":
        return cls(
            id=patient.id,
            name=patient.name,
            email=patient.email,
            image=patient.image,
            phone=patient.phone,
            gender=patient.gender,
            dob=patient.dob,
        )


class DoctorSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: Optional[str] = None
    image: Optional[str] = None
    speciality: Optional[str] = None
    degree: Optional[str] = None
    experience: Optional[str] = None
    fees: float = 0
    address: Optional[Dict[str, Any]] = None

    @classmethod
    def capture(cls, doctor) -> "DoctorSnapshot":
        # slots_booked is deliberately left out
        return cls(
            id=doctor.id,
            name=doctor.name,
            email=doctor.email,
            image=doctor.image,
            speciality=doctor.speciality,
            degree=doctor.degree,
            experience=doctor.experience,
            fees=doctor.fees or 0,
            address=doctor.address,
        )
