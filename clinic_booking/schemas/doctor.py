from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional

class DoctorResponse(BaseModel):
    """Public doctor profile; the slot ledger is served separately."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    image: Optional[str] = None
    speciality: str
    degree: Optional[str] = None
    experience: Optional[str] = None
    about: Optional[str] = None
    fees: float
    address: Optional[Dict[str, Any]] = None
    available: bool

class DoctorListResponse(BaseModel):
    success: bool = True
    doctors: List[DoctorResponse]

class AvailabilityResponse(BaseModel):
    success: bool = True
    message: str
    doctor: DoctorResponse

class SlotsResponse(BaseModel):
    success: bool = True
    doctor_id: int
    slot_date: str
    booked: List[str]
    slot_time: Optional[str] = None
    free: Optional[bool] = None
