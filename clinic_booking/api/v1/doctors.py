from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_doctor_actor
from ...services.directory_service import DirectoryService
from ...services.slot_ledger import SlotLedger
from ...schemas.appointment import SLOT_DATE_PATTERN
from ...schemas.doctor import (
    AvailabilityResponse, DoctorListResponse, DoctorResponse, SlotsResponse
)

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("", response_model=DoctorListResponse)
def list_doctors(
    available_only: bool = False,
    db: Session = Depends(get_db)
):
    """List doctors."""
    directory_service = DirectoryService(db)
    doctors = directory_service.list_doctors(available_only=available_only)
    return DoctorListResponse(doctors=[DoctorResponse.model_validate(d) for d in doctors])

@router.get("/{doctor_id}/slots", response_model=SlotsResponse)
def get_doctor_slots(
    doctor_id: int,
    slot_date: str = Query(..., pattern=SLOT_DATE_PATTERN),
    slot_time: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Booked times for a date, and whether a given time is still free."""
    ledger = SlotLedger(db)
    booked = ledger.booked_slots(doctor_id, slot_date)
    return SlotsResponse(
        doctor_id=doctor_id,
        slot_date=slot_date,
        booked=booked,
        slot_time=slot_time,
        free=(slot_time not in booked) if slot_time else None
    )

@router.post("/{doctor_id}/availability", response_model=AvailabilityResponse)
def change_availability(
    doctor_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_doctor_actor)
):
    """Toggle whether the doctor accepts new bookings."""
    directory_service = DirectoryService(db)
    doctor = directory_service.toggle_availability(doctor_id, actor)
    return AvailabilityResponse(
        message="Availability Changed",
        doctor=DoctorResponse.model_validate(doctor)
    )
