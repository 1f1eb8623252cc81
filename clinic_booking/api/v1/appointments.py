from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import InvalidRequestError, UnauthorizedError
from ...core.security import Actor, UserRole
from ...api.deps import get_current_actor, get_doctor_actor, get_patient_actor
from ...services.booking_service import BookingService
from ...services.directory_service import DirectoryService
from ...services.lifecycle_service import LifecycleService
from ...schemas.appointment import (
    AppointmentActionResponse, AppointmentListResponse, AppointmentResponse,
    BookAppointmentRequest
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

def _resolve_patient(request: BookAppointmentRequest, actor: Actor) -> int:
    """Patients book for themselves; admins must name the patient."""
    if actor.role == UserRole.PATIENT:
        if request.patient_id is not None and request.patient_id != actor.id:
            raise UnauthorizedError("Patients can only book for themselves")
        return actor.id
    if request.patient_id is None:
        raise InvalidRequestError("patient_id is required")
    return request.patient_id

@router.post("", response_model=AppointmentActionResponse)
def book_appointment(
    request: BookAppointmentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_patient_actor)
):
    """Book a slot with a doctor."""
    booking_service = BookingService(db)
    appointment = booking_service.book(
        patient_id=_resolve_patient(request, actor),
        doctor_id=request.doctor_id,
        slot_date=request.slot_date,
        slot_time=request.slot_time,
    )
    return AppointmentActionResponse(
        message="Appointment booked",
        appointment=AppointmentResponse.from_appointment(appointment)
    )

@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """List the caller's appointments, newest first (admins see all)."""
    directory_service = DirectoryService(db)
    appointments = directory_service.list_appointments(actor, skip=skip, limit=limit)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_appointment(a) for a in appointments]
    )

@router.get("/{appointment_id}", response_model=AppointmentActionResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Get a single appointment."""
    directory_service = DirectoryService(db)
    appointment = directory_service.get_appointment(appointment_id, actor)
    return AppointmentActionResponse(
        message="Appointment found",
        appointment=AppointmentResponse.from_appointment(appointment)
    )

@router.post("/{appointment_id}/cancel", response_model=AppointmentActionResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Cancel an appointment and free its slot."""
    lifecycle_service = LifecycleService(db)
    appointment = lifecycle_service.cancel(appointment_id, actor)
    return AppointmentActionResponse(
        message="Appointment cancelled",
        appointment=AppointmentResponse.from_appointment(appointment)
    )

@router.post("/{appointment_id}/complete", response_model=AppointmentActionResponse)
def complete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_doctor_actor)
):
    """Mark an appointment completed (doctor or admin)."""
    lifecycle_service = LifecycleService(db)
    appointment = lifecycle_service.complete(appointment_id, actor)
    return AppointmentActionResponse(
        message="Appointment completed",
        appointment=AppointmentResponse.from_appointment(appointment)
    )
