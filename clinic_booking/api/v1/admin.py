from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_admin_actor
from ...services.directory_service import DirectoryService
from ...schemas.appointment import AppointmentListResponse, AppointmentResponse

router = APIRouter(prefix="/admin", tags=["Admin"])

@router.get("/appointments", response_model=AppointmentListResponse)
def list_all_appointments(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_admin_actor)
):
    """Every appointment in the clinic, newest first."""
    directory_service = DirectoryService(db)
    appointments = directory_service.list_appointments(actor, skip=skip, limit=limit)
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_appointment(a) for a in appointments]
    )
