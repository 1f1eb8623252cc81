from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List
import logging

from ..core.errors import NotFoundError, PersistenceError, UnauthorizedError
from ..core.locks import doctor_key, get_lock_manager
from ..core.security import Actor, UserRole
from ..models.appointment import Appointment
from ..models.doctor import Doctor
from .appointment_store import AppointmentStore
from .lifecycle_service import check_access

logger = logging.getLogger(__name__)

class DirectoryService:
    """Read side of the booking system plus the doctor availability switch."""

    def __init__(self, db: Session, store: AppointmentStore = None, locks=None):
        self.db = db
        self.store = store or AppointmentStore(db)
        self.locks = locks or get_lock_manager()

    def list_doctors(self, available_only: bool = False) -> List[Doctor]:
        query = self.db.query(Doctor)
        if available_only:
            query = query.filter(Doctor.available == True)
        return query.order_by(Doctor.id).all()

    def toggle_availability(self, doctor_id: int, actor: Actor) -> Doctor:
        """Flip whether new bookings are accepted. Existing appointments are kept."""
        if not actor.is_admin and not (actor.role == UserRole.DOCTOR and actor.id == doctor_id):
            raise UnauthorizedError("Not authorized to change this doctor's availability")

        # Same lock as the ledger, so no reservation straddles the switch
        with self.locks.hold(doctor_key(doctor_id)):
            doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().populate_existing().first()
            if not doctor:
                raise NotFoundError("Doctor not found")
            doctor.available = not doctor.available
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to change availability for doctor {doctor_id}: {str(e)}")
                raise PersistenceError()
        self.db.refresh(doctor)

        logger.info(f"Doctor {doctor_id} availability set to {doctor.available} by {actor.role.value} {actor.id}")
        return doctor

    def list_appointments(self, actor: Actor, skip: int = 0, limit: int = 100) -> List[Appointment]:
        """Newest first: a patient's own, a doctor's own, or every appointment for admins."""
        if actor.role == UserRole.PATIENT:
            return self.store.list_for_patient(actor.id)
        if actor.role == UserRole.DOCTOR:
            return self.store.list_for_doctor(actor.id)
        return self.store.list_all(skip=skip, limit=limit)

    def get_appointment(self, appointment_id: int, actor: Actor) -> Appointment:
        appointment = self.store.get(appointment_id)
        check_access(appointment, actor)
        return appointment
