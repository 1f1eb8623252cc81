from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from typing import List
import logging

from ..core.errors import InvalidStateError, NotFoundError, PersistenceError
from ..models.appointment import Appointment

logger = logging.getLogger(__name__)

class AppointmentStore:
    """Persistence for appointment records. Records are never deleted."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int, fresh: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if fresh:
            query = query.with_for_update().populate_existing()
        appointment = query.first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def add(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment and commit. The caller reloads it afterwards."""
        self.db.add(appointment)
        self.db.commit()
        return appointment

    def save(self, appointment: Appointment) -> Appointment:
        """Commit pending changes to an existing appointment.

        A concurrent write from another process surfaces as a version
        mismatch and is reported as a state conflict.
        """
        appointment_id = appointment.id
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Appointment {appointment_id} was modified concurrently")
            raise InvalidStateError("Appointment was modified concurrently, please reload")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save appointment {appointment_id}: {str(e)}")
            raise PersistenceError()
        self.db.refresh(appointment)
        return appointment

    def list_for_patient(self, patient_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def list_for_doctor(self, doctor_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id
        ).order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()

    def list_all(self, skip: int = 0, limit: int = 100) -> List[Appointment]:
        return self.db.query(Appointment).order_by(
            Appointment.created_at.desc(), Appointment.id.desc()
        ).offset(skip).limit(limit).all()
