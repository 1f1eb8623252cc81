from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..core.errors import (
    DoctorUnavailableError, InvalidRequestError, NotFoundError, PersistenceError
)
from ..models.appointment import Appointment, AppointmentStatus
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.snapshot import DoctorSnapshot, PatientSnapshot
from .appointment_store import AppointmentStore
from .slot_ledger import SlotLedger

logger = logging.getLogger(__name__)

class BookingService:
    def __init__(self, db: Session, ledger: SlotLedger = None, store: AppointmentStore = None):
        self.db = db
        self.ledger = ledger or SlotLedger(db)
        self.store = store or AppointmentStore(db)

    def book(self, patient_id: int, doctor_id: int, slot_date: str, slot_time: str) -> Appointment:
        """Reserve a slot and record the appointment for it.

        The reservation is committed first. If the appointment then fails to
        persist, the reservation is released again so the ledger never shows
        a slot taken without an appointment behind it.
        """
        slot_date = (slot_date or "").strip()
        slot_time = (slot_time or "").strip()
        if not patient_id or not doctor_id or not slot_date or not slot_time:
            raise InvalidRequestError("Missing booking details")

        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.available:
            raise DoctorUnavailableError()

        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise NotFoundError("Patient not found")

        self.ledger.reserve(doctor_id, slot_date, slot_time)

        # Snapshots and fee as of this instant (the reserve re-read the doctor)
        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            patient_data=PatientSnapshot.capture(patient).model_dump(),
            doctor_data=DoctorSnapshot.capture(doctor).model_dump(),
            slot_date=slot_date,
            slot_time=slot_time,
            amount=doctor.fees or 0,
            status=AppointmentStatus.PENDING,
            payment_paid=False,
            slot_released=False,
        )

        try:
            appointment = self.store.add(appointment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to persist appointment for doctor {doctor_id} "
                f"slot {slot_date} {slot_time}: {str(e)}; releasing slot"
            )
            self._release_orphan(doctor_id, slot_date, slot_time)
            raise PersistenceError("Could not save appointment, please retry")

        # Committed from here on; a failed reload must not give the slot back
        self.db.refresh(appointment)

        logger.info(
            f"Booked appointment {appointment.id} for patient {patient_id} "
            f"with doctor {doctor_id} at {slot_date} {slot_time}"
        )
        return appointment

    def _release_orphan(self, doctor_id: int, slot_date: str, slot_time: str) -> None:
        try:
            self.ledger.release(doctor_id, slot_date, slot_time)
        except Exception as e:
            # Original persistence error is what the caller sees
            logger.error(
                f"Compensating release failed for doctor {doctor_id} "
                f"slot {slot_date} {slot_time}: {str(e)}"
            )
