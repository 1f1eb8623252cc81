from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Dict, List
import logging

from ..core.errors import DoctorUnavailableError, NotFoundError, PersistenceError, SlotTakenError
from ..core.locks import doctor_key, get_lock_manager
from ..models.doctor import Doctor

logger = logging.getLogger(__name__)

class SlotLedger:
    """Authoritative record of which (date, time) slots a doctor has taken.

    The ledger lives on ``Doctor.slots_booked``. Every mutation re-reads the
    doctor row while holding the doctor's lock and writes the whole ledger
    back in a single commit.
    """

    def __init__(self, db: Session, locks=None):
        self.db = db
        self.locks = locks or get_lock_manager()

    def is_free(self, doctor_id: int, slot_date: str, slot_time: str) -> bool:
        """True iff the time is not reserved on that date."""
        return slot_time not in self.booked_slots(doctor_id, slot_date)

    def booked_slots(self, doctor_id: int, slot_date: str) -> List[str]:
        """Times reserved for the doctor on the given date."""
        doctor = self._load(doctor_id)
        return list((doctor.slots_booked or {}).get(slot_date, []))

    def reserve(self, doctor_id: int, slot_date: str, slot_time: str) -> None:
        """Claim a slot, raising SlotTakenError if someone already holds it.

        Availability is checked again on the locked row, so a doctor who has
        just switched off bookings cannot be booked.
        """
        with self.locks.hold(doctor_key(doctor_id)):
            doctor = self._load(doctor_id, for_update=True)
            if not doctor.available:
                self.db.rollback()
                logger.warning(f"Doctor {doctor_id} stopped taking bookings before slot {slot_date} {slot_time} was reserved")
                raise DoctorUnavailableError()
            ledger = self._copy(doctor.slots_booked)

            times = ledger.setdefault(slot_date, [])
            if slot_time in times:
                self.db.rollback()
                logger.warning(f"Slot {slot_date} {slot_time} already taken for doctor {doctor_id}")
                raise SlotTakenError()

            times.append(slot_time)
            self._write(doctor, ledger)

        logger.info(f"Reserved slot {slot_date} {slot_time} for doctor {doctor_id}")

    def release(self, doctor_id: int, slot_date: str, slot_time: str) -> bool:
        """Free a slot. Returns False without writing if it was not held."""
        with self.locks.hold(doctor_key(doctor_id)):
            doctor = self._load(doctor_id, for_update=True)
            ledger = self._copy(doctor.slots_booked)

            times = ledger.get(slot_date, [])
            if slot_time not in times:
                self.db.rollback()
                logger.info(f"Slot {slot_date} {slot_time} for doctor {doctor_id} already free")
                return False

            # Only the first occurrence goes
            times.remove(slot_time)
            if not times:
                del ledger[slot_date]
            self._write(doctor, ledger)

        logger.info(f"Released slot {slot_date} {slot_time} for doctor {doctor_id}")
        return True

    def _load(self, doctor_id: int, for_update: bool = False) -> Doctor:
        query = self.db.query(Doctor).filter(Doctor.id == doctor_id)
        if for_update:
            query = query.with_for_update()
        # Always read the committed ledger, not a copy cached in this session
        doctor = query.populate_existing().first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    @staticmethod
    def _copy(slots_booked) -> Dict[str, List[str]]:
        return {date: list(times) for date, times in (slots_booked or {}).items()}

    def _write(self, doctor: Doctor, ledger: Dict[str, List[str]]) -> None:
        # A new dict instance so the JSON column is flagged dirty
        doctor_id = doctor.id
        doctor.slots_booked = ledger
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist ledger for doctor {doctor_id}: {str(e)}")
            raise PersistenceError()
