from sqlalchemy.orm import Session
from datetime import datetime
from typing import Iterable
import logging

from ..core.errors import AlreadyTerminalError, UnauthorizedError
from ..core.locks import appointment_key, get_lock_manager
from ..core.security import Actor, UserRole
from ..models.appointment import Appointment, AppointmentStatus
from .appointment_store import AppointmentStore
from .slot_ledger import SlotLedger

logger = logging.getLogger(__name__)

ALL_ROLES = (UserRole.PATIENT, UserRole.DOCTOR, UserRole.ADMIN)

def check_access(appointment: Appointment, actor: Actor, roles: Iterable[UserRole] = ALL_ROLES) -> None:
    """Admins may act on any appointment, patients and doctors only on their own."""
    roles = tuple(roles)
    if actor.role not in roles:
        raise UnauthorizedError(
            f"Access denied. Required roles: {[role.value for role in roles]}"
        )
    if actor.role == UserRole.ADMIN:
        return
    if actor.role == UserRole.PATIENT and appointment.patient_id == actor.id:
        return
    if actor.role == UserRole.DOCTOR and appointment.doctor_id == actor.id:
        return
    raise UnauthorizedError("Not authorized to access this appointment")

def check_locked_access(db: Session, appointment: Appointment, actor: Actor, roles: Iterable[UserRole] = ALL_ROLES) -> None:
    """check_access for a row read with FOR UPDATE; a refusal drops the row lock."""
    try:
        check_access(appointment, actor, roles)
    except UnauthorizedError:
        db.rollback()
        raise

class LifecycleService:
    """Moves appointments from pending to cancelled or completed.

    Both target states are terminal; a repeated transition is rejected with
    AlreadyTerminalError rather than silently accepted. The one exception is
    a cancellation whose slot release failed: cancelling it again retries
    the release.
    """

    def __init__(self, db: Session, ledger: SlotLedger = None, store: AppointmentStore = None, locks=None):
        self.db = db
        self.locks = locks or get_lock_manager()
        self.ledger = ledger or SlotLedger(db, self.locks)
        self.store = store or AppointmentStore(db)

    def cancel(self, appointment_id: int, actor: Actor) -> Appointment:
        with self.locks.hold(appointment_key(appointment_id)):
            appointment = self.store.get(appointment_id, fresh=True)
            check_locked_access(self.db, appointment, actor)

            if appointment.release_pending:
                logger.warning(f"Retrying slot release for cancelled appointment {appointment_id}")
            else:
                self._ensure_pending(appointment, "cancel")
                appointment.status = AppointmentStatus.CANCELLED
                appointment.cancelled_at = datetime.utcnow()
                appointment.cancelled_by = actor.role.value
                appointment = self.store.save(appointment)

            # Only once the cancellation is committed does the slot go back
            appointment = self._release_slot(appointment)

        logger.info(f"Appointment {appointment_id} cancelled by {actor.role.value} {actor.id}")
        return appointment

    def complete(self, appointment_id: int, actor: Actor) -> Appointment:
        with self.locks.hold(appointment_key(appointment_id)):
            appointment = self.store.get(appointment_id, fresh=True)
            check_locked_access(self.db, appointment, actor, roles=(UserRole.DOCTOR, UserRole.ADMIN))
            self._ensure_pending(appointment, "complete")

            appointment.status = AppointmentStatus.COMPLETED
            appointment.completed_at = datetime.utcnow()
            appointment = self.store.save(appointment)

        logger.info(f"Appointment {appointment_id} completed by {actor.role.value} {actor.id}")
        return appointment

    def _release_slot(self, appointment: Appointment) -> Appointment:
        """Hand the slot back and mark the appointment released.

        Runs under the appointment lock, so two retries cannot both release.
        The flag is left pending in the session and goes out in the same
        commit as the ledger write.
        """
        appointment_id = appointment.id
        doctor_id, slot_date, slot_time = appointment.doctor_id, appointment.slot_date, appointment.slot_time

        appointment.slot_released = True
        try:
            released = self.ledger.release(doctor_id, slot_date, slot_time)
        except Exception:
            self.db.rollback()
            logger.error(f"Slot release failed for cancelled appointment {appointment_id}; cancel again to retry")
            raise

        if not released:
            # Slot was already free; the ledger rolled back, so record the flag on its own
            appointment = self.store.get(appointment_id, fresh=True)
            appointment.slot_released = True
            return self.store.save(appointment)

        self.db.refresh(appointment)
        return appointment

    def _ensure_pending(self, appointment: Appointment, action: str) -> None:
        current = appointment.status
        if current.is_terminal:
            appointment_id = appointment.id
            # Drop the row lock taken by the fresh read
            self.db.rollback()
            logger.warning(f"Refusing to {action} appointment {appointment_id}: already {current.value}")
            raise AlreadyTerminalError(f"Appointment already {current.value}")
