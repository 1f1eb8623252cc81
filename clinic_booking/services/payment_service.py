from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional
import logging

from ..core.config import settings
from ..core.errors import (
    GatewayError, InvalidAmountError, InvalidRequestError,
    InvalidSignatureError, InvalidStateError
)
from ..core.locks import appointment_key, get_lock_manager
from ..core.security import Actor, UserRole
from ..models.appointment import Appointment
from .appointment_store import AppointmentStore
from .lifecycle_service import check_access, check_locked_access
from .payment_gateway import verify_payment_signature

logger = logging.getLogger(__name__)

PAYER_ROLES = (UserRole.PATIENT, UserRole.ADMIN)

@dataclass(frozen=True)
class OrderHandle:
    order_id: str
    amount: int
    currency: str
    receipt: str
    key_id: Optional[str]
    appointment: Appointment

def to_minor_units(amount) -> int:
    """Fee in minor currency units, rounded half up."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError()
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError()
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

class PaymentService:
    """Binds gateway orders to appointments and records verified payments.

    Payment never changes the appointment status; paid and completed are
    independent.
    """

    def __init__(self, db: Session, gateway=None, store: AppointmentStore = None, locks=None):
        self.db = db
        self.gateway = gateway
        self.store = store or AppointmentStore(db)
        self.locks = locks or get_lock_manager()

    async def create_order(self, appointment_id: int, actor: Actor) -> OrderHandle:
        """Open a gateway order for the appointment fee.

        Database work and lock waits run in the threadpool; only the gateway
        call is awaited on the event loop, outside every lock.
        """
        if self.gateway is None:
            raise GatewayError("Payment gateway not configured")

        amount, receipt = await run_in_threadpool(self._prepare_order, appointment_id, actor)
        order = await self.gateway.create_order(amount, settings.CURRENCY, receipt)
        appointment = await run_in_threadpool(self._record_order, appointment_id, order)

        logger.info(f"Created payment order {order['id']} for appointment {appointment_id}")
        return OrderHandle(
            order_id=order["id"],
            amount=order.get("amount", amount),
            currency=order.get("currency", settings.CURRENCY),
            receipt=order.get("receipt", receipt),
            key_id=getattr(self.gateway, "key_id", None),
            appointment=appointment,
        )

    def verify(
        self,
        appointment_id: int,
        order_id: str,
        payment_id: str,
        signature: str,
        actor: Optional[Actor] = None,
    ) -> Appointment:
        """Record a checkout as paid once its signature checks out.

        Replaying the payload that already marked the appointment paid returns
        it unchanged; payment_date is written only the first time.
        """
        if not appointment_id or not order_id or not payment_id or not signature:
            raise InvalidRequestError("Missing payment fields")

        secret = settings.RAZORPAY_KEY_SECRET
        if not secret:
            raise GatewayError("Payment gateway keys not configured")
        if not verify_payment_signature(secret, order_id, payment_id, signature):
            logger.warning(f"Invalid payment signature for appointment {appointment_id}, order {order_id}")
            raise InvalidSignatureError()

        with self.locks.hold(appointment_key(appointment_id)):
            appointment = self.store.get(appointment_id, fresh=True)
            if actor is not None:
                check_locked_access(self.db, appointment, actor, roles=PAYER_ROLES)

            if appointment.payment_order_id != order_id:
                self.db.rollback()
                raise InvalidStateError("Payment order does not belong to this appointment")

            if appointment.payment_paid:
                if appointment.payment_id == payment_id:
                    logger.info(f"Payment {payment_id} already recorded for appointment {appointment_id}")
                    self.db.rollback()
                    return appointment
                self.db.rollback()
                raise InvalidStateError("Appointment already paid")

            now = datetime.utcnow()
            appointment.payment_paid = True
            appointment.payment_id = payment_id
            appointment.payment_signature = signature
            appointment.payment_verified_at = now
            if appointment.payment_date is None:
                appointment.payment_date = now
            appointment = self.store.save(appointment)

        logger.info(f"Payment {payment_id} verified for appointment {appointment_id}")
        return appointment

    def _prepare_order(self, appointment_id: int, actor: Actor):
        appointment = self.store.get(appointment_id)
        check_access(appointment, actor, roles=PAYER_ROLES)
        self._ensure_payable(appointment)
        amount = to_minor_units(appointment.amount)
        receipt = str(appointment.id)

        # Nothing has been written yet, so a gateway failure is safe to retry
        self.db.rollback()
        return amount, receipt

    def _record_order(self, appointment_id: int, order) -> Appointment:
        with self.locks.hold(appointment_key(appointment_id)):
            appointment = self.store.get(appointment_id, fresh=True)
            self._ensure_payable(appointment)

            appointment.payment_order_id = order["id"]
            appointment.payment_order_amount = appointment.amount
            appointment.payment_order_created_at = datetime.utcnow()
            return self.store.save(appointment)

    def _ensure_payable(self, appointment: Appointment) -> None:
        reason = None
        if appointment.cancelled:
            reason = "Appointment cancelled"
        elif appointment.payment_paid:
            reason = "Appointment already paid"
        if reason:
            # Drop any row lock taken by a fresh read
            self.db.rollback()
            raise InvalidStateError(reason)
