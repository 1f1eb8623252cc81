from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Actor
from ...api.deps import get_patient_actor
from ...services.payment_gateway import get_payment_gateway
from ...services.payment_service import PaymentService
from ...schemas.appointment import AppointmentActionResponse, AppointmentResponse
from ...schemas.payment import (
    CreateOrderRequest, CreateOrderResponse, OrderResponse, VerifyPaymentRequest
)

router = APIRouter(prefix="/payments", tags=["Payments"])

@router.post("/orders", response_model=CreateOrderResponse)
async def create_payment_order(
    request: CreateOrderRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_patient_actor),
    gateway = Depends(get_payment_gateway)
):
    """Create a gateway order for an appointment's fee."""
    payment_service = PaymentService(db, gateway)
    handle = await payment_service.create_order(request.appointment_id, actor)
    return CreateOrderResponse(
        message="Payment order created",
        order=OrderResponse(
            id=handle.order_id,
            amount=handle.amount,
            currency=handle.currency,
            receipt=handle.receipt,
        ),
        key_id=handle.key_id,
        appointment=AppointmentResponse.from_appointment(handle.appointment)
    )

@router.post("/verify", response_model=AppointmentActionResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_patient_actor)
):
    """Verify a checkout signature and mark the appointment paid."""
    payment_service = PaymentService(db)
    appointment = payment_service.verify(
        appointment_id=request.appointment_id,
        order_id=request.razorpay_order_id,
        payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
        actor=actor,
    )
    return AppointmentActionResponse(
        message="Payment verified and appointment updated",
        appointment=AppointmentResponse.from_appointment(appointment)
    )
