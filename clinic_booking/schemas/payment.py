from pydantic import BaseModel, Field
from typing import Optional

from .appointment import AppointmentResponse

class CreateOrderRequest(BaseModel):
    appointment_id: int

class OrderResponse(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str

class CreateOrderResponse(BaseModel):
    success: bool = True
    message: str
    order: OrderResponse
    key_id: Optional[str] = None
    appointment: AppointmentResponse

class VerifyPaymentRequest(BaseModel):
    """Fields handed back by Razorpay checkout, named as the gateway names them."""
    appointment_id: int
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
