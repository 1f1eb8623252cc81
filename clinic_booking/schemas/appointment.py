from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

from ..models.appointment import Appointment, AppointmentStatus
from ..models.snapshot import DoctorSnapshot, PatientSnapshot

SLOT_DATE_PATTERN = r"^\d{1,2}_\d{1,2}_\d{4}$"

class BookAppointmentRequest(BaseModel):
    doctor_id: int
    slot_date: str = Field(..., min_length=1, pattern=SLOT_DATE_PATTERN, examples=["10_3_2025"])
    slot_time: str = Field(..., min_length=1, max_length=20, examples=["10:00 AM"])
    # Only admins booking on behalf of a patient send this
    patient_id: Optional[int] = None

    @field_validator("slot_time")
    @classmethod
    def strip_time(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("slot_time must not be blank")
        return v

class PaymentProjection(BaseModel):
    paid: bool
    order_id: Optional[str] = None
    order_amount: Optional[float] = None
    order_created_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    verified_at: Optional[datetime] = None

class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    slot_date: str
    slot_time: str
    amount: float
    status: AppointmentStatus
    cancelled: bool
    is_completed: bool
    payment: PaymentProjection
    patient: PatientSnapshot
    doctor: DoctorSnapshot
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    payment_date: Optional[datetime] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            slot_date=appointment.slot_date,
            slot_time=appointment.slot_time,
            amount=appointment.amount,
            status=appointment.status,
            cancelled=appointment.cancelled,
            is_completed=appointment.is_completed,
            payment=PaymentProjection(
                paid=appointment.payment_paid,
                order_id=appointment.payment_order_id,
                order_amount=appointment.payment_order_amount,
                order_created_at=appointment.payment_order_created_at,
                payment_id=appointment.payment_id,
                verified_at=appointment.payment_verified_at,
            ),
            patient=appointment.patient_snapshot,
            doctor=appointment.doctor_snapshot,
            created_at=appointment.created_at,
            completed_at=appointment.completed_at,
            cancelled_at=appointment.cancelled_at,
            cancelled_by=appointment.cancelled_by,
            payment_date=appointment.payment_date,
        )

class AppointmentActionResponse(BaseModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse

class AppointmentListResponse(BaseModel):
    success: bool = True
    appointments: List[AppointmentResponse]
