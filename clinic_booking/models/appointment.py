from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Float, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from .snapshot import DoctorSnapshot, PatientSnapshot

class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self is not AppointmentStatus.PENDING

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)

    # Snapshots taken at booking time
    patient_data = Column(JSON, nullable=False)
    doctor_data = Column(JSON, nullable=False)

    # Ledger key, immutable after creation
    slot_date = Column(String(20), nullable=False, index=True)
    slot_time = Column(String(20), nullable=False)

    amount = Column(Float, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)

    # Payment
    payment_paid = Column(Boolean, nullable=False, default=False)
    payment_order_id = Column(String(100), nullable=True, index=True)
    payment_order_amount = Column(Float, nullable=True)
    payment_order_created_at = Column(DateTime, nullable=True)
    payment_id = Column(String(100), nullable=True)
    payment_signature = Column(String(255), nullable=True)
    payment_verified_at = Column(DateTime, nullable=True)
    payment_date = Column(DateTime, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    # Set in the same commit that hands a cancelled slot back to the ledger
    slot_released = Column(Boolean, nullable=False, default=False)

    # Optimistic concurrency; a stale write raises StaleDataError
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")

    @property
    def cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    @property
    def is_completed(self) -> bool:
        return self.status == AppointmentStatus.COMPLETED

    @property
    def release_pending(self) -> bool:
        """Cancelled, but the slot has not yet gone back to the ledger."""
        return self.cancelled and not self.slot_released

    @property
    def patient_snapshot(self) -> PatientSnapshot:
        return PatientSnapshot.model_validate(self.patient_data)

    @property
    def doctor_snapshot(self) -> DoctorSnapshot:
        return DoctorSnapshot.model_validate(self.doctor_data)

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, "
            f"slot='{self.slot_date} {self.slot_time}', status='{self.status}')>"
        )
