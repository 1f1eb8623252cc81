from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Float, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)

    # Profile information
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    image = Column(String(500), nullable=True)
    speciality = Column(String(100), nullable=False)
    degree = Column(String(100), nullable=True)
    experience = Column(String(50), nullable=True)
    about = Column(Text, nullable=True)
    address = Column(JSON, nullable=True)

    # Booking
    fees = Column(Float, nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=True)
    # "D_M_YYYY" -> ["10:00", "10:30", ...]; written only through SlotLedger
    slots_booked = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    appointments = relationship("Appointment", back_populates="doctor")

    def __repr__(self):
        return f"<Doctor(id={self.id}, name='{self.name}', speciality='{self.speciality}')>"
