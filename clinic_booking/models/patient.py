from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)

    # Personal information
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    image = Column(String(500), nullable=True)
    gender = Column(String(20), nullable=True)
    dob = Column(String(20), nullable=True)

    # Contact information
    phone = Column(String(20), nullable=True)
    address = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    appointments = relationship("Appointment", back_populates="patient")

    def __repr__(self):
        return f"<Patient(id={self.id}, name='{self.name}')>"
