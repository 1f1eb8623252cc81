import os
import itertools

import pytest
from fastapi.testclient import TestClient

# Set testing environment before the application is imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ["LOCK_BACKEND"] = "local"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"

from clinic_booking.main import app
from clinic_booking.core.database import Base, SessionLocal, engine
from clinic_booking.models import Doctor, Patient
from clinic_booking.services.payment_gateway import get_payment_gateway

from .utils import FakeGateway

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db_session(test_db):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def fake_gateway():
    gateway = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_payment_gateway, None)

@pytest.fixture
def make_doctor(db_session):
    counter = itertools.count(1)

    def _make(fees=500, available=True, name=None):
        n = next(counter)
        doctor = Doctor(
            name=name or f"Dr. Test {n}",
            email=f"doctor{n}@example.com",
            image=f"https://img.example.com/doctor{n}.png",
            speciality="General physician",
            degree="MBBS",
            experience="4 Years",
            fees=fees,
            available=available,
            address={"line1": "17th Cross", "line2": "Richmond"},
            slots_booked={},
        )
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return _make

@pytest.fixture
def make_patient(db_session):
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        patient = Patient(
            name=name or f"Patient {n}",
            email=f"patient{n}@example.com",
            phone="0000000000",
        )
        db_session.add(patient)
        db_session.commit()
        db_session.refresh(patient)
        return patient

    return _make

@pytest.fixture
def doctor(make_doctor):
    return make_doctor()

@pytest.fixture
def patient(make_patient):
    return make_patient()
