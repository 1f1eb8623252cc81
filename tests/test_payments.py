import asyncio
import base64
import hashlib
import hmac
import json
from unittest.mock import patch

import httpx
import pytest

from clinic_booking.core.errors import (
    GatewayError, InvalidAmountError, InvalidRequestError,
    InvalidSignatureError, InvalidStateError, UnauthorizedError
)
from clinic_booking.core.security import UserRole
from clinic_booking.models import AppointmentStatus
from clinic_booking.services.booking_service import BookingService
from clinic_booking.services.lifecycle_service import LifecycleService
from clinic_booking.services.payment_gateway import (
    RazorpayGateway, compute_payment_signature, verify_payment_signature
)
from clinic_booking.services.payment_service import PaymentService, to_minor_units

from .utils import ADMIN, SLOT_DATE, SLOT_TIME, TEST_SECRET, FakeGateway, actor_for, sign

@pytest.fixture
def appointment(db_session, doctor, patient):
    return BookingService(db_session).book(patient.id, doctor.id, SLOT_DATE, SLOT_TIME)

@pytest.fixture
def owner(patient):
    return actor_for(patient, UserRole.PATIENT)

def create_order(db_session, gateway, appointment_id, actor):
    return asyncio.run(PaymentService(db_session, gateway).create_order(appointment_id, actor))

class TestSignature:

    def test_signature_is_hmac_sha256_of_order_and_payment(self):
        expected = hmac.new(
            b"secret", b"order_1|pay_1", hashlib.sha256
        ).hexdigest()
        assert compute_payment_signature("secret", "order_1", "pay_1") == expected

    def test_verify_accepts_matching_signature(self):
        signature = compute_payment_signature("secret", "order_1", "pay_1")
        assert verify_payment_signature("secret", "order_1", "pay_1", signature)

    def test_verify_rejects_tampering(self):
        signature = compute_payment_signature("secret", "order_1", "pay_1")
        assert not verify_payment_signature("secret", "order_1", "pay_2", signature)
        assert not verify_payment_signature("other", "order_1", "pay_1", signature)
        assert not verify_payment_signature("secret", "order_1", "pay_1", signature[:-1] + "0")
        assert not verify_payment_signature("secret", "order_1", "pay_1", "")

class TestMinorUnits:

    @pytest.mark.parametrize("amount,expected", [(500, 50000), (499.5, 49950), (0.015, 2), (12.345, 1235)])
    def test_rounds_half_up(self, amount, expected):
        assert to_minor_units(amount) == expected

    @pytest.mark.parametrize("amount", [0, -10, None, "abc", float("nan")])
    def test_rejects_invalid(self, amount):
        with pytest.raises(InvalidAmountError):
            to_minor_units(amount)

class TestCreateOrder:

    def test_order_recorded_on_appointment(self, db_session, appointment, owner):
        gateway = FakeGateway()
        handle = create_order(db_session, gateway, appointment.id, owner)

        assert gateway.calls == [{"amount": 50000, "currency": "INR", "receipt": str(appointment.id)}]
        assert handle.order_id == "order_test_1"
        assert handle.amount == 50000
        assert handle.key_id == "rzp_test_key"

        stored = handle.appointment
        assert stored.payment_order_id == "order_test_1"
        assert stored.payment_order_amount == 500
        assert stored.payment_order_created_at is not None
        assert stored.payment_paid is False
        assert stored.status == AppointmentStatus.PENDING

    def test_cancelled_appointment_makes_no_gateway_call(self, db_session, appointment, owner):
        LifecycleService(db_session).cancel(appointment.id, owner)
        gateway = FakeGateway()

        with pytest.raises(InvalidStateError):
            create_order(db_session, gateway, appointment.id, owner)

        assert gateway.calls == []

    def test_zero_fee_rejected(self, db_session, make_doctor, patient, owner):
        free_doctor = make_doctor(fees=0)
        appointment = BookingService(db_session).book(patient.id, free_doctor.id, SLOT_DATE, SLOT_TIME)
        gateway = FakeGateway()

        with pytest.raises(InvalidAmountError):
            create_order(db_session, gateway, appointment.id, owner)

        assert gateway.calls == []

    def test_gateway_failure_leaves_appointment_untouched(self, db_session, appointment, owner):
        with pytest.raises(GatewayError):
            create_order(db_session, FakeGateway(fail=True), appointment.id, owner)

        db_session.refresh(appointment)
        assert appointment.payment_order_id is None

    def test_other_patient_cannot_pay(self, db_session, appointment, make_patient):
        stranger = actor_for(make_patient(), UserRole.PATIENT)
        gateway = FakeGateway()

        with pytest.raises(UnauthorizedError):
            create_order(db_session, gateway, appointment.id, stranger)

        assert gateway.calls == []

    def test_doctor_cannot_create_order(self, db_session, appointment, doctor):
        with pytest.raises(UnauthorizedError):
            create_order(db_session, FakeGateway(), appointment.id, actor_for(doctor, UserRole.DOCTOR))

class TestVerify:

    @pytest.fixture
    def order_id(self, db_session, appointment, owner):
        return create_order(db_session, FakeGateway(), appointment.id, owner).order_id

    def test_verify_marks_paid(self, db_session, appointment, owner, order_id):
        paid = PaymentService(db_session).verify(
            appointment.id, order_id, "pay_1", sign(order_id, "pay_1"), owner
        )

        assert paid.payment_paid is True
        assert paid.payment_id == "pay_1"
        assert paid.payment_verified_at is not None
        assert paid.payment_date is not None
        # Paid and completed are independent
        assert paid.status == AppointmentStatus.PENDING

    def test_replayed_verification_keeps_payment_date(self, db_session, appointment, owner, order_id):
        service = PaymentService(db_session)
        signature = sign(order_id, "pay_1")

        first = service.verify(appointment.id, order_id, "pay_1", signature, owner)
        first_date = first.payment_date
        second = service.verify(appointment.id, order_id, "pay_1", signature, owner)

        assert second.payment_paid is True
        assert second.payment_date == first_date

    def test_tampered_signature_rejected(self, db_session, appointment, owner, order_id):
        signature = sign(order_id, "pay_1")

        with pytest.raises(InvalidSignatureError):
            PaymentService(db_session).verify(appointment.id, order_id, "pay_1", signature[::-1], owner)

        db_session.refresh(appointment)
        assert appointment.payment_paid is False
        assert appointment.payment_date is None

    def test_signature_for_other_order_rejected(self, db_session, appointment, owner, order_id):
        """A valid signature for an order this appointment does not own."""
        with pytest.raises(InvalidStateError):
            PaymentService(db_session).verify(
                appointment.id, "order_foreign", "pay_1", sign("order_foreign", "pay_1"), owner
            )

        db_session.refresh(appointment)
        assert appointment.payment_paid is False

    def test_second_payment_rejected(self, db_session, appointment, owner, order_id):
        service = PaymentService(db_session)
        service.verify(appointment.id, order_id, "pay_1", sign(order_id, "pay_1"), owner)

        with pytest.raises(InvalidStateError):
            service.verify(appointment.id, order_id, "pay_2", sign(order_id, "pay_2"), owner)

        db_session.refresh(appointment)
        assert appointment.payment_id == "pay_1"

    def test_missing_fields(self, db_session, appointment, owner, order_id):
        with pytest.raises(InvalidRequestError):
            PaymentService(db_session).verify(appointment.id, order_id, "", "sig", owner)

    def test_admin_may_verify(self, db_session, appointment, order_id):
        paid = PaymentService(db_session).verify(
            appointment.id, order_id, "pay_1", sign(order_id, "pay_1"), ADMIN
        )
        assert paid.payment_paid is True

    def test_refused_verify_rolls_back_row_lock(self, db_session, appointment, order_id, make_patient):
        stranger = actor_for(make_patient(), UserRole.PATIENT)

        with patch.object(db_session, "rollback", wraps=db_session.rollback) as rollback:
            with pytest.raises(UnauthorizedError):
                PaymentService(db_session).verify(
                    appointment.id, order_id, "pay_1", sign(order_id, "pay_1"), stranger
                )

        assert rollback.called
        db_session.refresh(appointment)
        assert appointment.payment_paid is False

    def test_paid_appointment_cannot_reorder(self, db_session, appointment, owner, order_id):
        PaymentService(db_session).verify(appointment.id, order_id, "pay_1", sign(order_id, "pay_1"), owner)
        gateway = FakeGateway()

        with pytest.raises(InvalidStateError):
            create_order(db_session, gateway, appointment.id, owner)

        assert gateway.calls == []

class TestRazorpayGateway:

    def test_create_order_posts_to_orders_endpoint(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "order_abc", "amount": 50000, "currency": "INR", "receipt": "7"})

        gateway = RazorpayGateway(
            key_id="rzp_key", key_secret=TEST_SECRET,
            base_url="https://api.razorpay.com/v1",
            transport=httpx.MockTransport(handler),
        )
        order = asyncio.run(gateway.create_order(50000, "INR", "7"))

        assert order["id"] == "order_abc"
        assert seen["path"] == "/v1/orders"
        assert seen["body"] == {"amount": 50000, "currency": "INR", "receipt": "7"}
        expected_auth = base64.b64encode(f"rzp_key:{TEST_SECRET}".encode()).decode()
        assert seen["auth"] == f"Basic {expected_auth}"

    def test_rejected_order_raises_gateway_error(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"error": {"description": "bad amount"}})
        )
        gateway = RazorpayGateway(key_id="rzp_key", key_secret=TEST_SECRET, transport=transport)

        with pytest.raises(GatewayError):
            asyncio.run(gateway.create_order(50000, "INR", "7"))

    def test_network_failure_raises_gateway_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = RazorpayGateway(key_id="rzp_key", key_secret=TEST_SECRET, transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayError):
            asyncio.run(gateway.create_order(50000, "INR", "7"))

    def test_missing_keys(self):
        gateway = RazorpayGateway(key_id="", key_secret="")

        with pytest.raises(GatewayError):
            asyncio.run(gateway.create_order(50000, "INR", "7"))
