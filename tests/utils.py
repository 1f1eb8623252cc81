import itertools

from clinic_booking.core.errors import GatewayError
from clinic_booking.core.security import Actor, UserRole, create_access_token
from clinic_booking.services.payment_gateway import compute_payment_signature

TEST_SECRET = "rzp_test_secret"
SLOT_DATE = "10_3_2025"
SLOT_TIME = "10:00"

ADMIN = Actor(id=1, role=UserRole.ADMIN)

class FakeGateway:
    """Stands in for Razorpay; records every order request."""

    key_id = "rzp_test_key"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []
        self._ids = itertools.count(1)

    async def create_order(self, amount, currency, receipt):
        self.calls.append({"amount": amount, "currency": currency, "receipt": receipt})
        if self.fail:
            raise GatewayError("Payment gateway unreachable, please retry")
        return {
            "id": f"order_test_{next(self._ids)}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }

def actor_for(entity, role: UserRole) -> Actor:
    return Actor(id=entity.id, role=role)

def auth_headers(actor_id: int, role: UserRole) -> dict:
    token = create_access_token(actor_id, role)
    return {"Authorization": f"Bearer {token}"}

def sign(order_id: str, payment_id: str) -> str:
    return compute_payment_signature(TEST_SECRET, order_id, payment_id)
