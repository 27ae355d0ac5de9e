"""In-memory stand-in for ``RazorpayClient`` used by the test suites.

Signature checks are the real ones (inherited); only the HTTP calls are
replaced.
"""
from .exceptions import GatewayError
from .gateway import RazorpayClient, hmac_sha256_hex

KEY_SECRET = "test-key-secret"
WEBHOOK_SECRET = "test-webhook-secret"


def sign_payment(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return hmac_sha256_hex(secret, f"{order_id}|{payment_id}".encode("utf-8"))


def sign_body(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac_sha256_hex(secret, body)


class FakeGateway(RazorpayClient):
    def __init__(self, payments=None, order_payments=None, fail_with: GatewayError | None = None):
        super().__init__("rzp_test_key", KEY_SECRET, WEBHOOK_SECRET, base_url="https://gateway.test/v1")
        self.payments = dict(payments or {})
        self.order_payments = dict(order_payments or {})
        self.fail_with = fail_with
        self.created = []
        self.fetched = []
        self._seq = 0

    def create_order(self, *, amount: int, currency: str, receipt: str) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        self._seq += 1
        self.created.append({"amount": amount, "currency": currency, "receipt": receipt})
        return {"id": f"order_TEST{self._seq:04d}", "amount": amount, "currency": currency,
                "receipt": receipt, "status": "created"}

    def fetch_payment(self, payment_id: str) -> dict:
        self.fetched.append(payment_id)
        if payment_id not in self.payments:
            raise GatewayError("The id provided does not exist", http_status=400)
        return self.payments[payment_id]

    def fetch_order_payments(self, order_id: str) -> list[dict]:
        return list(self.order_payments.get(order_id, []))
