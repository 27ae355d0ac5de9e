"""Thin Razorpay REST client.

Built explicitly (see ``get_gateway_client``) and handed to the reconciler,
so tests can substitute a fake gateway.
"""
import hashlib
import hmac
import json
import logging

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from requests import RequestException
from requests.auth import HTTPBasicAuth

from .exceptions import GatewayError

logger = logging.getLogger(__name__)

COMMON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received) -> bool:
    # anything but a string (a JSON number, a list) can never match
    if not isinstance(received, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.strip().encode("utf-8"))


class RazorpayClient:
    def __init__(self, key_id: str, key_secret: str, webhook_secret: str = "",
                 base_url: str = "https://api.razorpay.com/v1", timeout: float = 30):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # ---------- HTTP ----------
    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        if not (self.key_id and self.key_secret):
            raise GatewayError("Razorpay API keys are not configured")
        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(
                method, url, json=payload, headers=COMMON_HEADERS,
                auth=HTTPBasicAuth(self.key_id, self.key_secret), timeout=self.timeout,
            )
        except RequestException as e:
            raise GatewayError(f"Gateway request failed: {e}")
        try:
            data = resp.json()
        except ValueError:
            data = {"raw": resp.text}
        if 200 <= resp.status_code < 300:
            return data
        error = data.get("error") if isinstance(data, dict) else None
        description = (error or {}).get("description") if isinstance(error, dict) else None
        logger.error("Razorpay %s %s failed: status=%s body=%s",
                     method, path, resp.status_code, json.dumps(data)[:800])
        raise GatewayError(
            description or f"Gateway error {resp.status_code}",
            http_status=resp.status_code,
            details=error or data,
        )

    # ---------- API calls ----------
    def create_order(self, *, amount: int, currency: str, receipt: str) -> dict:
        """POST /orders with a minor-unit amount; returns the gateway order entity."""
        return self._request("POST", "/orders", {"amount": amount, "currency": currency, "receipt": receipt})

    def fetch_payment(self, payment_id: str) -> dict:
        return self._request("GET", f"/payments/{payment_id}")

    def fetch_order_payments(self, order_id: str) -> list[dict]:
        data = self._request("GET", f"/orders/{order_id}/payments")
        return data.get("items", []) if isinstance(data, dict) else []

    # ---------- Signatures ----------
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str | None) -> bool:
        if not self.key_secret:
            logger.error("RAZORPAY_KEY_SECRET missing in settings")
            raise ImproperlyConfigured("RAZORPAY_KEY_SECRET setting is required to verify payments")
        expected = hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return signatures_match(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """Signature covers the exact raw request body, not a re-serialization."""
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET missing in settings")
            raise ImproperlyConfigured("RAZORPAY_WEBHOOK_SECRET setting is required to verify webhooks")
        return signatures_match(hmac_sha256_hex(self.webhook_secret, body), signature)


def get_gateway_client() -> RazorpayClient:
    return RazorpayClient(
        key_id=getattr(settings, "RAZORPAY_KEY_ID", ""),
        key_secret=getattr(settings, "RAZORPAY_KEY_SECRET", ""),
        webhook_secret=getattr(settings, "RAZORPAY_WEBHOOK_SECRET", ""),
        base_url=getattr(settings, "RAZORPAY_BASE_URL", "https://api.razorpay.com/v1"),
        timeout=getattr(settings, "RAZORPAY_TIMEOUT", 30),
    )


def configuration_status() -> dict:
    """Which credentials are present; booleans only, never the values."""
    return {
        "keyId": bool(getattr(settings, "RAZORPAY_KEY_ID", "")),
        "keySecret": bool(getattr(settings, "RAZORPAY_KEY_SECRET", "")),
        "webhookSecret": bool(getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "")),
    }
