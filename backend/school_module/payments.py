"""Thin client for the card processor's checkout sessions and signed webhooks."""
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field

import requests

from .config import settings


logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


class WebhookSignatureError(PaymentGatewayError):
    pass


@dataclass
class CheckoutSession:
    id: str
    payment_status: str
    metadata: dict = field(default_factory=dict)
    url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "CheckoutSession":
        return cls(
            id=payload["id"],
            payment_status=payload.get("payment_status") or "unpaid",
            metadata=payload.get("metadata") or {},
            url=payload.get("url"),
        )


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def signature_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, secret, timestamp)}"


class StripeGateway:
    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        api_base: str = "https://api.stripe.com/v1",
        tolerance_seconds: int = 300,
        timeout: float = 15,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_base = api_base.rstrip("/")
        self.tolerance_seconds = tolerance_seconds
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        if not self.secret_key:
            raise PaymentGatewayError("Payment processor is not configured")
        try:
            response = requests.request(
                method,
                f"{self.api_base}{path}",
                data=data,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"Payment processor unreachable: {exc}")
            raise PaymentGatewayError("Payment processor unreachable") from exc

        if response.status_code >= 400:
            logger.error(f"Payment processor error {response.status_code}: {response.text}")
            raise PaymentGatewayError(f"Payment processor rejected the request ({response.status_code})")
        return response.json()

    def create_checkout_session(
        self,
        *,
        amount: float,
        currency: str,
        voucher_code: int,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        data = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "line_items[0][quantity]": 1,
            "line_items[0][price_data][currency]": currency,
            "line_items[0][price_data][unit_amount]": round(amount * 100),
            "line_items[0][price_data][product_data][name]": "School Fee Payment",
            "line_items[0][price_data][product_data][description]": f"Voucher ID: {voucher_code}",
            "metadata[voucherId]": str(voucher_code),
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        return CheckoutSession.from_payload(self._request("POST", "/checkout/sessions", data))

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        return CheckoutSession.from_payload(self._request("GET", f"/checkout/sessions/{session_id}"))

    def construct_event(self, payload: bytes, header: str | None) -> dict:
        """Verify a ``t=<ts>,v1=<hex>`` signature over ``"<ts>.<payload>"`` and decode the event."""
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not header:
            raise WebhookSignatureError("Missing signature header")

        timestamp = None
        signatures = []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)
        if timestamp is None or not timestamp.isdigit() or not signatures:
            raise WebhookSignatureError("Malformed signature header")

        expected = compute_signature(payload, self.webhook_secret, int(timestamp))
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise WebhookSignatureError("No signature matches the payload")
        if self.tolerance_seconds and abs(time.time() - int(timestamp)) > self.tolerance_seconds:
            raise WebhookSignatureError("Timestamp outside the tolerance zone")

        try:
            return json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError("Invalid payload") from exc


def get_payment_gateway() -> StripeGateway:
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        api_base=settings.stripe_api_base,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
