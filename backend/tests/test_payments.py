import json

import pytest
import requests

from school_module import payments
from school_module.payments import PaymentGatewayError, StripeGateway, WebhookSignatureError, signature_header


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body)

    def json(self):
        return self._body


@pytest.fixture()
def stripe():
    return StripeGateway(secret_key="sk_test_123", webhook_secret="whsec_123", api_base="https://api.test/v1/")


def test_create_checkout_session_posts_form_fields(stripe, monkeypatch):
    calls = []

    def fake_request(method, url, data=None, headers=None, timeout=None):
        calls.append((method, url, data, headers))
        return FakeResponse(200, {"id": "cs_1", "payment_status": "unpaid", "metadata": {"voucherId": "1234567"}})

    monkeypatch.setattr(payments.requests, "request", fake_request)
    session = stripe.create_checkout_session(
        amount=4500.5,
        currency="pkr",
        voucher_code=1234567,
        success_url="http://localhost:5173/ok",
        cancel_url="http://localhost:5173/cancel",
    )

    assert session.id == "cs_1"
    assert session.metadata == {"voucherId": "1234567"}
    method, url, data, headers = calls[0]
    assert (method, url) == ("POST", "https://api.test/v1/checkout/sessions")
    assert data["line_items[0][price_data][unit_amount]"] == 450050
    assert data["metadata[voucherId]"] == "1234567"
    assert headers["Authorization"] == "Bearer sk_test_123"


def test_processor_errors_become_gateway_errors(stripe, monkeypatch):
    monkeypatch.setattr(payments.requests, "request", lambda *a, **k: FakeResponse(402, {"error": "declined"}))
    with pytest.raises(PaymentGatewayError):
        stripe.retrieve_session("cs_1")

    def unreachable(*args, **kwargs):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr(payments.requests, "request", unreachable)
    with pytest.raises(PaymentGatewayError):
        stripe.retrieve_session("cs_1")


def test_unconfigured_gateway_refuses_calls():
    gateway = StripeGateway(secret_key="", webhook_secret="")
    with pytest.raises(PaymentGatewayError):
        gateway.retrieve_session("cs_1")
    with pytest.raises(WebhookSignatureError):
        gateway.construct_event(b"{}", "t=1,v1=abc")


def test_construct_event_verifies_signature(stripe):
    payload = b'{"type": "checkout.session.completed"}'
    assert stripe.construct_event(payload, signature_header(payload, "whsec_123"))["type"] == "checkout.session.completed"

    with pytest.raises(WebhookSignatureError):
        stripe.construct_event(payload + b" ", signature_header(payload, "whsec_123"))
    with pytest.raises(WebhookSignatureError):
        stripe.construct_event(payload, "v1=deadbeef")
    with pytest.raises(WebhookSignatureError):
        stripe.construct_event(b"not json", signature_header(b"not json", "whsec_123"))
