import json
import time
from datetime import date

import pytest

from school_module import vouchers
from school_module.config import settings
from school_module.errors import Conflict, Forbidden, Internal, NotFound, ValidationError
from school_module.models import Voucher, VoucherStatus
from school_module.payments import PaymentGatewayError, signature_header


def _generate(db, ctx, **overrides):
    values = {
        "student_class": 5,
        "section": "A",
        "amount": 4500,
        "month": "april",
        "year": 2024,
        "due_date": "2024-04-10",
    }
    values.update(overrides)
    return vouchers.generate_vouchers(db, ctx, **values)


def _event(voucher_code, payment_status="paid", event_type="checkout.session.completed"):
    return json.dumps(
        {
            "id": "evt_test",
            "type": event_type,
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "payment_status": payment_status,
                    "metadata": {"voucherId": str(voucher_code)},
                }
            },
        }
    ).encode("utf-8")


def test_generate_one_voucher_per_rostered_student(db, school):
    issued = _generate(db, school.admin_ctx)
    assert len(issued) == 1
    voucher = issued[0]
    assert voucher.student_id == school.student.id
    assert voucher.month == "April"
    assert voucher.due_date == date(2024, 4, 10)
    assert voucher.status == VoucherStatus.UNPAID
    assert 1000000 <= voucher.voucher_code <= 9999999


def test_generate_twice_for_same_period_conflicts(db, school):
    _generate(db, school.admin_ctx)
    with pytest.raises(Conflict) as exc:
        _generate(db, school.admin_ctx, amount=5000)
    assert exc.value.message == "Fee vouchers already exist for April 2024 for 1 student(s)"

    _generate(db, school.admin_ctx, month="May")
    assert db.query(Voucher).count() == 2


def test_generate_validation(db, school):
    with pytest.raises(ValidationError):
        _generate(db, school.admin_ctx, amount=0)
    with pytest.raises(ValidationError):
        _generate(db, school.admin_ctx, month="Smarch")
    with pytest.raises(NotFound):
        _generate(db, school.admin_ctx, student_class=9)
    with pytest.raises(Forbidden):
        _generate(db, school.parent_ctx)


def test_student_vouchers_visibility(db, school, rival_school):
    _generate(db, school.admin_ctx)
    assert len(vouchers.student_vouchers(db, school.parent_ctx, school.student.id)) == 1
    assert len(vouchers.student_vouchers(db, school.student_ctx, school.student.id)) == 1
    with pytest.raises(NotFound):
        vouchers.student_vouchers(db, rival_school.parent_ctx, school.student.id)
    assert len(vouchers.list_vouchers(db, school.admin_ctx)) == 1


def test_checkout_then_verify(db, school, gateway):
    voucher = _generate(db, school.admin_ctx)[0]
    session_id = vouchers.start_checkout(db, school.parent_ctx, gateway, voucher.voucher_code)

    created = gateway.created[0]
    assert created["amount"] == 4500
    assert created["currency"] == settings.payment_currency
    assert created["success_url"].endswith(f"/parent-dashboard/payment-success?voucherId={voucher.voucher_code}")

    assert vouchers.verify_payment(db, school.parent_ctx, gateway, voucher.voucher_code) == "unpaid"
    gateway.complete(session_id)
    assert vouchers.verify_payment(db, school.parent_ctx, gateway, voucher.voucher_code) == "paid"

    db.expire_all()
    paid = db.get(Voucher, voucher.id)
    assert paid.status == VoucherStatus.PAID
    assert paid.paid_at is not None

    with pytest.raises(Conflict):
        vouchers.start_checkout(db, school.parent_ctx, gateway, voucher.voucher_code)


def test_checkout_gateway_failure_is_internal(db, school, gateway, monkeypatch):
    voucher = _generate(db, school.admin_ctx)[0]

    def _down(**kwargs):
        raise PaymentGatewayError("Payment processor unreachable")

    monkeypatch.setattr(gateway, "create_checkout_session", _down)
    with pytest.raises(Internal):
        vouchers.start_checkout(db, school.parent_ctx, gateway, voucher.voucher_code)


def test_other_institute_cannot_pay(db, school, rival_school, gateway):
    voucher = _generate(db, school.admin_ctx)[0]
    with pytest.raises(NotFound):
        vouchers.start_checkout(db, rival_school.parent_ctx, gateway, voucher.voucher_code)
    with pytest.raises(ValidationError):
        vouchers.start_checkout(db, school.parent_ctx, gateway, "abc")


def test_webhook_marks_voucher_paid_once(db, school, gateway):
    voucher = _generate(db, school.admin_ctx)[0]
    payload = _event(voucher.voucher_code)

    assert vouchers.handle_webhook(db, gateway, payload, signature_header(payload, settings.stripe_webhook_secret))
    db.expire_all()
    first_paid_at = db.get(Voucher, voucher.id).paid_at
    assert first_paid_at is not None

    # Redelivery of the same event.
    assert not vouchers.handle_webhook(db, gateway, payload, signature_header(payload, settings.stripe_webhook_secret))
    db.expire_all()
    again = db.get(Voucher, voucher.id)
    assert again.status == VoucherStatus.PAID
    assert again.paid_at == first_paid_at


def test_webhook_rejects_bad_signatures(db, school, gateway):
    voucher = _generate(db, school.admin_ctx)[0]
    payload = _event(voucher.voucher_code)

    with pytest.raises(ValidationError):
        vouchers.handle_webhook(db, gateway, payload, signature_header(payload, "whsec_wrong"))
    with pytest.raises(ValidationError):
        vouchers.handle_webhook(db, gateway, payload, None)
    stale = int(time.time()) - 3600
    with pytest.raises(ValidationError):
        vouchers.handle_webhook(db, gateway, payload, signature_header(payload, settings.stripe_webhook_secret, stale))

    db.expire_all()
    assert db.get(Voucher, voucher.id).status == VoucherStatus.UNPAID


def test_webhook_ignores_other_events(db, school, gateway):
    voucher = _generate(db, school.admin_ctx)[0]
    secret = settings.stripe_webhook_secret

    other = _event(voucher.voucher_code, event_type="payment_intent.created")
    assert not vouchers.handle_webhook(db, gateway, other, signature_header(other, secret))
    unpaid = _event(voucher.voucher_code, payment_status="unpaid")
    assert not vouchers.handle_webhook(db, gateway, unpaid, signature_header(unpaid, secret))

    unknown = _event(1234567 if voucher.voucher_code != 1234567 else 7654321)
    with pytest.raises(NotFound):
        vouchers.handle_webhook(db, gateway, unknown, signature_header(unknown, secret))

    db.expire_all()
    assert db.get(Voucher, voucher.id).status == VoucherStatus.UNPAID
