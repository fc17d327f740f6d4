import logging
import random
from datetime import date, datetime

from sqlalchemy.orm import Session, selectinload

from .config import settings
from .database import commit_or_conflict
from .errors import Conflict, Internal, NotFound, ValidationError
from .models import UserRole, Voucher, VoucherStatus
from .notices import record_activity
from .payments import PaymentGatewayError, StripeGateway, WebhookSignatureError
from .tenancy import TenantContext, find_class, scoped, visible_student
from .validators import validate_class_title, validate_month, validate_section, validate_year


logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def _new_voucher_code(db: Session, taken: set[int]) -> int:
    while True:
        code = random.randint(1000000, 9999999)
        if code in taken:
            continue
        if db.query(Voucher.id).filter(Voucher.voucher_code == code).first() is None:
            taken.add(code)
            return code


def _parse_due_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError("Invalid due date") from None


def generate_vouchers(
    db: Session,
    ctx: TenantContext,
    *,
    student_class,
    section: str,
    amount: float,
    month: str,
    year,
    due_date,
) -> list[Voucher]:
    """Issue one voucher per rostered student of a class for a month, or none at all."""
    ctx.require(UserRole.ADMIN)
    class_title = validate_class_title(student_class)
    section = validate_section(section)
    month = validate_month(month)
    year = validate_year(year)
    due = _parse_due_date(due_date)
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero")

    school_class = find_class(db, ctx, class_title, section)
    students = list(school_class.students)
    if not students:
        raise NotFound("No students found for the given class and section")

    existing = (
        scoped(db, ctx, Voucher)
        .filter(
            Voucher.student_id.in_([student.id for student in students]),
            Voucher.month == month,
            Voucher.year == year,
        )
        .count()
    )
    if existing:
        raise Conflict(f"Fee vouchers already exist for {month} {year} for {existing} student(s)")

    taken: set[int] = set()
    vouchers = []
    for student in students:
        voucher = Voucher(
            institute_id=ctx.institute_id,
            voucher_code=_new_voucher_code(db, taken),
            student_class=class_title,
            section=section,
            amount=float(amount),
            month=month,
            year=year,
            due_date=due,
            status=VoucherStatus.UNPAID,
        )
        voucher.student = student
        db.add(voucher)
        vouchers.append(voucher)
    record_activity(db, ctx, f"Fee Voucher Created for Class: {class_title}-{section}")
    commit_or_conflict(db, "Duplicate voucher detected. Please try again.")
    for voucher in vouchers:
        db.refresh(voucher)
    logger.info(f"Generated {len(vouchers)} vouchers for class {class_title}-{section} {month} {year}")
    return vouchers


def list_vouchers(db: Session, ctx: TenantContext) -> list[Voucher]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, Voucher)
        .options(selectinload(Voucher.student))
        .order_by(Voucher.created_at.desc(), Voucher.id.desc())
        .all()
    )


def student_vouchers(db: Session, ctx: TenantContext, student_id: int) -> list[Voucher]:
    student = visible_student(db, ctx, student_id)
    return (
        scoped(db, ctx, Voucher)
        .filter(Voucher.student_id == student.id)
        .order_by(Voucher.year.desc(), Voucher.created_at.desc())
        .all()
    )


def _voucher_for(db: Session, ctx: TenantContext, voucher_code) -> Voucher:
    try:
        code = int(voucher_code)
    except (TypeError, ValueError):
        raise ValidationError("Voucher ID is required") from None
    voucher = scoped(db, ctx, Voucher).filter(Voucher.voucher_code == code).first()
    if not voucher:
        raise NotFound("Voucher not found")
    visible_student(db, ctx, voucher.student_id)
    return voucher


def mark_voucher_paid(db: Session, voucher_code: int) -> bool:
    """Flip an unpaid voucher to paid. Returns False when it was already paid."""
    updated = (
        db.query(Voucher)
        .filter(Voucher.voucher_code == voucher_code, Voucher.status == VoucherStatus.UNPAID)
        .update({Voucher.status: VoucherStatus.PAID, Voucher.paid_at: datetime.utcnow()}, synchronize_session=False)
    )
    commit_or_conflict(db, "Could not update voucher")
    if updated:
        logger.info(f"Voucher {voucher_code} marked as paid")
    return bool(updated)


def start_checkout(db: Session, ctx: TenantContext, gateway: StripeGateway, voucher_code) -> str:
    voucher = _voucher_for(db, ctx, voucher_code)
    if voucher.status == VoucherStatus.PAID:
        raise Conflict("Voucher is already paid")
    if not voucher.amount or voucher.amount <= 0:
        raise ValidationError("Invalid voucher amount")

    origin = settings.frontend_origin
    try:
        session = gateway.create_checkout_session(
            amount=voucher.amount,
            currency=settings.payment_currency,
            voucher_code=voucher.voucher_code,
            success_url=f"{origin}/parent-dashboard/payment-success?voucherId={voucher.voucher_code}",
            cancel_url=f"{origin}/parent-dashboard/payment-canceled?voucherId={voucher.voucher_code}",
        )
    except PaymentGatewayError as exc:
        raise Internal(str(exc)) from exc

    voucher.payment_session_id = session.id
    commit_or_conflict(db, "Could not store checkout session")
    logger.info(f"Checkout session started for voucher {voucher.voucher_code}")
    return session.id


def verify_payment(db: Session, ctx: TenantContext, gateway: StripeGateway, voucher_code) -> str:
    voucher = _voucher_for(db, ctx, voucher_code)
    if voucher.status == VoucherStatus.PAID:
        return VoucherStatus.PAID.value
    if not voucher.payment_session_id:
        raise ValidationError("No checkout session found for this voucher")

    try:
        session = gateway.retrieve_session(voucher.payment_session_id)
    except PaymentGatewayError as exc:
        raise Internal(str(exc)) from exc
    if str(session.metadata.get("voucherId")) != str(voucher.voucher_code):
        raise ValidationError("Voucher ID does not match session metadata")

    if session.payment_status == "paid":
        mark_voucher_paid(db, voucher.voucher_code)
        return VoucherStatus.PAID.value
    return session.payment_status


def handle_webhook(db: Session, gateway: StripeGateway, payload: bytes, signature: str | None) -> bool:
    """Apply a processor event. Re-delivered events for a paid voucher change nothing."""
    try:
        event = gateway.construct_event(payload, signature)
    except WebhookSignatureError as exc:
        logger.warning(f"Rejected webhook: {exc}")
        raise ValidationError(f"Webhook Error: {exc}") from exc

    if event.get("type") != CHECKOUT_COMPLETED:
        return False
    session = (event.get("data") or {}).get("object") or {}
    voucher_code = (session.get("metadata") or {}).get("voucherId")
    if not voucher_code:
        raise ValidationError("Voucher ID not found in session metadata")
    try:
        code = int(voucher_code)
    except ValueError:
        raise ValidationError("Voucher ID not found in session metadata") from None
    if db.query(Voucher.id).filter(Voucher.voucher_code == code).first() is None:
        raise NotFound("Voucher not found")

    if session.get("payment_status") != "paid":
        return False
    return mark_voucher_paid(db, code)
