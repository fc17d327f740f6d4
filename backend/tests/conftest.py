import os

# Settings are read when school_module is imported, so the test environment goes first.
os.environ.setdefault("SCHOOL_DATABASE_URL", "sqlite://")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_school")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_school")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from school_module.accounts import context_for, register_admin  # noqa: E402
from school_module.config import settings  # noqa: E402
from school_module.database import Base, get_db_session  # noqa: E402
from school_module.payments import CheckoutSession, StripeGateway, get_payment_gateway  # noqa: E402
from school_module.roster import (  # noqa: E402
    create_class,
    create_subject,
    register_parent,
    register_student,
    register_teacher,
)

PASSWORD = "Passw0rd!"


class FakeGateway(StripeGateway):
    """Checkout sessions kept in memory; webhook verification is the real one."""

    def __init__(self):
        super().__init__(secret_key="sk_test_school", webhook_secret=settings.stripe_webhook_secret)
        self.sessions: dict[str, CheckoutSession] = {}
        self.created: list[dict] = []

    def create_checkout_session(self, *, amount, currency, voucher_code, success_url, cancel_url):
        session = CheckoutSession(
            id=f"cs_test_{len(self.sessions) + 1}",
            payment_status="unpaid",
            metadata={"voucherId": str(voucher_code)},
            url=f"https://checkout.test/{voucher_code}",
        )
        self.sessions[session.id] = session
        self.created.append(
            {"amount": amount, "currency": currency, "success_url": success_url, "cancel_url": cancel_url}
        )
        return session

    def retrieve_session(self, session_id):
        return self.sessions[session_id]

    def complete(self, session_id):
        self.sessions[session_id].payment_status = "paid"


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway():
    return FakeGateway()


def build_school(db, name: str):
    """An institute with two teachers, one class (5-A), a parent, a student and one subject."""
    admin = register_admin(db, institute_name=name, email=f"admin@{name}.edu", password=PASSWORD)
    admin_ctx = context_for(admin)
    teacher = register_teacher(
        db,
        admin_ctx,
        name="Sara Ahmed",
        teacher_code="T-100",
        email=f"sara@{name}.edu",
        password=PASSWORD,
        department="Science",
        qualifications=["MSc Physics"],
    )
    other_teacher = register_teacher(
        db,
        admin_ctx,
        name="Omar Farooq",
        teacher_code="T-200",
        email=f"omar@{name}.edu",
        password=PASSWORD,
        department="Mathematics",
        qualifications="BSc Mathematics",
    )
    parent = register_parent(db, admin_ctx, name="Nadia Ali", email=f"nadia@{name}.edu", password=PASSWORD)
    school_class = create_class(db, admin_ctx, class_title=5, section="A", teacher_ref="T-100")
    student = register_student(
        db,
        admin_ctx,
        name="Ali Raza",
        roll_number="R-1",
        email=f"ali@{name}.edu",
        password=PASSWORD,
        guardian_name="Nadia Ali",
        guardian_email=f"nadia@{name}.edu",
        student_class=5,
        section="a",
    )
    subject = create_subject(
        db, admin_ctx, class_title=5, section="A", subject_name="Maths", teacher_ref="omar farooq"
    )
    return SimpleNamespace(
        admin=admin,
        teacher=teacher,
        other_teacher=other_teacher,
        parent=parent,
        school_class=school_class,
        student=student,
        subject=subject,
        admin_ctx=admin_ctx,
        teacher_ctx=context_for(teacher),
        other_teacher_ctx=context_for(other_teacher),
        parent_ctx=context_for(parent),
        student_ctx=context_for(student),
    )


@pytest.fixture()
def school(db):
    return build_school(db, "greenfield")


@pytest.fixture()
def rival_school(db, school):
    return build_school(db, "riverside")


@pytest.fixture()
def app(session_factory, gateway):
    from main import app as fastapi_app

    def _session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db_session] = _session
    fastapi_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
