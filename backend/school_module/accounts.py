import logging
from dataclasses import dataclass

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .database import commit_or_conflict
from .errors import Conflict, Forbidden, Unauthenticated, ValidationError
from .models import Admin, Parent, SchoolClass, Student, Subject, Teacher, UserRole
from .security import ACCESS, REFRESH, AuthError, decode_token, hash_password
from .tenancy import TenantContext
from .validators import normalize_email, normalize_name, validate_password_strength


logger = logging.getLogger(__name__)

Account = Admin | Teacher | Student | Parent


@dataclass
class SessionActor:
    account: Account
    role: UserRole
    context: TenantContext
    # Populated for teachers: their class with subjects and roster loaded.
    homeroom: SchoolClass | None = None


def account_model(role: UserRole) -> type[Account]:
    if role == UserRole.ADMIN:
        return Admin
    elif role == UserRole.TEACHER:
        return Teacher
    elif role == UserRole.STUDENT:
        return Student
    elif role == UserRole.PARENT:
        return Parent
    raise Unauthenticated("Invalid role")


def context_for(account: Account) -> TenantContext:
    return TenantContext(institute_id=account.institute_scope, actor_id=account.id, role=account.role)


def _role_from_payload(payload: dict) -> UserRole:
    try:
        return UserRole(payload["role"])
    except ValueError:
        raise Unauthenticated("Invalid role in token") from None


def _load_account(db: Session, payload: dict) -> Account | None:
    role = _role_from_payload(payload)
    model = account_model(role)
    try:
        account_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token subject") from None
    account = db.query(model).filter(model.id == account_id).first()
    if account and account.role != role:
        return None
    return account


def register_admin(db: Session, *, institute_name: str, email: str, password: str, logo: str | None = None) -> Admin:
    name = normalize_name(institute_name, "Institute name")
    email = normalize_email(email)
    validate_password_strength(password)

    existing = db.query(Admin).filter(or_(Admin.institute_name == name, Admin.email == email)).first()
    if existing:
        if existing.email == email:
            raise Conflict("Email already registered")
        raise Conflict("Institute name already taken")

    admin = Admin(
        institute_name=name,
        email=email,
        password_hash=hash_password(password),
        role=UserRole.ADMIN,
        logo=logo,
    )
    db.add(admin)
    commit_or_conflict(db, "Institute name or email already registered")
    db.refresh(admin)
    logger.info(f"Registered institute {admin.institute_name} (admin id {admin.id})")
    return admin


def authenticate(db: Session, *, identifier: str, password: str, role: UserRole) -> tuple[Account, str, str]:
    """Log an actor in through the endpoint for ``role`` and rotate their token pair.

    Identifier and password are checked for shape before any lookup. The identifier is
    matched against both alternate login fields of the role; with several matches the
    oldest account wins.
    """
    raw = (identifier or "").strip()
    if not raw:
        raise ValidationError("Login identifier is required")
    lookup = normalize_email(raw) if "@" in raw else raw.lower()
    validate_password_strength(password)

    model = account_model(role)
    account = db.query(model).filter(model.login_filter(lookup)).order_by(model.id).first()
    if not account:
        logger.warning(f"Rejected {role.value} login for unknown identifier {lookup}")
        raise Unauthenticated("Invalid credentials")
    if account.role != role:
        logger.warning(f"Rejected {role.value} login for {account.role.value} account {account.id}")
        raise Forbidden(f"Access denied. Not a {role.value} account")
    if not account.verify_password(password):
        logger.warning(f"Rejected {role.value} login for account {account.id}: wrong password")
        raise Unauthenticated("Invalid credentials")

    access_token, refresh_token = account.issue_tokens()
    commit_or_conflict(db, "Could not store session")
    logger.info(f"{role.value} {account.id} logged in")
    return account, access_token, refresh_token


def resolve_session(db: Session, access_token: str | None) -> SessionActor:
    if not access_token:
        raise Unauthenticated("Please login first")
    try:
        payload = decode_token(access_token, ACCESS)
    except AuthError as exc:
        raise Unauthenticated(str(exc)) from exc

    account = _load_account(db, payload)
    if not account:
        raise Unauthenticated("Invalid or expired token")

    actor = SessionActor(account=account, role=account.role, context=context_for(account))
    if actor.role == UserRole.TEACHER:
        actor.homeroom = (
            db.query(SchoolClass)
            .options(
                selectinload(SchoolClass.subjects).selectinload(Subject.subject_teacher),
                selectinload(SchoolClass.students),
            )
            .filter(
                SchoolClass.institute_id == actor.context.institute_id,
                SchoolClass.class_teacher_id == account.id,
            )
            .first()
        )
    return actor


def refresh_session(db: Session, refresh_token: str | None) -> tuple[Account, str, str]:
    if not refresh_token:
        raise Unauthenticated("No refresh token provided")
    try:
        payload = decode_token(refresh_token, REFRESH)
    except AuthError as exc:
        raise Unauthenticated(str(exc)) from exc

    account = _load_account(db, payload)
    if not account:
        raise Unauthenticated("User not found")
    if account.refresh_token != refresh_token:
        logger.warning(f"Rejected stale refresh token for {account.role.value} {account.id}")
        raise Unauthenticated("Refresh token is expired or used")

    access_token, new_refresh_token = account.issue_tokens()
    commit_or_conflict(db, "Could not store session")
    return account, access_token, new_refresh_token


def logout(db: Session, refresh_token: str | None) -> None:
    if not refresh_token:
        raise ValidationError("Refresh token missing")
    try:
        payload = decode_token(refresh_token, REFRESH)
    except AuthError as exc:
        raise Unauthenticated("Invalid refresh token") from exc

    account = _load_account(db, payload)
    if not account:
        raise Unauthenticated("User not found")
    account.refresh_token = None
    commit_or_conflict(db, "Could not end session")
    logger.info(f"{account.role.value} {account.id} logged out")


def change_password(db: Session, actor: SessionActor, *, old_password: str, new_password: str) -> None:
    account = actor.account
    if not account.verify_password(old_password):
        raise Unauthenticated("Incorrect old password")
    validate_password_strength(new_password)
    account.password_hash = hash_password(new_password)
    commit_or_conflict(db, "Could not change password")
    logger.info(f"{actor.role.value} {account.id} changed password")


def update_admin(
    db: Session,
    actor: SessionActor,
    *,
    institute_name: str | None = None,
    email: str | None = None,
    logo: str | None = None,
) -> Admin:
    actor.context.require(UserRole.ADMIN)
    admin = actor.account

    if institute_name is not None:
        name = normalize_name(institute_name, "Institute name")
        taken = db.query(Admin).filter(Admin.institute_name == name, Admin.id != admin.id).first()
        if taken:
            raise Conflict("Institute name already taken")
        admin.institute_name = name
    if email is not None:
        normalized = normalize_email(email)
        taken = db.query(Admin).filter(Admin.email == normalized, Admin.id != admin.id).first()
        if taken:
            raise Conflict("Email already registered")
        admin.email = normalized
    if logo is not None:
        admin.logo = logo

    commit_or_conflict(db, "Institute name or email already registered")
    db.refresh(admin)
    return admin
