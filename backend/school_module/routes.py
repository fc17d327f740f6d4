from fastapi import APIRouter, Cookie, Depends, Header, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from . import accounts, attendance, marks, notices, roster, vouchers
from .accounts import SessionActor
from .config import settings
from .database import get_db_session
from .errors import Forbidden, NotFound
from .middleware import get_current_actor, get_tenant, require_roles
from .models import UserRole
from .payments import StripeGateway, get_payment_gateway
from .schemas import (
    ActivityOut,
    AdminOut,
    AdminRegisterRequest,
    AdminUpdateRequest,
    AnnouncementOut,
    AnnouncementRequest,
    AttendanceEntryOut,
    AttendanceOut,
    AttendanceRequest,
    AuthResponse,
    AverageOut,
    ChangePasswordRequest,
    CheckoutResponse,
    ClassCreateRequest,
    ClassOut,
    ClassTeacherUpdateRequest,
    CommentOut,
    CommentRequest,
    CounterOut,
    LoginRequest,
    MarksOut,
    MarksRequest,
    MessageResponse,
    ParentCreateRequest,
    ParentOut,
    PaymentStatusResponse,
    RefreshRequest,
    ReportOut,
    ReportRequest,
    SessionResponse,
    StudentAttendanceOut,
    StudentBrief,
    StudentCreateRequest,
    StudentOut,
    StudentUpdateRequest,
    SubjectAveragesOut,
    SubjectCreateRequest,
    SubjectOut,
    SubjectUpdateRequest,
    TeacherCreateRequest,
    TeacherOut,
    TeacherUpdateRequest,
    TokenPairResponse,
    UnmarkedResponse,
    VoucherGenerateRequest,
    VoucherOut,
    VoucherRequest,
    WebhookResponse,
)
from .tenancy import TenantContext

router = APIRouter(prefix="/api/v1", tags=["School Management"])

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

admin_only = require_roles(UserRole.ADMIN)
teacher_only = require_roles(UserRole.TEACHER)


def _set_session_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    options = {
        "httponly": True,
        "secure": settings.production,
        "samesite": "none" if settings.production else "lax",
    }
    response.set_cookie(ACCESS_COOKIE, access_token, max_age=settings.access_token_exp_minutes * 60, **options)
    response.set_cookie(REFRESH_COOKIE, refresh_token, max_age=settings.refresh_token_exp_minutes * 60, **options)


def _account_out(actor: SessionActor):
    if actor.role == UserRole.ADMIN:
        return AdminOut.model_validate(actor.account)
    if actor.role == UserRole.TEACHER:
        return TeacherOut.model_validate(actor.account)
    if actor.role == UserRole.STUDENT:
        return StudentOut.model_validate(actor.account)
    return ParentOut.model_validate(actor.account)


def _attendance_out(record, entries) -> AttendanceOut:
    return AttendanceOut(
        id=record.id,
        class_id=record.class_id,
        class_title=record.class_title,
        section=record.section,
        date=record.date,
        students=[
            AttendanceEntryOut(
                student_id=entry.student_id,
                name=entry.student.name if entry.student else None,
                roll_number=entry.student.roll_number if entry.student else None,
                status=entry.status,
            )
            for entry in entries
        ],
    )


# Auth


@router.post("/auth/admin/register", response_model=AdminOut, status_code=status.HTTP_201_CREATED)
def register_admin(payload: AdminRegisterRequest, db: Session = Depends(get_db_session)):
    return accounts.register_admin(
        db,
        institute_name=payload.institute_name,
        email=payload.email,
        password=payload.password,
        logo=payload.logo,
    )


def _login(role: UserRole, payload: LoginRequest, response: Response, db: Session) -> AuthResponse:
    account, access_token, refresh_token = accounts.authenticate(
        db, identifier=payload.identifier, password=payload.password, role=role
    )
    _set_session_cookies(response, access_token, refresh_token)
    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        role=account.role,
        user_id=account.id,
        institute_id=account.institute_scope,
    )


@router.post("/auth/admin/login", response_model=AuthResponse)
def login_admin(payload: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    return _login(UserRole.ADMIN, payload, response, db)


@router.post("/auth/teacher/login", response_model=AuthResponse)
def login_teacher(payload: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    return _login(UserRole.TEACHER, payload, response, db)


@router.post("/auth/student/login", response_model=AuthResponse)
def login_student(payload: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    return _login(UserRole.STUDENT, payload, response, db)


@router.post("/auth/parent/login", response_model=AuthResponse)
def login_parent(payload: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    return _login(UserRole.PARENT, payload, response, db)


@router.post("/auth/refresh-tokens", response_model=TokenPairResponse)
def refresh_tokens(
    response: Response,
    payload: RefreshRequest | None = None,
    refresh_cookie: str | None = Cookie(default=None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db_session),
):
    token = refresh_cookie or (payload.refresh_token if payload else None)
    _, access_token, refresh_token = accounts.refresh_session(db, token)
    _set_session_cookies(response, access_token, refresh_token)
    return TokenPairResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    response: Response,
    payload: RefreshRequest | None = None,
    refresh_cookie: str | None = Cookie(default=None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db_session),
):
    token = refresh_cookie or (payload.refresh_token if payload else None)
    accounts.logout(db, token)
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="Logged out successfully")


@router.get("/auth/verify-session", response_model=SessionResponse)
def verify_session(actor: SessionActor = Depends(get_current_actor)):
    return SessionResponse(valid=True, role=actor.role, user_id=actor.account.id)


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(get_current_actor),
):
    accounts.change_password(db, actor, old_password=payload.old_password, new_password=payload.new_password)
    return MessageResponse(message="Password changed successfully")


@router.get("/auth/me", response_model=AdminOut | TeacherOut | StudentOut | ParentOut)
def me(actor: SessionActor = Depends(get_current_actor)):
    return _account_out(actor)


@router.patch("/admin/profile", response_model=AdminOut)
def update_admin_profile(
    payload: AdminUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return accounts.update_admin(
        db, actor, institute_name=payload.institute_name, email=payload.email, logo=payload.logo
    )


# Teachers


@router.post("/teachers", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.register_teacher(
        db,
        actor.context,
        name=payload.name,
        teacher_code=payload.teacher_id,
        email=payload.email,
        password=payload.password,
        department=payload.department,
        qualifications=payload.qualifications,
        phone_number=payload.phone_number,
        date_of_birth=payload.date_of_birth,
        address=payload.address,
        emergency_contact=payload.emergency_contact,
        blood_group=payload.blood_group,
        nationality=payload.nationality,
        logo=payload.logo,
    )


@router.get("/teachers", response_model=list[TeacherOut])
def list_teachers(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.list_teachers(db, actor.context)


@router.get("/teachers/{teacher_id}", response_model=TeacherOut)
def get_teacher(teacher_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.get_teacher(db, actor.context, teacher_id)


@router.patch("/teachers/{teacher_id}", response_model=TeacherOut)
def update_teacher(
    teacher_id: int,
    payload: TeacherUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    changes = payload.model_dump(exclude_unset=True)
    if "teacher_id" in changes:
        changes["teacher_code"] = changes.pop("teacher_id")
    return roster.update_teacher(db, actor.context, teacher_id, **changes)


@router.delete("/teachers/{teacher_id}", response_model=MessageResponse)
def delete_teacher(teacher_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    roster.delete_teacher(db, actor.context, teacher_id)
    return MessageResponse(message="Teacher deleted successfully")


def _own_or_admin(actor: SessionActor, teacher_id: int) -> None:
    if actor.role == UserRole.TEACHER and actor.account.id != teacher_id:
        raise Forbidden("Access denied")


@router.get("/teachers/{teacher_id}/subjects", response_model=list[SubjectOut])
def get_teacher_subjects(
    teacher_id: int,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(require_roles(UserRole.ADMIN, UserRole.TEACHER)),
):
    _own_or_admin(actor, teacher_id)
    return roster.teacher_subjects(db, actor.context, teacher_id)


@router.get("/teachers/{teacher_id}/class", response_model=ClassOut)
def get_teacher_class(
    teacher_id: int,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(require_roles(UserRole.ADMIN, UserRole.TEACHER)),
):
    _own_or_admin(actor, teacher_id)
    return roster.teacher_class_details(db, actor.context, teacher_id)


@router.get("/teacher/homeroom", response_model=ClassOut)
def get_homeroom(actor: SessionActor = Depends(teacher_only)):
    if actor.homeroom is None:
        raise NotFound("Class not found for this teacher")
    return actor.homeroom


# Parents


@router.post("/parents", response_model=ParentOut, status_code=status.HTTP_201_CREATED)
def create_parent(
    payload: ParentCreateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.register_parent(
        db,
        actor.context,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        phone_number=payload.phone_number,
        logo=payload.logo,
    )


@router.get("/parents", response_model=list[ParentOut])
def list_parents(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.list_parents(db, actor.context)


@router.get("/parents/{parent_id}", response_model=ParentOut)
def get_parent(parent_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.get_parent(db, actor.context, parent_id)


@router.delete("/parents/{parent_id}", response_model=MessageResponse)
def delete_parent(parent_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    roster.delete_parent(db, actor.context, parent_id)
    return MessageResponse(message="Parent deleted successfully")


# Students


@router.post("/students", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.register_student(db, actor.context, **payload.model_dump())


@router.get("/students", response_model=list[StudentOut])
def list_students(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.list_students(db, actor.context)


@router.get("/students/{student_id}", response_model=StudentOut)
def get_student(student_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.get_student(db, actor.context, student_id)


@router.patch("/students/{student_id}", response_model=StudentOut)
def update_student(
    student_id: int,
    payload: StudentUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.update_student(db, actor.context, student_id, **payload.model_dump(exclude_unset=True))


@router.delete("/students/{student_id}", response_model=MessageResponse)
def delete_student(student_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    roster.delete_student(db, actor.context, student_id)
    return MessageResponse(message="Student deleted successfully")


@router.get("/student/subjects", response_model=list[SubjectOut])
def get_student_subjects(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return roster.student_subjects(db, ctx)


# Classes and subjects


@router.post("/classes", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: ClassCreateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.create_class(
        db,
        actor.context,
        class_title=payload.class_title,
        section=payload.section,
        teacher_ref=payload.class_teacher_id_or_name,
    )


@router.get("/classes", response_model=list[ClassOut])
def list_classes(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.list_classes(db, actor.context)


@router.patch("/classes/{class_id}/teacher", response_model=ClassOut)
def reassign_class_teacher(
    class_id: int,
    payload: ClassTeacherUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.reassign_class_teacher(db, actor.context, class_id, teacher_ref=payload.class_teacher_id_or_name)


@router.delete("/classes/{class_id}", response_model=MessageResponse)
def delete_class(class_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    roster.delete_class(db, actor.context, class_id)
    return MessageResponse(message="Class deleted successfully")


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.create_subject(
        db,
        actor.context,
        class_title=payload.class_title,
        section=payload.section,
        subject_name=payload.subject_name,
        teacher_ref=payload.teacher_name,
    )


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return roster.list_subjects(db, actor.context)


@router.patch("/subjects/{subject_id}", response_model=SubjectOut)
def update_subject(
    subject_id: int,
    payload: SubjectUpdateRequest,
    db: Session = Depends(get_db_session),
    actor: SessionActor = Depends(admin_only),
):
    return roster.update_subject(
        db, actor.context, subject_id, subject_name=payload.subject_name, teacher_ref=payload.teacher_name
    )


@router.delete("/subjects/{subject_id}", response_model=MessageResponse)
def delete_subject(subject_id: int, db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    roster.delete_subject(db, actor.context, subject_id)
    return MessageResponse(message="Subject deleted successfully")


# Attendance


@router.post("/attendance", response_model=AttendanceOut, status_code=status.HTTP_201_CREATED)
def mark_attendance(
    payload: AttendanceRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    record = attendance.mark_attendance(
        db,
        ctx,
        class_id=payload.class_id,
        day=payload.date,
        entries=[entry.model_dump() for entry in payload.students],
    )
    return _attendance_out(record, record.entries)


@router.get("/attendance", response_model=list[AttendanceOut])
def institute_attendance(db: Session = Depends(get_db_session), actor: SessionActor = Depends(admin_only)):
    return [_attendance_out(record, record.entries) for record in attendance.institute_attendance(db, actor.context)]


@router.get("/attendance/classes/{class_id}/students", response_model=list[StudentBrief])
def attendance_roster(class_id: int, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return attendance.class_students(db, ctx, class_id)


@router.get("/attendance/classes/{class_id}/unmarked", response_model=UnmarkedResponse)
def attendance_unmarked(
    class_id: int,
    date: str | None = None,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    return UnmarkedResponse(has_students=attendance.has_unmarked_students(db, ctx, class_id, date))


@router.get("/attendance/classes/{class_id}", response_model=list[AttendanceOut])
def attendance_history(
    class_id: int,
    date: str | None = None,
    student_id: int | None = None,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    history = attendance.attendance_history(db, ctx, class_id, day=date, student_id=student_id)
    return [_attendance_out(record, entries) for record, entries in history]


@router.get("/attendance/students/{student_id}", response_model=list[StudentAttendanceOut])
def student_attendance(
    student_id: int,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    return [
        StudentAttendanceOut(
            attendance_id=entry.attendance_id,
            date=entry.attendance.date,
            class_title=entry.attendance.class_title,
            section=entry.attendance.section,
            status=entry.status,
        )
        for entry in attendance.student_attendance(db, ctx, student_id)
    ]


# Marks


@router.post("/marks", response_model=MarksOut, status_code=status.HTTP_201_CREATED)
def submit_marks(payload: MarksRequest, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return marks.submit_marks(
        db,
        ctx,
        roll_number=payload.roll_number,
        subject_name=payload.subject,
        assessment_type=payload.assessment_type,
        total_marks=payload.total_marks,
        obtained_marks=payload.obtained_marks,
    )


@router.get("/marks/class", response_model=list[MarksOut])
def class_marks(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return marks.class_marks(db, ctx)


@router.get("/marks/students/{student_id}", response_model=list[MarksOut])
def student_marks(student_id: int, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return marks.student_marks(db, ctx, student_id)


@router.get("/marks/average", response_model=AverageOut)
def average_marks(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    average, total = marks.average_marks(db, ctx)
    return AverageOut(average=average, total_records=total)


@router.get("/marks/average-per-subject", response_model=SubjectAveragesOut)
def average_marks_per_subject(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    per_subject, total = marks.average_marks_per_subject(db, ctx)
    return SubjectAveragesOut(marks_per_subject=per_subject, total_records=total)


@router.delete("/marks/{marks_id}", response_model=MessageResponse)
def delete_marks(marks_id: int, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    marks.delete_marks(db, ctx, marks_id)
    return MessageResponse(message="Marks deleted successfully")


# Announcements, reports, notification counters


@router.post("/announcements", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def create_announcement(
    payload: AnnouncementRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    return notices.create_announcement(db, ctx, title=payload.title, message=payload.message, audience=payload.audience)


@router.get("/announcements", response_model=list[AnnouncementOut])
def list_announcements(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.list_announcements(db, ctx)


@router.get("/announcements/{group}", response_model=list[AnnouncementOut])
def announcements_for_role(group: str, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.announcements_for_role(db, ctx, group)


@router.post("/reports", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def submit_report(payload: ReportRequest, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.submit_report(
        db, ctx, student_id=payload.student_id, report_type=payload.report_type, description=payload.description
    )


@router.get("/reports", response_model=list[ReportOut])
def list_reports(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.list_reports(db, ctx)


@router.get("/reports/mine", response_model=list[ReportOut])
def parent_reports(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.parent_reports(db, ctx)


@router.get("/reports/{report_id}/comments", response_model=list[CommentOut])
def report_comments(report_id: int, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.report_comments(db, ctx, report_id)


@router.post("/reports/{report_id}/comments", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def add_report_comment(
    report_id: int,
    payload: CommentRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    return notices.add_comment_to_report(db, ctx, report_id, message=payload.message)


@router.get("/notifications/unread", response_model=CounterOut)
def get_unread(actor: SessionActor = Depends(get_current_actor)):
    return CounterOut(number=notices.unread_count(actor))


@router.post("/notifications/unread/reset", response_model=CounterOut)
def reset_unread(db: Session = Depends(get_db_session), actor: SessionActor = Depends(get_current_actor)):
    return CounterOut(number=notices.reset_unread(db, actor))


@router.get("/notifications/report-comments", response_model=CounterOut)
def get_report_comments_count(actor: SessionActor = Depends(get_current_actor)):
    return CounterOut(number=notices.report_comments_count(actor))


@router.post("/notifications/report-comments/reset", response_model=CounterOut)
def reset_report_comments_count(db: Session = Depends(get_db_session), actor: SessionActor = Depends(get_current_actor)):
    return CounterOut(number=notices.reset_report_comments(db, actor))


@router.get("/activity-log", response_model=list[ActivityOut])
def activity_log(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return notices.recent_activity(db, ctx)


# Fee vouchers and payments


@router.post("/vouchers", response_model=list[VoucherOut], status_code=status.HTTP_201_CREATED)
def generate_vouchers(
    payload: VoucherGenerateRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
):
    return vouchers.generate_vouchers(db, ctx, **payload.model_dump())


@router.get("/vouchers", response_model=list[VoucherOut])
def list_vouchers(db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return vouchers.list_vouchers(db, ctx)


@router.get("/vouchers/students/{student_id}", response_model=list[VoucherOut])
def student_vouchers(student_id: int, db: Session = Depends(get_db_session), ctx: TenantContext = Depends(get_tenant)):
    return vouchers.student_vouchers(db, ctx, student_id)


@router.post("/payments/checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    payload: VoucherRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    return CheckoutResponse(id=vouchers.start_checkout(db, ctx, gateway, payload.voucher_id))


@router.post("/payments/verify", response_model=PaymentStatusResponse)
def verify_payment(
    payload: VoucherRequest,
    db: Session = Depends(get_db_session),
    ctx: TenantContext = Depends(get_tenant),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    payment_status = vouchers.verify_payment(db, ctx, gateway, payload.voucher_id)
    message = "Payment verified" if payment_status == "paid" else "Payment not completed"
    return PaymentStatusResponse(status=payment_status, message=message)


@router.post("/payments/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    payload = await request.body()
    await run_in_threadpool(vouchers.handle_webhook, db, gateway, payload, stripe_signature)
    return WebhookResponse()
