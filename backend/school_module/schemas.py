from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    AttendanceStatus,
    Audience,
    ReportStatus,
    ReportType,
    UserRole,
    VoucherStatus,
)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# Auth


class AdminRegisterRequest(BaseModel):
    institute_name: str = Field(min_length=2, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    logo: str | None = None


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8)


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: UserRole
    user_id: int
    institute_id: int


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SessionResponse(BaseModel):
    valid: bool
    role: UserRole
    user_id: int


# Accounts


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class AdminOut(OrmModel):
    id: int
    institute_name: str
    email: str
    role: UserRole
    logo: str | None = None
    created_at: datetime


class AdminUpdateRequest(BaseModel):
    institute_name: str | None = Field(default=None, min_length=2, max_length=255)
    email: str | None = Field(default=None, min_length=5, max_length=255)
    logo: str | None = None


class TeacherBrief(OrmModel):
    id: int
    name: str
    teacher_code: str


class StudentBrief(OrmModel):
    id: int
    name: str
    roll_number: str


class TeacherCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    teacher_id: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    department: str = Field(min_length=1, max_length=255)
    qualifications: list[str] | str
    phone_number: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None


class TeacherUpdateRequest(BaseModel):
    name: str | None = None
    teacher_id: str | None = None
    email: str | None = None
    department: str | None = None
    qualifications: list[str] | str | None = None
    phone_number: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None


class TeacherOut(OrmModel):
    id: int
    name: str
    teacher_code: str
    email: str
    role: UserRole
    department: str
    qualifications: list[str]
    class_teacher_of_id: int | None = None
    phone_number: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None
    created_at: datetime


class ParentCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    phone_number: str | None = None
    logo: str | None = None


class ParentOut(OrmModel):
    id: int
    name: str
    email: str
    role: UserRole
    phone_number: str | None = None
    logo: str | None = None
    children: list[StudentBrief] = []
    created_at: datetime


class StudentCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    roll_number: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    guardian_name: str = Field(min_length=2, max_length=255)
    guardian_email: str = Field(min_length=5, max_length=255)
    student_class: int
    section: str = Field(min_length=1, max_length=1)
    admission_year: int | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None


class StudentUpdateRequest(BaseModel):
    name: str | None = None
    roll_number: str | None = None
    email: str | None = None
    student_class: int | None = None
    section: str | None = None
    guardian_name: str | None = None
    guardian_email: str | None = None
    admission_year: int | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None


class StudentOut(OrmModel):
    id: int
    name: str
    roll_number: str
    email: str
    role: UserRole
    student_class: int
    section: str
    class_id: int
    guardian_id: int
    admission_year: int | None = None
    date_of_birth: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    blood_group: str | None = None
    nationality: str | None = None
    logo: str | None = None
    created_at: datetime


# Classes and subjects


class ClassCreateRequest(BaseModel):
    class_title: int = Field(ge=1, le=10)
    section: str = Field(min_length=1, max_length=1)
    class_teacher_id_or_name: str = Field(min_length=1)


class ClassTeacherUpdateRequest(BaseModel):
    class_teacher_id_or_name: str = Field(min_length=1)


class SubjectCreateRequest(BaseModel):
    class_title: int = Field(ge=1, le=10)
    section: str = Field(min_length=1, max_length=1)
    subject_name: str = Field(min_length=1)
    teacher_name: str = Field(min_length=1)


class SubjectUpdateRequest(BaseModel):
    subject_name: str | None = None
    teacher_name: str | None = None


class SubjectOut(OrmModel):
    id: int
    class_id: int
    class_title: int
    section: str
    subject_name: str
    subject_teacher: TeacherBrief | None = None


class ClassOut(OrmModel):
    id: int
    class_title: int
    section: str
    class_teacher: TeacherBrief | None = None
    students: list[StudentBrief] = []
    subjects: list[SubjectOut] = []
    created_at: datetime


# Attendance


class AttendanceEntryIn(BaseModel):
    student_id: int
    status: str


class AttendanceRequest(BaseModel):
    class_id: int
    date: str | None = None
    students: list[AttendanceEntryIn] = Field(min_length=1)


class AttendanceEntryOut(BaseModel):
    student_id: int
    name: str | None = None
    roll_number: str | None = None
    status: AttendanceStatus


class AttendanceOut(BaseModel):
    id: int
    class_id: int
    class_title: int
    section: str
    date: datetime
    students: list[AttendanceEntryOut]


class StudentAttendanceOut(BaseModel):
    attendance_id: int
    date: datetime
    class_title: int
    section: str
    status: AttendanceStatus


class UnmarkedResponse(BaseModel):
    has_students: bool


# Marks


class MarksRequest(BaseModel):
    roll_number: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    assessment_type: str = Field(min_length=1)
    total_marks: float = Field(gt=0)
    obtained_marks: float = Field(ge=0)


class MarksOut(OrmModel):
    id: int
    student_id: int
    subject_name: str
    assessment_type: str
    total_marks: float
    obtained_marks: float
    grade: str
    class_title: int
    section: str
    class_teacher_id: int
    subject_teacher_id: int
    created_at: datetime


class AverageOut(BaseModel):
    average: float | None
    total_records: int


class SubjectAverage(BaseModel):
    subject: str
    average: float


class SubjectAveragesOut(BaseModel):
    marks_per_subject: list[SubjectAverage]
    total_records: int


# Announcements, reports, counters, activity


class AnnouncementRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    audience: Audience


class AnnouncementOut(OrmModel):
    id: int
    title: str
    message: str
    audience: Audience
    created_at: datetime


class ReportRequest(BaseModel):
    student_id: int
    report_type: ReportType
    description: str = Field(min_length=1)


class CommentRequest(BaseModel):
    message: str = Field(min_length=1)


class CommentOut(OrmModel):
    id: int
    admin_id: int
    text: str
    created_at: datetime


class ReportOut(OrmModel):
    id: int
    parent_id: int
    student_id: int
    report_type: ReportType
    description: str
    status: ReportStatus
    comments: list[CommentOut] = []
    created_at: datetime


class CounterOut(BaseModel):
    number: int


class ActivityOut(OrmModel):
    action: str
    details: str | None = None
    created_at: datetime


# Vouchers and payments


class VoucherGenerateRequest(BaseModel):
    student_class: int = Field(ge=1, le=10)
    section: str = Field(min_length=1, max_length=1)
    amount: float = Field(gt=0)
    month: str
    year: int = Field(ge=2000, le=2100)
    due_date: date


class VoucherOut(OrmModel):
    id: int
    voucher_code: int
    student_id: int
    student_class: int
    section: str
    amount: float
    month: str
    year: int
    due_date: date
    status: VoucherStatus
    paid_at: datetime | None = None
    created_at: datetime


class VoucherRequest(BaseModel):
    voucher_id: int


class CheckoutResponse(BaseModel):
    id: str


class PaymentStatusResponse(BaseModel):
    status: str
    message: str


class WebhookResponse(BaseModel):
    received: bool = True
