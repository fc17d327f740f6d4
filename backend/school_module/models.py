import enum
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .security import create_access_token, create_refresh_token, verify_password


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


class VoucherStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ReportType(str, enum.Enum):
    ACADEMIC = "academic"
    BEHAVIORAL = "behavioral"
    OTHER = "other"


class Audience(str, enum.Enum):
    ALL = "all"
    TEACHERS = "teachers"
    STUDENTS = "students"
    PARENTS = "parents"
    STUDENTS_PARENTS = "students_parents"
    TEACHERS_PARENTS = "teachers_parents"


CLASS_TITLES = tuple(range(1, 11))
SECTIONS = ("A", "B", "C", "D", "E")
SUBJECT_NAMES = (
    "Maths",
    "English",
    "Urdu",
    "Science",
    "Socialstudies",
    "Arts",
    "Physics",
    "Chemistry",
    "Computer",
    "Pakstudies",
    "Islamiat",
)
ASSESSMENT_TYPES = (
    "Class Test",
    "Monthly Test",
    "Assignment",
    "Mid Term Exam",
    "Pre-Board Exam",
    "Final Term Exam",
    "Annual Exam",
)
MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


class AccountMixin:
    """Credential, session and counter columns shared by the four login-capable roles."""

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    logo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def verify_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    @property
    def institute_scope(self) -> int:
        return self.institute_id

    def issue_tokens(self) -> tuple[str, str]:
        """Mint a fresh token pair and make the new refresh token the only valid one."""
        access_token = create_access_token(subject=str(self.id), role=self.role.value)
        refresh_token = create_refresh_token(subject=str(self.id), role=self.role.value)
        self.refresh_token = refresh_token
        return access_token, refresh_token


class Admin(AccountMixin, Base):
    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    report_comments_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (UniqueConstraint("email", name="uq_admin_email"),)

    @property
    def institute_scope(self) -> int:
        # An admin is the institute.
        return self.id

    @classmethod
    def login_filter(cls, identifier: str):
        return (cls.institute_name == identifier) | (cls.email == identifier)


class Teacher(AccountMixin, Base):
    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    teacher_code: Mapped[str] = mapped_column(String(100), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    qualifications: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_of_birth: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    emergency_contact: Mapped[str | None] = mapped_column(String(50), nullable=True)
    blood_group: Mapped[str | None] = mapped_column(String(5), nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Weak mirror of SchoolClass.class_teacher_id; kept in step by roster services.
    class_teacher_of_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)

    subjects: Mapped[list["Subject"]] = relationship("Subject", back_populates="subject_teacher")

    __table_args__ = (
        UniqueConstraint("institute_id", "teacher_code", name="uq_teacher_code"),
        UniqueConstraint("institute_id", "email", name="uq_teacher_email"),
    )

    @classmethod
    def login_filter(cls, identifier: str):
        return (cls.teacher_code == identifier) | (cls.email == identifier)


class Parent(AccountMixin, Base):
    __tablename__ = "parents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    report_comments_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    children: Mapped[list["Student"]] = relationship(
        "Student", back_populates="guardian", order_by="Student.id"
    )

    __table_args__ = (UniqueConstraint("institute_id", "email", name="uq_parent_email"),)

    @classmethod
    def login_filter(cls, identifier: str):
        return cls.email == identifier


class SchoolClass(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    class_title: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    class_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    class_teacher: Mapped[Teacher] = relationship("Teacher")
    students: Mapped[list["Student"]] = relationship(
        "Student", back_populates="school_class", order_by="Student.id"
    )
    subjects: Mapped[list["Subject"]] = relationship(
        "Subject", back_populates="school_class", order_by="Subject.id", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("institute_id", "class_title", "section", name="uq_class_title_section"),
    )


class Student(AccountMixin, Base):
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    roll_number: Mapped[str] = mapped_column(String(100), nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    student_class: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    guardian_id: Mapped[int] = mapped_column(ForeignKey("parents.id"), nullable=False, index=True)
    admission_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    date_of_birth: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    emergency_contact: Mapped[str | None] = mapped_column(String(50), nullable=True)
    blood_group: Mapped[str | None] = mapped_column(String(5), nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(100), nullable=True)

    school_class: Mapped[SchoolClass] = relationship("SchoolClass", back_populates="students")
    guardian: Mapped[Parent] = relationship("Parent", back_populates="children")
    marks: Mapped[list["Marks"]] = relationship(
        "Marks", back_populates="student", cascade="all, delete-orphan"
    )
    vouchers: Mapped[list["Voucher"]] = relationship(
        "Voucher", back_populates="student", cascade="all, delete-orphan"
    )
    reports: Mapped[list["Report"]] = relationship(
        "Report", back_populates="student", cascade="all, delete-orphan"
    )
    attendance_entries: Mapped[list["AttendanceEntry"]] = relationship(
        "AttendanceEntry", back_populates="student", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("institute_id", "roll_number", name="uq_student_roll_number"),
        UniqueConstraint("institute_id", "email", name="uq_student_email"),
    )

    @classmethod
    def login_filter(cls, identifier: str):
        return (cls.roll_number == identifier) | (cls.email == identifier)


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    class_title: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)

    school_class: Mapped[SchoolClass] = relationship("SchoolClass", back_populates="subjects")
    subject_teacher: Mapped[Teacher] = relationship("Teacher", back_populates="subjects")

    __table_args__ = (
        UniqueConstraint("institute_id", "class_title", "section", "subject_name", name="uq_subject_per_class"),
    )


class Attendance(Base):
    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    class_title: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    marked_by_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    entries: Mapped[list["AttendanceEntry"]] = relationship(
        "AttendanceEntry", back_populates="attendance", order_by="AttendanceEntry.id", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("institute_id", "class_id", "day", name="uq_attendance_per_day"),)


class AttendanceEntry(Base):
    __tablename__ = "attendance_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("attendance.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(Enum(AttendanceStatus), nullable=False)

    attendance: Mapped[Attendance] = relationship("Attendance", back_populates="entries")
    student: Mapped[Student] = relationship("Student", back_populates="attendance_entries")


class Marks(Base):
    __tablename__ = "marks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_name: Mapped[str] = mapped_column(String(100), nullable=False)
    assessment_type: Mapped[str] = mapped_column(String(100), nullable=False)
    total_marks: Mapped[float] = mapped_column(Float, nullable=False)
    obtained_marks: Mapped[float] = mapped_column(Float, nullable=False)
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    # Point-in-time copies; reassignment never rewrites them.
    class_title: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    class_teacher_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    subject_teacher_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    student: Mapped[Student] = relationship("Student", back_populates="marks")

    __table_args__ = (
        UniqueConstraint("institute_id", "student_id", "subject_name", "assessment_type", name="uq_marks_entry"),
    )

    @property
    def percentage(self) -> float:
        return self.obtained_marks * 100 / self.total_marks


class Voucher(Base):
    __tablename__ = "vouchers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    voucher_code: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)
    student_class: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(1), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    month: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[VoucherStatus] = mapped_column(Enum(VoucherStatus), default=VoucherStatus.UNPAID, nullable=False)
    payment_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    student: Mapped[Student] = relationship("Student", back_populates="vouchers")

    __table_args__ = (
        UniqueConstraint("institute_id", "student_id", "month", "year", name="uq_voucher_period"),
    )


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    parent_id: Mapped[int] = mapped_column(ForeignKey("parents.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type: Mapped[ReportType] = mapped_column(Enum(ReportType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ReportStatus] = mapped_column(Enum(ReportStatus), default=ReportStatus.PENDING, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    parent: Mapped[Parent] = relationship("Parent")
    student: Mapped[Student] = relationship("Student", back_populates="reports")
    comments: Mapped[list["ReportComment"]] = relationship(
        "ReportComment", back_populates="report", order_by="ReportComment.id", cascade="all, delete-orphan"
    )


class ReportComment(Base):
    __tablename__ = "report_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    report: Mapped[Report] = relationship("Report", back_populates="comments")


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    audience: Mapped[Audience] = mapped_column(Enum(Audience), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    institute_id: Mapped[int] = mapped_column(ForeignKey("admins.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
