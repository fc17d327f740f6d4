import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session, selectinload

from .database import commit_or_conflict
from .errors import Conflict, Forbidden, ValidationError
from .models import Attendance, AttendanceEntry, AttendanceStatus, SchoolClass, Student, UserRole
from .tenancy import TenantContext, get_scoped, scoped, visible_student


logger = logging.getLogger(__name__)


def parse_day(value) -> datetime:
    if value is None:
        return datetime.now()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise ValidationError("Invalid date format") from None


def day_bounds(when: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(when.date(), time(0, 0, 0, 0))
    end = datetime.combine(when.date(), time(23, 59, 59, 999000))
    return start, end


def _homeroom_class(db: Session, ctx: TenantContext, class_id: int) -> SchoolClass:
    if ctx.role != UserRole.TEACHER:
        raise Forbidden("Only the class teacher can manage attendance")
    school_class = get_scoped(db, ctx, SchoolClass, class_id, "Class")
    if school_class.class_teacher_id != ctx.actor_id:
        raise Forbidden("Class is not assigned to you")
    return school_class


def _existing_record(db: Session, ctx: TenantContext, class_id: int, when: datetime) -> Attendance | None:
    start, end = day_bounds(when)
    return (
        scoped(db, ctx, Attendance)
        .filter(Attendance.class_id == class_id, Attendance.date >= start, Attendance.date <= end)
        .first()
    )


def mark_attendance(db: Session, ctx: TenantContext, *, class_id: int, day, entries: list[dict]) -> Attendance:
    """Record the whole-roster attendance snapshot of one class for one calendar day.

    A day has at most one record; a second submission is rejected, never merged.
    """
    school_class = _homeroom_class(db, ctx, class_id)
    if not entries:
        raise ValidationError("Students array is required")

    student_ids = []
    for entry in entries:
        try:
            student_ids.append(int(entry.get("student_id")))
        except (TypeError, ValueError):
            raise ValidationError("Each entry needs a valid student ID and status") from None
    if len(set(student_ids)) != len(student_ids):
        raise ValidationError("A student appears more than once")
    roster = (
        scoped(db, ctx, Student)
        .filter(
            Student.id.in_(student_ids),
            Student.class_id == school_class.id,
            Student.student_class == school_class.class_title,
            Student.section == school_class.section,
        )
        .all()
    )
    if len(roster) != len(student_ids):
        raise ValidationError("One or more student IDs are invalid or do not belong to this class")

    statuses = []
    for entry in entries:
        try:
            statuses.append(AttendanceStatus(entry.get("status")))
        except ValueError:
            raise ValidationError('Invalid status: must be "present" or "absent"') from None

    when = parse_day(day)
    if _existing_record(db, ctx, school_class.id, when) is not None:
        raise Conflict("Attendance already recorded for this date")

    students = {student.id: student for student in roster}
    record = Attendance(
        institute_id=ctx.institute_id,
        class_id=school_class.id,
        class_title=school_class.class_title,
        section=school_class.section,
        marked_by_id=ctx.actor_id,
        date=when,
        day=when.date(),
    )
    for student_id, status in zip(student_ids, statuses):
        record.entries.append(AttendanceEntry(student=students[student_id], status=status))
    db.add(record)
    commit_or_conflict(db, "Attendance already recorded for this date")
    db.refresh(record)
    logger.info(f"Attendance saved for class {school_class.id} on {record.day} ({len(statuses)} students)")
    return record


def class_students(db: Session, ctx: TenantContext, class_id: int) -> list[Student]:
    school_class = _homeroom_class(db, ctx, class_id)
    return list(school_class.students)


def has_unmarked_students(db: Session, ctx: TenantContext, class_id: int, day=None) -> bool:
    school_class = _homeroom_class(db, ctx, class_id)
    if not school_class.students:
        return False
    record = _existing_record(db, ctx, school_class.id, parse_day(day))
    if record is None:
        return True
    marked = {entry.student_id for entry in record.entries}
    return any(student.id not in marked for student in school_class.students)


def attendance_history(
    db: Session, ctx: TenantContext, class_id: int, *, day=None, student_id: int | None = None
) -> list[tuple[Attendance, list[AttendanceEntry]]]:
    school_class = _homeroom_class(db, ctx, class_id)
    query = (
        scoped(db, ctx, Attendance)
        .options(selectinload(Attendance.entries).selectinload(AttendanceEntry.student))
        .filter(Attendance.class_id == school_class.id)
    )
    if day is not None:
        start, end = day_bounds(parse_day(day))
        query = query.filter(Attendance.date >= start, Attendance.date <= end)

    history = []
    for record in query.order_by(Attendance.date.desc()).all():
        entries = [entry for entry in record.entries if student_id is None or entry.student_id == student_id]
        if entries:
            history.append((record, entries))
    return history


def institute_attendance(db: Session, ctx: TenantContext) -> list[Attendance]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, Attendance)
        .options(selectinload(Attendance.entries).selectinload(AttendanceEntry.student))
        .order_by(Attendance.date.desc())
        .all()
    )


def student_attendance(db: Session, ctx: TenantContext, student_id: int) -> list[AttendanceEntry]:
    ctx.require(UserRole.STUDENT, UserRole.PARENT)
    student = visible_student(db, ctx, student_id)
    return (
        db.query(AttendanceEntry)
        .join(Attendance, AttendanceEntry.attendance_id == Attendance.id)
        .options(selectinload(AttendanceEntry.attendance))
        .filter(AttendanceEntry.student_id == student.id, Attendance.institute_id == ctx.institute_id)
        .order_by(Attendance.date.desc())
        .all()
    )
