import logging
from collections import OrderedDict

from sqlalchemy.orm import Session, selectinload

from .database import commit_or_conflict
from .errors import Conflict, Forbidden, NotFound, ValidationError
from .models import Marks, SchoolClass, UserRole
from .tenancy import TenantContext, find_student_by_roll, find_subject, get_scoped, homeroom_of, scoped, visible_student
from .validators import validate_assessment_type, validate_subject_name


logger = logging.getLogger(__name__)

GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
)


def grade_for(obtained: float, total: float) -> str:
    """Band a score by percentage; the highest band reached wins and nothing is rounded first."""
    percentage = obtained * 100 / total
    for threshold, grade in GRADE_BANDS:
        if percentage >= threshold:
            return grade
    return "F"


def _live_class_teacher(db: Session, ctx: TenantContext, class_title: int, section: str) -> SchoolClass | None:
    return (
        scoped(db, ctx, SchoolClass)
        .filter(
            SchoolClass.class_title == class_title,
            SchoolClass.section == section,
            SchoolClass.class_teacher_id == ctx.actor_id,
        )
        .first()
    )


def submit_marks(
    db: Session,
    ctx: TenantContext,
    *,
    roll_number: str,
    subject_name: str,
    assessment_type: str,
    total_marks: float,
    obtained_marks: float,
) -> Marks:
    """Record one graded result for a student of the acting teacher's homeroom class.

    Only the homeroom teacher may submit, whoever teaches the subject. The teacher and
    class placement are copied onto the record and never follow later reassignments.
    """
    if ctx.role != UserRole.TEACHER:
        raise Forbidden("Only the assigned class teacher can submit marks")
    assessment_type = validate_assessment_type(assessment_type)
    subject_name = validate_subject_name(subject_name)
    if total_marks is None or total_marks <= 0:
        raise ValidationError("Total marks must be greater than zero")
    if obtained_marks is None or obtained_marks < 0:
        raise ValidationError("Obtained marks cannot be negative")

    student = find_student_by_roll(db, ctx, roll_number)
    school_class = student.school_class
    subject = find_subject(db, ctx, school_class, subject_name)
    if school_class.class_teacher_id != ctx.actor_id:
        raise Forbidden("Only the assigned class teacher can submit marks")

    if obtained_marks > total_marks:
        raise ValidationError("Obtained marks cannot exceed total marks")

    duplicate = (
        scoped(db, ctx, Marks)
        .filter(
            Marks.student_id == student.id,
            Marks.subject_name == subject.subject_name,
            Marks.assessment_type == assessment_type,
        )
        .first()
    )
    if duplicate:
        raise Conflict(
            f'Marks for subject "{subject.subject_name}" and assessment "{assessment_type}" '
            "have already been submitted for this student"
        )

    record = Marks(
        institute_id=ctx.institute_id,
        subject_name=subject.subject_name,
        assessment_type=assessment_type,
        total_marks=float(total_marks),
        obtained_marks=float(obtained_marks),
        grade=grade_for(obtained_marks, total_marks),
        class_title=student.student_class,
        section=student.section,
        class_teacher_id=school_class.class_teacher_id,
        subject_teacher_id=subject.subject_teacher_id,
    )
    record.student = student
    db.add(record)
    commit_or_conflict(db, "Marks have already been submitted for this student")
    db.refresh(record)
    logger.info(f"Marks {record.id} submitted for student {student.id}: {record.grade}")
    return record


def delete_marks(db: Session, ctx: TenantContext, marks_id: int) -> None:
    """Delete a record; allowed for whoever homerooms the record's class and section now."""
    if ctx.role != UserRole.TEACHER:
        raise Forbidden("Only the class teacher can delete marks")
    record = get_scoped(db, ctx, Marks, marks_id, "Marks")
    if _live_class_teacher(db, ctx, record.class_title, record.section) is None:
        raise Forbidden("Only the class teacher can delete marks")
    db.delete(record)
    commit_or_conflict(db, "Could not delete marks")
    logger.info(f"Marks {marks_id} deleted by teacher {ctx.actor_id}")


def class_marks(db: Session, ctx: TenantContext) -> list[Marks]:
    """Records whose snapshotted class teacher is the acting teacher."""
    ctx.require(UserRole.TEACHER)
    return (
        scoped(db, ctx, Marks)
        .options(selectinload(Marks.student))
        .filter(Marks.class_teacher_id == ctx.actor_id)
        .order_by(Marks.student_id, Marks.subject_name, Marks.id)
        .all()
    )


def student_marks(db: Session, ctx: TenantContext, student_id: int) -> list[Marks]:
    ctx.require(UserRole.STUDENT, UserRole.PARENT)
    student = visible_student(db, ctx, student_id)
    return (
        scoped(db, ctx, Marks)
        .filter(Marks.student_id == student.id)
        .order_by(Marks.subject_name, Marks.id)
        .all()
    )


def average_marks(db: Session, ctx: TenantContext) -> tuple[float | None, int]:
    ctx.require(UserRole.ADMIN)
    records = scoped(db, ctx, Marks).all()
    if not records:
        return None, 0
    average = sum(record.percentage for record in records) / len(records)
    return round(average, 1), len(records)


def average_marks_per_subject(db: Session, ctx: TenantContext) -> tuple[list[dict], int]:
    ctx.require(UserRole.TEACHER)
    school_class = homeroom_of(db, ctx, ctx.actor_id)
    if school_class is None:
        raise NotFound("Teacher is not assigned to any class")

    records = (
        scoped(db, ctx, Marks)
        .filter(Marks.class_title == school_class.class_title, Marks.section == school_class.section)
        .order_by(Marks.id)
        .all()
    )
    by_subject: OrderedDict[str, list[float]] = OrderedDict()
    for record in records:
        by_subject.setdefault(record.subject_name, []).append(record.percentage)
    per_subject = [
        {"subject": subject, "average": round(sum(values) / len(values), 1)} for subject, values in by_subject.items()
    ]
    return per_subject, len(records)
