"""Enrollment and roster: the Class, Teacher, Student, Subject and Parent graph.

Each operation stages all of its row changes and commits once. The two mirrored links
(class <-> homeroom teacher, student <-> guardian) are only written through the helpers
in this module.
"""
import logging

from sqlalchemy.orm import Session, selectinload

from .database import commit_or_conflict, flush_or_conflict
from .errors import Conflict, Forbidden, NotFound, ValidationError
from .models import (
    Attendance,
    Parent,
    Report,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    UserRole,
)
from .notices import record_activity
from .security import hash_password
from .tenancy import (
    TenantContext,
    find_class,
    find_guardian,
    find_teacher,
    get_scoped,
    homeroom_of,
    scoped,
)
from .validators import (
    normalize_email,
    normalize_name,
    validate_class_title,
    validate_password_strength,
    validate_section,
    validate_subject_name,
)


logger = logging.getLogger(__name__)


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value).strip()] if str(value).strip() else []


def _link_homeroom(db: Session, school_class: SchoolClass, teacher: Teacher) -> None:
    """Point ``school_class`` and ``teacher`` at each other.

    The previous homeroom teacher is released first, and only if their mirror still
    names this class, so two teachers never claim the same class at once.
    """
    previous_id = school_class.class_teacher_id
    if previous_id is not None and previous_id != teacher.id:
        previous = db.get(Teacher, previous_id)
        if previous is not None and previous.class_teacher_of_id == school_class.id:
            previous.class_teacher_of_id = None
            flush_or_conflict(db, "Teacher already assigned to another class")
    school_class.class_teacher = teacher
    teacher.class_teacher_of_id = school_class.id
    flush_or_conflict(db, "Teacher already assigned to another class")


def _ensure_free_for_homeroom(db: Session, ctx: TenantContext, teacher: Teacher, school_class_id: int | None) -> None:
    current = homeroom_of(db, ctx, teacher.id)
    if current is not None and current.id != school_class_id:
        raise Conflict("This teacher is already assigned to another class")
    if teacher.class_teacher_of_id is not None and teacher.class_teacher_of_id != school_class_id:
        raise Conflict("This teacher is already assigned to another class")


# Teachers


def register_teacher(
    db: Session,
    ctx: TenantContext,
    *,
    name: str,
    teacher_code: str,
    email: str,
    password: str,
    department: str,
    qualifications,
    phone_number: str | None = None,
    date_of_birth: str | None = None,
    address: str | None = None,
    emergency_contact: str | None = None,
    blood_group: str | None = None,
    nationality: str | None = None,
    logo: str | None = None,
) -> Teacher:
    ctx.require(UserRole.ADMIN)
    name = normalize_name(name)
    code = normalize_name(teacher_code, "Teacher ID")
    email = normalize_email(email)
    validate_password_strength(password)
    if not (department or "").strip():
        raise ValidationError("Department is required")

    existing = scoped(db, ctx, Teacher).filter((Teacher.teacher_code == code) | (Teacher.email == email)).first()
    if existing:
        if existing.email == email:
            raise Conflict("Email already registered")
        raise Conflict("Teacher ID already taken")

    teacher = Teacher(
        institute_id=ctx.institute_id,
        name=name,
        teacher_code=code,
        email=email,
        password_hash=hash_password(password),
        role=UserRole.TEACHER,
        department=department.strip(),
        qualifications=_as_list(qualifications),
        phone_number=phone_number,
        date_of_birth=date_of_birth,
        address=address,
        emergency_contact=emergency_contact,
        blood_group=blood_group,
        nationality=nationality,
        logo=logo,
    )
    db.add(teacher)
    record_activity(db, ctx, f"Added teacher: {name}", f"Teacher ID: {code}")
    commit_or_conflict(db, "Teacher ID or email already registered")
    db.refresh(teacher)
    logger.info(f"Registered teacher {teacher.id} in institute {ctx.institute_id}")
    return teacher


def update_teacher(
    db: Session,
    ctx: TenantContext,
    teacher_id: int,
    *,
    name: str | None = None,
    teacher_code: str | None = None,
    email: str | None = None,
    department: str | None = None,
    qualifications=None,
    phone_number: str | None = None,
    date_of_birth: str | None = None,
    address: str | None = None,
    emergency_contact: str | None = None,
    blood_group: str | None = None,
    nationality: str | None = None,
    logo: str | None = None,
) -> Teacher:
    ctx.require(UserRole.ADMIN)
    teacher = get_scoped(db, ctx, Teacher, teacher_id, "Teacher")
    profile = {
        "phone_number": phone_number,
        "date_of_birth": date_of_birth,
        "address": address,
        "emergency_contact": emergency_contact,
        "blood_group": blood_group,
        "nationality": nationality,
        "logo": logo,
    }
    if all(value is None for value in (name, teacher_code, email, department, qualifications, *profile.values())):
        raise ValidationError("Please provide at least one field to update")

    if email is not None:
        email = normalize_email(email)
        taken = scoped(db, ctx, Teacher).filter(Teacher.email == email, Teacher.id != teacher.id).first()
        if taken:
            raise Conflict("Email already in use")
        teacher.email = email
    if teacher_code is not None:
        code = normalize_name(teacher_code, "Teacher ID")
        taken = scoped(db, ctx, Teacher).filter(Teacher.teacher_code == code, Teacher.id != teacher.id).first()
        if taken:
            raise Conflict("Teacher ID already taken")
        teacher.teacher_code = code
    if name is not None:
        teacher.name = normalize_name(name)
    if department is not None:
        teacher.department = department.strip()
    if qualifications is not None:
        teacher.qualifications = _as_list(qualifications)
    for field, value in profile.items():
        if value is not None:
            setattr(teacher, field, value)

    record_activity(db, ctx, f"Updated Teacher: {teacher.name}")
    commit_or_conflict(db, "Teacher ID or email already registered")
    db.refresh(teacher)
    return teacher


def get_teacher(db: Session, ctx: TenantContext, teacher_id: int) -> Teacher:
    ctx.require(UserRole.ADMIN)
    return get_scoped(db, ctx, Teacher, teacher_id, "Teacher")


def list_teachers(db: Session, ctx: TenantContext) -> list[Teacher]:
    ctx.require(UserRole.ADMIN)
    return scoped(db, ctx, Teacher).order_by(Teacher.name, Teacher.id).all()


def delete_teacher(db: Session, ctx: TenantContext, teacher_id: int) -> None:
    ctx.require(UserRole.ADMIN)
    teacher = get_scoped(db, ctx, Teacher, teacher_id, "Teacher")

    assigned = homeroom_of(db, ctx, teacher.id)
    if assigned is not None:
        raise Conflict(
            f"{teacher.name} is currently assigned as the class teacher of "
            f"{assigned.class_title}-{assigned.section}. Please update the class teacher before deleting."
        )
    if teacher.subjects:
        raise Conflict(f"{teacher.name} still teaches {len(teacher.subjects)} subject(s). Reassign them first.")

    db.delete(teacher)
    record_activity(db, ctx, f"Deleted Teacher: {teacher.name}")
    commit_or_conflict(db, "Teacher is still referenced")
    logger.info(f"Deleted teacher {teacher_id} from institute {ctx.institute_id}")


def teacher_subjects(db: Session, ctx: TenantContext, teacher_id: int) -> list[Subject]:
    teacher = get_scoped(db, ctx, Teacher, teacher_id, "Teacher")
    return (
        scoped(db, ctx, Subject)
        .filter(Subject.subject_teacher_id == teacher.id)
        .order_by(Subject.class_title, Subject.section, Subject.subject_name)
        .all()
    )


def teacher_class_details(db: Session, ctx: TenantContext, teacher_id: int) -> SchoolClass:
    teacher = get_scoped(db, ctx, Teacher, teacher_id, "Teacher")
    school_class = homeroom_of(db, ctx, teacher.id)
    if school_class is None:
        raise NotFound("Class not found for this teacher")
    return school_class


# Parents


def register_parent(
    db: Session,
    ctx: TenantContext,
    *,
    name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
    logo: str | None = None,
) -> Parent:
    ctx.require(UserRole.ADMIN)
    name = normalize_name(name)
    email = normalize_email(email)
    validate_password_strength(password)

    if scoped(db, ctx, Parent).filter(Parent.email == email).first():
        raise Conflict("Parent with this email already exists in this institute")

    parent = Parent(
        institute_id=ctx.institute_id,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=UserRole.PARENT,
        phone_number=phone_number,
        logo=logo,
    )
    db.add(parent)
    record_activity(db, ctx, f"Added Parent: {name}", f"Parent Email: {email}")
    commit_or_conflict(db, "Parent with this email already exists in this institute")
    db.refresh(parent)
    logger.info(f"Registered parent {parent.id} in institute {ctx.institute_id}")
    return parent


def get_parent(db: Session, ctx: TenantContext, parent_id: int) -> Parent:
    ctx.require(UserRole.ADMIN)
    return get_scoped(db, ctx, Parent, parent_id, "Parent")


def list_parents(db: Session, ctx: TenantContext) -> list[Parent]:
    ctx.require(UserRole.ADMIN)
    return scoped(db, ctx, Parent).options(selectinload(Parent.children)).order_by(Parent.name, Parent.id).all()


def delete_parent(db: Session, ctx: TenantContext, parent_id: int) -> None:
    ctx.require(UserRole.ADMIN)
    parent = get_scoped(db, ctx, Parent, parent_id, "Parent")
    if parent.children:
        raise Conflict("Parent still has registered children. Move or delete them first.")

    for report in scoped(db, ctx, Report).filter(Report.parent_id == parent.id).all():
        db.delete(report)
    db.delete(parent)
    record_activity(db, ctx, f"Deleted Parent: {parent.name}")
    commit_or_conflict(db, "Parent is still referenced")


# Students


def register_student(
    db: Session,
    ctx: TenantContext,
    *,
    name: str,
    roll_number: str,
    email: str,
    password: str,
    guardian_name: str,
    guardian_email: str,
    student_class,
    section: str,
    admission_year: int | None = None,
    date_of_birth: str | None = None,
    address: str | None = None,
    emergency_contact: str | None = None,
    blood_group: str | None = None,
    nationality: str | None = None,
    logo: str | None = None,
) -> Student:
    """Enroll a student into an existing class under an existing guardian.

    The class roster and the guardian's children both follow from the student row, so
    the enrollment is one insert committed together with its activity entry.
    """
    ctx.require(UserRole.ADMIN)
    name = normalize_name(name)
    roll = normalize_name(roll_number, "Roll number")
    email = normalize_email(email)
    guardian_email = normalize_email(guardian_email)
    guardian_name = normalize_name(guardian_name, "Guardian name")
    validate_password_strength(password)
    class_title = validate_class_title(student_class)
    section = validate_section(section)

    existing = scoped(db, ctx, Student).filter((Student.roll_number == roll) | (Student.email == email)).first()
    if existing:
        if existing.email == email:
            raise Conflict("Email already registered")
        raise Conflict("Roll number already taken")

    school_class = find_class(db, ctx, class_title, section)
    guardian = find_guardian(db, ctx, guardian_name, guardian_email)

    student = Student(
        institute_id=ctx.institute_id,
        name=name,
        roll_number=roll,
        email=email,
        password_hash=hash_password(password),
        role=UserRole.STUDENT,
        student_class=school_class.class_title,
        section=school_class.section,
        admission_year=admission_year,
        date_of_birth=date_of_birth,
        address=address,
        emergency_contact=emergency_contact,
        blood_group=blood_group,
        nationality=nationality,
        logo=logo,
    )
    student.school_class = school_class
    student.guardian = guardian
    db.add(student)
    record_activity(db, ctx, f"Added Student: {name}", f"Student RollNumber: {roll}")
    commit_or_conflict(db, "Roll number or email already registered")
    db.refresh(student)
    logger.info(f"Enrolled student {student.id} in class {class_title}-{section}")
    return student


def update_student(
    db: Session,
    ctx: TenantContext,
    student_id: int,
    *,
    name: str | None = None,
    roll_number: str | None = None,
    email: str | None = None,
    student_class=None,
    section: str | None = None,
    guardian_name: str | None = None,
    guardian_email: str | None = None,
    admission_year: int | None = None,
    date_of_birth: str | None = None,
    address: str | None = None,
    emergency_contact: str | None = None,
    blood_group: str | None = None,
    nationality: str | None = None,
    logo: str | None = None,
) -> Student:
    ctx.require(UserRole.ADMIN)
    student = get_scoped(db, ctx, Student, student_id, "Student")
    profile = {
        "admission_year": admission_year,
        "date_of_birth": date_of_birth,
        "address": address,
        "emergency_contact": emergency_contact,
        "blood_group": blood_group,
        "nationality": nationality,
        "logo": logo,
    }
    core = (name, roll_number, email, student_class, section, guardian_name, guardian_email)
    if all(value is None for value in (*core, *profile.values())):
        raise ValidationError("Please provide at least one field to update")
    if (guardian_name is None) != (guardian_email is None):
        raise ValidationError("Guardian name and guardian email must be provided together")

    if email is not None:
        email = normalize_email(email)
        if scoped(db, ctx, Student).filter(Student.email == email, Student.id != student.id).first():
            raise Conflict("Email already in use")
        student.email = email
    if roll_number is not None:
        roll = normalize_name(roll_number, "Roll number")
        if scoped(db, ctx, Student).filter(Student.roll_number == roll, Student.id != student.id).first():
            raise Conflict("Roll number already taken")
        student.roll_number = roll
    if name is not None:
        student.name = normalize_name(name)

    if student_class is not None or section is not None:
        target_title = validate_class_title(student_class) if student_class is not None else student.student_class
        target_section = validate_section(section) if section is not None else student.section
        target = find_class(db, ctx, target_title, target_section)
        if target.id != student.class_id:
            # Roster membership, title and section move together in one row update.
            student.school_class = target
            student.student_class = target.class_title
            student.section = target.section

    if guardian_name is not None:
        guardian = find_guardian(db, ctx, normalize_name(guardian_name, "Guardian name"), normalize_email(guardian_email))
        student.guardian = guardian

    for field, value in profile.items():
        if value is not None:
            setattr(student, field, value)

    record_activity(db, ctx, f"Updated Student: {student.name}")
    commit_or_conflict(db, "Roll number or email already registered")
    db.refresh(student)
    return student


def get_student(db: Session, ctx: TenantContext, student_id: int) -> Student:
    ctx.require(UserRole.ADMIN)
    return get_scoped(db, ctx, Student, student_id, "Student")


def list_students(db: Session, ctx: TenantContext) -> list[Student]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, Student)
        .options(selectinload(Student.guardian))
        .order_by(Student.student_class, Student.section, Student.name)
        .all()
    )


def delete_student(db: Session, ctx: TenantContext, student_id: int) -> None:
    """Remove a student with their marks, attendance entries, vouchers and reports."""
    ctx.require(UserRole.ADMIN)
    student = get_scoped(db, ctx, Student, student_id, "Student")
    db.delete(student)
    record_activity(db, ctx, f"Deleted Student: {student.name}")
    commit_or_conflict(db, "Student is still referenced")
    logger.info(f"Deleted student {student_id} from institute {ctx.institute_id}")


# Classes


def create_class(db: Session, ctx: TenantContext, *, class_title, section: str, teacher_ref: str) -> SchoolClass:
    ctx.require(UserRole.ADMIN)
    class_title = validate_class_title(class_title)
    section = validate_section(section)

    existing = (
        scoped(db, ctx, SchoolClass)
        .filter(SchoolClass.class_title == class_title, SchoolClass.section == section)
        .first()
    )
    if existing:
        raise Conflict(f"Class({class_title}-{section}) already exists")

    teacher = find_teacher(db, ctx, teacher_ref)
    _ensure_free_for_homeroom(db, ctx, teacher, None)

    school_class = SchoolClass(institute_id=ctx.institute_id, class_title=class_title, section=section)
    school_class.class_teacher = teacher
    db.add(school_class)
    flush_or_conflict(db, "Class already exists or teacher already assigned to another class")
    teacher.class_teacher_of_id = school_class.id
    record_activity(db, ctx, f"Created Class: {class_title}-{section}", f"Class Teacher: {teacher.name}")
    commit_or_conflict(db, "Class already exists or teacher already assigned to another class")
    db.refresh(school_class)
    logger.info(f"Created class {class_title}-{section} with homeroom teacher {teacher.id}")
    return school_class


def reassign_class_teacher(db: Session, ctx: TenantContext, class_id: int, *, teacher_ref: str) -> SchoolClass:
    ctx.require(UserRole.ADMIN)
    school_class = get_scoped(db, ctx, SchoolClass, class_id, "Class")
    teacher = find_teacher(db, ctx, teacher_ref)
    if teacher.id == school_class.class_teacher_id and teacher.class_teacher_of_id == school_class.id:
        return school_class
    _ensure_free_for_homeroom(db, ctx, teacher, school_class.id)

    _link_homeroom(db, school_class, teacher)
    record_activity(
        db, ctx, f"Updated Class Teacher: {school_class.class_title}-{school_class.section}", f"Class Teacher: {teacher.name}"
    )
    commit_or_conflict(db, "Teacher already assigned to another class")
    db.refresh(school_class)
    logger.info(f"Class {school_class.id} homeroom teacher is now {teacher.id}")
    return school_class


def delete_class(db: Session, ctx: TenantContext, class_id: int) -> None:
    """Delete an empty class together with its subjects and attendance history."""
    ctx.require(UserRole.ADMIN)
    school_class = get_scoped(db, ctx, SchoolClass, class_id, "Class")
    if school_class.students:
        raise Conflict(
            f"Class {school_class.class_title}-{school_class.section} still has "
            f"{len(school_class.students)} student(s). Move them before deleting the class."
        )

    for record in scoped(db, ctx, Attendance).filter(Attendance.class_id == school_class.id).all():
        db.delete(record)
    teacher = school_class.class_teacher
    if teacher is not None and teacher.class_teacher_of_id == school_class.id:
        teacher.class_teacher_of_id = None
    label = f"{school_class.class_title}-{school_class.section}"
    db.delete(school_class)
    record_activity(db, ctx, f"Deleted Class: {label}")
    commit_or_conflict(db, "Class is still referenced")
    logger.info(f"Deleted class {label} from institute {ctx.institute_id}")


def list_classes(db: Session, ctx: TenantContext) -> list[SchoolClass]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, SchoolClass)
        .options(
            selectinload(SchoolClass.class_teacher),
            selectinload(SchoolClass.students),
            selectinload(SchoolClass.subjects).selectinload(Subject.subject_teacher),
        )
        .order_by(SchoolClass.class_title, SchoolClass.section)
        .all()
    )


# Subjects


def create_subject(
    db: Session, ctx: TenantContext, *, class_title, section: str, subject_name: str, teacher_ref: str
) -> Subject:
    ctx.require(UserRole.ADMIN)
    class_title = validate_class_title(class_title)
    section = validate_section(section)
    subject_name = validate_subject_name(subject_name)

    school_class = find_class(db, ctx, class_title, section)
    duplicate = (
        scoped(db, ctx, Subject)
        .filter(
            Subject.class_title == class_title,
            Subject.section == section,
            Subject.subject_name == subject_name,
        )
        .first()
    )
    if duplicate:
        raise Conflict(f"Subject({subject_name}) already exists for class {class_title}-{section}")
    teacher = find_teacher(db, ctx, teacher_ref)

    subject = Subject(
        institute_id=ctx.institute_id,
        class_title=class_title,
        section=section,
        subject_name=subject_name,
    )
    subject.school_class = school_class
    subject.subject_teacher = teacher
    db.add(subject)
    commit_or_conflict(db, f"Subject({subject_name}) already exists for class {class_title}-{section}")
    db.refresh(subject)
    return subject


def update_subject(
    db: Session,
    ctx: TenantContext,
    subject_id: int,
    *,
    subject_name: str | None = None,
    teacher_ref: str | None = None,
) -> Subject:
    """Rename a subject or change its teacher; its class and section never change."""
    ctx.require(UserRole.ADMIN)
    if subject_name is None and teacher_ref is None:
        raise ValidationError("Please provide at least one field to update")
    subject = get_scoped(db, ctx, Subject, subject_id, "Subject")

    if subject_name is not None:
        subject_name = validate_subject_name(subject_name)
        duplicate = (
            scoped(db, ctx, Subject)
            .filter(
                Subject.class_title == subject.class_title,
                Subject.section == subject.section,
                Subject.subject_name == subject_name,
                Subject.id != subject.id,
            )
            .first()
        )
        if duplicate:
            raise Conflict(
                f"Subject {subject_name} already exists in class {subject.class_title}-{subject.section}"
            )
        subject.subject_name = subject_name
    if teacher_ref is not None:
        subject.subject_teacher = find_teacher(db, ctx, teacher_ref)

    commit_or_conflict(db, "Subject already exists for this class")
    db.refresh(subject)
    return subject


def delete_subject(db: Session, ctx: TenantContext, subject_id: int) -> None:
    ctx.require(UserRole.ADMIN)
    subject = get_scoped(db, ctx, Subject, subject_id, "Subject")
    db.delete(subject)
    commit_or_conflict(db, "Subject is still referenced")


def list_subjects(db: Session, ctx: TenantContext) -> list[Subject]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, Subject)
        .options(selectinload(Subject.subject_teacher))
        .order_by(Subject.class_title, Subject.section, Subject.subject_name)
        .all()
    )


def student_subjects(db: Session, ctx: TenantContext) -> list[Subject]:
    if ctx.role != UserRole.STUDENT:
        raise Forbidden("Only students can view their subjects")
    student = get_scoped(db, ctx, Student, ctx.actor_id, "Student")
    return (
        scoped(db, ctx, Subject)
        .options(selectinload(Subject.subject_teacher))
        .filter(Subject.class_id == student.class_id)
        .order_by(Subject.subject_name)
        .all()
    )
