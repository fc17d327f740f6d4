"""Tenant context and institute-scoped lookups.

Every service receives a :class:`TenantContext` explicitly; nothing reads the acting
institute from ambient state. Lookups here always filter by ``institute_id`` before the
row is used, and a row owned by another institute is reported exactly like a missing one.
"""
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from .errors import Forbidden, NotFound
from .models import Parent, SchoolClass, Student, Subject, Teacher, UserRole


T = TypeVar("T")


@dataclass(frozen=True)
class TenantContext:
    institute_id: int
    actor_id: int
    role: UserRole

    def require(self, *roles: UserRole) -> None:
        if self.role not in roles:
            raise Forbidden("You do not have permission to perform this action")


def scoped(db: Session, ctx: TenantContext, model: type[T]) -> Query:
    return db.query(model).filter(model.institute_id == ctx.institute_id)


def get_scoped(db: Session, ctx: TenantContext, model: type[T], entity_id: int, label: str) -> T:
    entity = scoped(db, ctx, model).filter(model.id == entity_id).first()
    if not entity:
        raise NotFound(f"{label} not found")
    return entity


def find_teacher(db: Session, ctx: TenantContext, reference: str) -> Teacher:
    """Resolve a teacher by teacher id or name.

    Both fields are matched with OR in a single query. When two different teachers each
    match one field the lowest primary key wins.
    """
    ref = (reference or "").strip().lower()
    teacher = (
        scoped(db, ctx, Teacher)
        .filter(or_(Teacher.teacher_code == ref, Teacher.name == ref))
        .order_by(Teacher.id)
        .first()
    )
    if not teacher:
        raise NotFound("Teacher not found")
    return teacher


def find_class(db: Session, ctx: TenantContext, class_title: int, section: str) -> SchoolClass:
    school_class = (
        scoped(db, ctx, SchoolClass)
        .filter(SchoolClass.class_title == class_title, SchoolClass.section == section)
        .first()
    )
    if not school_class:
        raise NotFound("Class not found")
    return school_class


def find_guardian(db: Session, ctx: TenantContext, name: str, email: str) -> Parent:
    parent = scoped(db, ctx, Parent).filter(Parent.name == name, Parent.email == email).first()
    if not parent:
        raise NotFound("Parent not found")
    return parent


def find_subject(db: Session, ctx: TenantContext, school_class: SchoolClass, subject_name: str) -> Subject:
    subject = (
        scoped(db, ctx, Subject)
        .filter(Subject.class_id == school_class.id, Subject.subject_name == subject_name)
        .first()
    )
    if not subject:
        raise NotFound("Subject not found for this class")
    return subject


def find_student_by_roll(db: Session, ctx: TenantContext, roll_number: str) -> Student:
    roll = (roll_number or "").strip().lower()
    student = scoped(db, ctx, Student).filter(Student.roll_number == roll).first()
    if not student:
        raise NotFound("Student not found")
    return student


def visible_student(db: Session, ctx: TenantContext, student_id: int) -> Student:
    """Return a student the actor may read: themself, one of their children, or any for admins."""
    student = get_scoped(db, ctx, Student, student_id, "Student")
    if ctx.role == UserRole.ADMIN:
        return student
    if ctx.role == UserRole.STUDENT and student.id == ctx.actor_id:
        return student
    if ctx.role == UserRole.PARENT and student.guardian_id == ctx.actor_id:
        return student
    raise Forbidden("You can only view your own records")


def homeroom_of(db: Session, ctx: TenantContext, teacher_id: int) -> SchoolClass | None:
    return scoped(db, ctx, SchoolClass).filter(SchoolClass.class_teacher_id == teacher_id).first()
