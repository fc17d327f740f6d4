import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .accounts import SessionActor
from .database import commit_or_conflict, flush_or_conflict
from .errors import Forbidden, NotFound, ValidationError
from .models import (
    ActivityLog,
    Admin,
    Announcement,
    Audience,
    Parent,
    Report,
    ReportComment,
    ReportStatus,
    ReportType,
    Student,
    Teacher,
    UserRole,
)
from .tenancy import TenantContext, get_scoped, scoped


logger = logging.getLogger(__name__)

ACTIVITY_LOG_LIMIT = 10

# Recipient group -> audiences that reach it.
AUDIENCE_GROUPS = {
    "teachers": {Audience.TEACHERS, Audience.ALL, Audience.TEACHERS_PARENTS},
    "students": {Audience.STUDENTS, Audience.ALL, Audience.STUDENTS_PARENTS},
    "parents": {Audience.PARENTS, Audience.ALL, Audience.STUDENTS_PARENTS, Audience.TEACHERS_PARENTS},
}
GROUP_MODELS = {"teachers": Teacher, "students": Student, "parents": Parent}


def record_activity(db: Session, ctx: TenantContext, action: str, details: str | None = None) -> ActivityLog:
    """Stage an audit entry in the caller's unit of work."""
    entry = ActivityLog(institute_id=ctx.institute_id, action=action, details=details)
    db.add(entry)
    return entry


def recent_activity(db: Session, ctx: TenantContext) -> list[ActivityLog]:
    ctx.require(UserRole.ADMIN)
    return (
        scoped(db, ctx, ActivityLog)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(ACTIVITY_LOG_LIMIT)
        .all()
    )


def _parse_audience(value) -> Audience:
    try:
        return Audience(value)
    except ValueError:
        raise ValidationError("Invalid audience type specified") from None


def recipient_models(audience: Audience) -> list:
    return [GROUP_MODELS[group] for group, audiences in AUDIENCE_GROUPS.items() if audience in audiences]


def _fan_out(db: Session, ctx: TenantContext, audience: Audience) -> None:
    for model in recipient_models(audience):
        db.query(model).filter(model.institute_id == ctx.institute_id).update(
            {model.unread_count: model.unread_count + 1}, synchronize_session=False
        )


def create_announcement(db: Session, ctx: TenantContext, *, title: str, message: str, audience) -> Announcement:
    ctx.require(UserRole.ADMIN)
    title = (title or "").strip()
    message = (message or "").strip()
    if not title or not message:
        raise ValidationError("Title, message, and audience are required")
    audience = _parse_audience(audience)

    announcement = Announcement(institute_id=ctx.institute_id, title=title, message=message, audience=audience)
    db.add(announcement)
    record_activity(db, ctx, f"Announcement Created for: {audience.value}")
    flush_or_conflict(db, "Could not create announcement")

    # Counters are best effort: a failed increment is logged, the announcement still stands.
    try:
        with db.begin_nested():
            _fan_out(db, ctx, audience)
    except SQLAlchemyError:
        logger.exception(f"Unread counter fan-out failed for announcement {announcement.id}")

    commit_or_conflict(db, "Could not create announcement")
    db.refresh(announcement)
    logger.info(f"Announcement {announcement.id} sent to {audience.value} in institute {ctx.institute_id}")
    return announcement


def list_announcements(db: Session, ctx: TenantContext) -> list[Announcement]:
    ctx.require(UserRole.ADMIN)
    return scoped(db, ctx, Announcement).order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()


def announcements_for_role(db: Session, ctx: TenantContext, group: str) -> list[Announcement]:
    if group not in AUDIENCE_GROUPS:
        raise ValidationError("Invalid role specified")
    return (
        scoped(db, ctx, Announcement)
        .filter(Announcement.audience.in_(AUDIENCE_GROUPS[group]))
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .all()
    )


def submit_report(db: Session, ctx: TenantContext, *, student_id: int, report_type, description: str) -> Report:
    ctx.require(UserRole.PARENT)
    try:
        kind = ReportType(report_type)
    except ValueError:
        raise ValidationError("Invalid report type") from None
    description = (description or "").strip()
    if not description:
        raise ValidationError("Description is required")

    student = get_scoped(db, ctx, Student, student_id, "Student")
    if student.guardian_id != ctx.actor_id:
        raise Forbidden("You can only report on your own children")

    report = Report(
        institute_id=ctx.institute_id,
        parent_id=ctx.actor_id,
        student=student,
        report_type=kind,
        description=description,
    )
    db.add(report)
    db.query(Admin).filter(Admin.id == ctx.institute_id).update(
        {Admin.unread_count: Admin.unread_count + 1}, synchronize_session=False
    )
    commit_or_conflict(db, "Could not submit report")
    db.refresh(report)
    logger.info(f"Parent {ctx.actor_id} submitted {kind.value} report {report.id}")
    return report


def list_reports(db: Session, ctx: TenantContext) -> list[Report]:
    ctx.require(UserRole.ADMIN)
    return scoped(db, ctx, Report).order_by(Report.created_at.desc(), Report.id.desc()).all()


def parent_reports(db: Session, ctx: TenantContext) -> list[Report]:
    ctx.require(UserRole.PARENT)
    return (
        scoped(db, ctx, Report)
        .filter(Report.parent_id == ctx.actor_id)
        .order_by(Report.created_at.desc(), Report.id.desc())
        .all()
    )


def report_comments(db: Session, ctx: TenantContext, report_id: int) -> list[ReportComment]:
    ctx.require(UserRole.ADMIN, UserRole.PARENT)
    report = get_scoped(db, ctx, Report, report_id, "Report")
    if ctx.role == UserRole.PARENT and report.parent_id != ctx.actor_id:
        raise NotFound("Report not found")
    return list(report.comments)


def add_comment_to_report(db: Session, ctx: TenantContext, report_id: int, *, message: str) -> Report:
    """Append an admin comment and resolve the report, even if it was already resolved."""
    ctx.require(UserRole.ADMIN)
    text = (message or "").strip()
    if not text:
        raise ValidationError("Comment message is required")

    report = get_scoped(db, ctx, Report, report_id, "Report")
    report.comments.append(ReportComment(admin_id=ctx.actor_id, text=text))
    report.status = ReportStatus.RESOLVED
    db.query(Parent).filter(Parent.id == report.parent_id, Parent.institute_id == ctx.institute_id).update(
        {Parent.report_comments_count: Parent.report_comments_count + 1}, synchronize_session=False
    )
    commit_or_conflict(db, "Could not add comment")
    db.refresh(report)
    return report


def unread_count(actor: SessionActor) -> int:
    return actor.account.unread_count


def reset_unread(db: Session, actor: SessionActor) -> int:
    actor.account.unread_count = 0
    commit_or_conflict(db, "Could not reset counter")
    return 0


def report_comments_count(actor: SessionActor) -> int:
    actor.context.require(UserRole.PARENT, UserRole.ADMIN)
    return actor.account.report_comments_count


def reset_report_comments(db: Session, actor: SessionActor) -> int:
    actor.context.require(UserRole.PARENT, UserRole.ADMIN)
    actor.account.report_comments_count = 0
    commit_or_conflict(db, "Could not reset counter")
    return 0
