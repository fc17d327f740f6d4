import pytest

from conftest import PASSWORD
from school_module import notices, roster
from school_module.accounts import SessionActor, context_for
from school_module.errors import Forbidden, NotFound, ValidationError
from school_module.models import Admin, Parent, ReportStatus, Student, Teacher


def _actor(account):
    return SessionActor(account=account, role=account.role, context=context_for(account))


def _counters(db, model):
    db.expire_all()
    return sorted(row.unread_count for row in db.query(model).all())


def test_announcement_reaches_students_and_parents(db, school, rival_school):
    notices.create_announcement(
        db, school.admin_ctx, title="Sports day", message="Friday at 9am", audience="students_parents"
    )

    db.expire_all()
    assert db.get(Student, school.student.id).unread_count == 1
    assert db.get(Parent, school.parent.id).unread_count == 1
    assert db.get(Teacher, school.teacher.id).unread_count == 0
    assert db.get(Admin, school.admin.id).unread_count == 0
    assert db.get(Student, rival_school.student.id).unread_count == 0


def test_announcement_for_everyone(db, school):
    notices.create_announcement(db, school.admin_ctx, title="Holiday", message="Closed Monday", audience="all")
    notices.create_announcement(db, school.admin_ctx, title="Staff", message="Meeting", audience="teachers")

    assert _counters(db, Teacher) == [2, 2]
    assert _counters(db, Student) == [1]
    assert _counters(db, Parent) == [1]


def test_announcement_validation_and_permissions(db, school):
    with pytest.raises(ValidationError):
        notices.create_announcement(db, school.admin_ctx, title="Oops", message="x", audience="everyone")
    with pytest.raises(ValidationError):
        notices.create_announcement(db, school.admin_ctx, title=" ", message="x", audience="all")
    with pytest.raises(Forbidden):
        notices.create_announcement(db, school.teacher_ctx, title="Hi", message="x", audience="all")


def test_announcements_for_role(db, school):
    notices.create_announcement(db, school.admin_ctx, title="A", message="all", audience="all")
    notices.create_announcement(db, school.admin_ctx, title="B", message="teachers", audience="teachers")
    notices.create_announcement(db, school.admin_ctx, title="C", message="tp", audience="teachers_parents")

    assert {a.title for a in notices.announcements_for_role(db, school.parent_ctx, "parents")} == {"A", "C"}
    assert {a.title for a in notices.announcements_for_role(db, school.teacher_ctx, "teachers")} == {"A", "B", "C"}
    assert {a.title for a in notices.announcements_for_role(db, school.student_ctx, "students")} == {"A"}
    with pytest.raises(ValidationError):
        notices.announcements_for_role(db, school.student_ctx, "admins")

    actions = [entry.action for entry in notices.recent_activity(db, school.admin_ctx)]
    assert actions[0] == "Announcement Created for: teachers_parents"


def test_unread_counter_reset(db, school):
    notices.create_announcement(db, school.admin_ctx, title="A", message="all", audience="all")
    db.expire_all()
    actor = _actor(db.get(Student, school.student.id))
    assert notices.unread_count(actor) == 1
    assert notices.reset_unread(db, actor) == 0
    db.expire_all()
    assert db.get(Student, school.student.id).unread_count == 0


def test_report_comment_resolves_and_notifies_parent(db, school):
    report = notices.submit_report(
        db, school.parent_ctx, student_id=school.student.id, report_type="academic", description="Needs help in maths"
    )
    assert report.status == ReportStatus.PENDING
    db.expire_all()
    assert db.get(Admin, school.admin.id).unread_count == 1

    resolved = notices.add_comment_to_report(db, school.admin_ctx, report.id, message="Extra class on Tuesday")
    assert resolved.status == ReportStatus.RESOLVED
    assert [c.text for c in resolved.comments] == ["Extra class on Tuesday"]

    notices.add_comment_to_report(db, school.admin_ctx, report.id, message="Follow up next week")
    db.expire_all()
    parent = db.get(Parent, school.parent.id)
    assert parent.report_comments_count == 2

    actor = _actor(parent)
    assert notices.report_comments_count(actor) == 2
    assert notices.reset_report_comments(db, actor) == 0
    assert [c.text for c in notices.report_comments(db, school.parent_ctx, report.id)] == [
        "Extra class on Tuesday",
        "Follow up next week",
    ]


def test_reports_are_private_to_their_parent(db, school):
    other_parent = roster.register_parent(
        db, school.admin_ctx, name="Bilal Shah", email="bilal@greenfield.edu", password=PASSWORD
    )
    other_ctx = context_for(other_parent)

    with pytest.raises(Forbidden):
        notices.submit_report(
            db, other_ctx, student_id=school.student.id, report_type="behavioral", description="Not my child"
        )
    report = notices.submit_report(
        db, school.parent_ctx, student_id=school.student.id, report_type="other", description="Bus timing"
    )
    with pytest.raises(NotFound):
        notices.report_comments(db, other_ctx, report.id)
    assert notices.parent_reports(db, other_ctx) == []
    assert [r.id for r in notices.parent_reports(db, school.parent_ctx)] == [report.id]
    assert [r.id for r in notices.list_reports(db, school.admin_ctx)] == [report.id]


def test_report_input_is_validated(db, school):
    with pytest.raises(ValidationError):
        notices.submit_report(db, school.parent_ctx, student_id=school.student.id, report_type="gossip", description="x")
    with pytest.raises(ValidationError):
        notices.submit_report(db, school.parent_ctx, student_id=school.student.id, report_type="other", description="")
    with pytest.raises(Forbidden):
        notices.submit_report(db, school.admin_ctx, student_id=school.student.id, report_type="other", description="x")


def test_activity_log_keeps_latest_ten(db, school):
    for number in range(12):
        notices.create_announcement(db, school.admin_ctx, title=f"N{number}", message="m", audience="teachers")
    entries = notices.recent_activity(db, school.admin_ctx)
    assert len(entries) == 10
    with pytest.raises(Forbidden):
        notices.recent_activity(db, school.teacher_ctx)
