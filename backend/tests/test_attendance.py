from datetime import date, datetime

import pytest

from conftest import PASSWORD
from school_module import attendance, roster
from school_module.accounts import context_for
from school_module.errors import Conflict, Forbidden, NotFound, ValidationError
from school_module.models import Attendance, AttendanceEntry, AttendanceStatus


def _second_student(db, school):
    return roster.register_student(
        db,
        school.admin_ctx,
        name="Hiba Noor",
        roll_number="R-2",
        email="hiba@greenfield.edu",
        password=PASSWORD,
        guardian_name="Nadia Ali",
        guardian_email="nadia@greenfield.edu",
        student_class=5,
        section="A",
    )


def test_parse_day_and_bounds():
    assert attendance.parse_day("2024-03-05") == datetime(2024, 3, 5)
    assert attendance.parse_day("2024-03-05T10:30:00Z") == datetime(2024, 3, 5, 10, 30)
    assert attendance.parse_day(date(2024, 3, 5)) == datetime(2024, 3, 5)
    with pytest.raises(ValidationError):
        attendance.parse_day("5th of March")

    start, end = attendance.day_bounds(datetime(2024, 3, 5, 14, 0))
    assert start == datetime(2024, 3, 5, 0, 0, 0)
    assert end == datetime(2024, 3, 5, 23, 59, 59, 999000)


def test_mark_attendance_records_whole_roster(db, school):
    hiba = _second_student(db, school)
    record = attendance.mark_attendance(
        db,
        school.teacher_ctx,
        class_id=school.school_class.id,
        day="2024-03-05",
        entries=[
            {"student_id": school.student.id, "status": "present"},
            {"student_id": hiba.id, "status": "absent"},
        ],
    )
    assert record.day == date(2024, 3, 5)
    assert {(e.student_id, e.status) for e in record.entries} == {
        (school.student.id, AttendanceStatus.PRESENT),
        (hiba.id, AttendanceStatus.ABSENT),
    }


def test_second_submission_for_same_day_conflicts(db, school):
    entries = [{"student_id": school.student.id, "status": "present"}]
    attendance.mark_attendance(db, school.teacher_ctx, class_id=school.school_class.id, day="2024-03-05", entries=entries)

    with pytest.raises(Conflict) as exc:
        attendance.mark_attendance(
            db, school.teacher_ctx, class_id=school.school_class.id, day="2024-03-05T16:00:00", entries=entries
        )
    assert exc.value.message == "Attendance already recorded for this date"
    assert db.query(Attendance).count() == 1

    attendance.mark_attendance(db, school.teacher_ctx, class_id=school.school_class.id, day="2024-03-06", entries=entries)
    assert db.query(Attendance).count() == 2


def test_unique_constraint_backs_up_the_existence_check(db, school, monkeypatch):
    entries = [{"student_id": school.student.id, "status": "present"}]
    attendance.mark_attendance(db, school.teacher_ctx, class_id=school.school_class.id, day="2024-03-05", entries=entries)

    # Simulate a concurrent writer that passed the check before the first commit.
    monkeypatch.setattr(attendance, "_existing_record", lambda *args, **kwargs: None)
    with pytest.raises(Conflict):
        attendance.mark_attendance(
            db, school.teacher_ctx, class_id=school.school_class.id, day="2024-03-05", entries=entries
        )
    assert db.query(Attendance).count() == 1
    assert db.query(AttendanceEntry).count() == 1


def test_rejects_bad_entries(db, school, rival_school):
    class_id = school.school_class.id
    with pytest.raises(ValidationError):
        attendance.mark_attendance(db, school.teacher_ctx, class_id=class_id, day=None, entries=[])
    with pytest.raises(ValidationError):
        attendance.mark_attendance(
            db,
            school.teacher_ctx,
            class_id=class_id,
            day=None,
            entries=[{"student_id": school.student.id, "status": "late"}],
        )
    with pytest.raises(ValidationError):
        attendance.mark_attendance(
            db,
            school.teacher_ctx,
            class_id=class_id,
            day=None,
            entries=[
                {"student_id": school.student.id, "status": "present"},
                {"student_id": school.student.id, "status": "absent"},
            ],
        )
    with pytest.raises(ValidationError):
        attendance.mark_attendance(
            db,
            school.teacher_ctx,
            class_id=class_id,
            day=None,
            entries=[{"student_id": rival_school.student.id, "status": "present"}],
        )
    assert db.query(Attendance).count() == 0


def test_entries_missing_fields_reject_the_whole_batch(db, school):
    class_id = school.school_class.id
    for entries in (
        [{"student_id": school.student.id}],
        [{"status": "present"}],
        [{"student_id": "abc", "status": "present"}],
    ):
        with pytest.raises(ValidationError):
            attendance.mark_attendance(db, school.teacher_ctx, class_id=class_id, day="2024-03-05", entries=entries)
    assert db.query(Attendance).count() == 0


def test_only_the_homeroom_teacher_marks(db, school, rival_school):
    entries = [{"student_id": school.student.id, "status": "present"}]
    with pytest.raises(Forbidden):
        attendance.mark_attendance(
            db, school.other_teacher_ctx, class_id=school.school_class.id, day=None, entries=entries
        )
    with pytest.raises(Forbidden):
        attendance.mark_attendance(db, school.admin_ctx, class_id=school.school_class.id, day=None, entries=entries)
    with pytest.raises(NotFound):
        attendance.mark_attendance(
            db, school.teacher_ctx, class_id=rival_school.school_class.id, day=None, entries=entries
        )


def test_unmarked_students_and_history(db, school):
    hiba = _second_student(db, school)
    class_id = school.school_class.id
    assert attendance.has_unmarked_students(db, school.teacher_ctx, class_id, "2024-03-05") is True

    attendance.mark_attendance(
        db,
        school.teacher_ctx,
        class_id=class_id,
        day="2024-03-05",
        entries=[{"student_id": school.student.id, "status": "present"}],
    )
    assert attendance.has_unmarked_students(db, school.teacher_ctx, class_id, "2024-03-05") is True

    attendance.mark_attendance(
        db,
        school.teacher_ctx,
        class_id=class_id,
        day="2024-03-06",
        entries=[
            {"student_id": school.student.id, "status": "absent"},
            {"student_id": hiba.id, "status": "present"},
        ],
    )
    assert attendance.has_unmarked_students(db, school.teacher_ctx, class_id, "2024-03-06") is False

    history = attendance.attendance_history(db, school.teacher_ctx, class_id)
    assert [record.day for record, _ in history] == [date(2024, 3, 6), date(2024, 3, 5)]

    only_hiba = attendance.attendance_history(db, school.teacher_ctx, class_id, student_id=hiba.id)
    assert len(only_hiba) == 1
    assert [entry.student_id for entry in only_hiba[0][1]] == [hiba.id]

    one_day = attendance.attendance_history(db, school.teacher_ctx, class_id, day="2024-03-05")
    assert len(one_day) == 1


def test_student_and_parent_see_own_attendance(db, school):
    attendance.mark_attendance(
        db,
        school.teacher_ctx,
        class_id=school.school_class.id,
        day="2024-03-05",
        entries=[{"student_id": school.student.id, "status": "absent"}],
    )
    own = attendance.student_attendance(db, school.student_ctx, school.student.id)
    assert [entry.status for entry in own] == [AttendanceStatus.ABSENT]
    assert len(attendance.student_attendance(db, school.parent_ctx, school.student.id)) == 1

    hiba = _second_student(db, school)
    with pytest.raises(Forbidden):
        attendance.student_attendance(db, context_for(hiba), school.student.id)
    assert len(attendance.institute_attendance(db, school.admin_ctx)) == 1