import json

import openpyxl
import pytest

from records_cli.commands.check.duplicate_marks import find_duplicate_marks
from records_cli.commands.db.import_json import import_json_dump, to_snake_case
from records_cli.commands.export.marks import export_course_marks
from records_cli.commands.update.course_dates import update_course_dates
from records_cli.commands.update.marks import update_marks_from_excel
from records_cli.ledger import get_mark_history, upsert_mark
from records_cli.models import (
    Claim,
    Course,
    Enrollment,
    Mark,
    StudentModuleAssignment,
    User,
)


def _write_workbook(path, rows):
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    for row in rows:
        worksheet.append(row)
    workbook.save(path)


def test_excel_import_records_marks_and_flags_rows(db, make_user, make_course, tmp_path):
    student = make_user()
    course = make_course()
    path = tmp_path / "marks.xlsx"
    _write_workbook(
        path,
        [
            ["StudentID", "CourseID", "CAT", "FAT", "Publish"],
            [student.id, course.id, 15, 45.5, "yes"],
            ["missing", course.id, 10, 10, "no"],
        ],
    )

    counts = update_marks_from_excel(db, str(path), changed_by="importer")

    assert counts == {"updated": 1, "skipped": 0, "errors": 1}
    mark = db.query(Mark).one()
    assert mark.total == 60.5
    assert mark.is_published is True
    assert get_mark_history(db, mark.id)[0].changed_by == "importer"

    sheet = openpyxl.load_workbook(path).active
    assert sheet.cell(row=1, column=6).value == "Status"
    assert sheet.cell(row=2, column=6).value == "done"
    assert sheet.cell(row=3, column=6).value is None

    again = update_marks_from_excel(db, str(path))
    assert again["skipped"] == 1
    assert again["updated"] == 0


def test_excel_import_requires_id_columns(db, tmp_path):
    path = tmp_path / "bad.xlsx"
    _write_workbook(path, [["Student", "CAT"], ["x", 1]])

    assert update_marks_from_excel(db, str(path)) == {
        "updated": 0,
        "skipped": 0,
        "errors": 0,
    }
    assert db.query(Mark).count() == 0


def test_export_course_marks(db, make_user, make_course, tmp_path):
    course = make_course("CS101")
    student = make_user("Thabo", reg_number="2024001")
    upsert_mark(db, student.id, course.id, {"cat": 20, "fat": 52}, True)

    path = export_course_marks(db, course.id, str(tmp_path))

    sheet = openpyxl.load_workbook(path).active
    header = [cell.value for cell in sheet[1]]
    row = dict(zip(header, [cell.value for cell in sheet[2]]))
    assert row["StudentID"] == student.id
    assert row["Reg Number"] == "2024001"
    assert row["Total"] == 72
    assert row["Grade"] == "A"
    assert row["Publish"] == "yes"


def test_export_without_marks_writes_nothing(db, make_course, tmp_path):
    course = make_course()
    assert export_course_marks(db, course.id, str(tmp_path)) is None
    assert list(tmp_path.iterdir()) == []


def test_update_course_dates(db, make_course):
    make_course("CS101", cohort_year="2024")
    make_course("CS101", cohort_year="2024")
    make_course("MA101")

    updated = update_course_dates(db, ["CS101"], "2025-07-01", "2025-11-30", "2025")

    assert updated == 2
    for course in db.query(Course).filter(Course.code == "CS101"):
        assert (course.start_date, course.end_date) == ("2025-07-01", "2025-11-30")
        assert course.cohort_year == "2025"
    assert db.query(Course).filter(Course.code == "MA101").one().end_date != "2025-11-30"


def test_update_course_dates_rejects_bad_range(db, make_course):
    make_course("CS101")
    with pytest.raises(SystemExit):
        update_course_dates(db, ["CS101"], "2025-07-01", "2025-01-01")


def test_no_duplicate_marks_under_the_unique_constraint(db, make_user, make_course):
    student = make_user()
    course = make_course()
    upsert_mark(db, student.id, course.id, {"cat": 1}, False)
    upsert_mark(db, student.id, course.id, {"cat": 2}, False)

    assert find_duplicate_marks(db) == []


@pytest.mark.parametrize(
    "key, expected",
    [
        ("cohortYear", "cohort_year"),
        ("individualAssignment", "individual_assignment"),
        ("isPublished", "is_published"),
        ("name", "name"),
    ],
)
def test_to_snake_case(key, expected):
    assert to_snake_case(key) == expected


def test_import_json_dump(db, tmp_path):
    dump = {
        "users": [
            {"id": "s1", "name": "Lerato", "role": "student", "intake": 9, "cohortYear": 2024},
            {"id": "l1", "name": "Dr Mokoena", "role": "lecturer", "email": "l1@example.com"},
        ],
        "courses": [
            {
                "id": "c1",
                "code": "CS101",
                "name": "Intro",
                "lecturerId": "l1",
                "claimsEnabled": True,
                "endDate": "2025-12-31",
            }
        ],
        "studentModules": [{"studentId": "s1", "moduleCode": "CS101", "academicYear": "2025"}],
        "enrollments": [
            {"id": "e1", "studentId": "s1", "courseId": "c1", "joinedAt": "2025-02-01T08:00:00Z"}
        ],
        "marks": [
            {
                "id": "m1",
                "studentId": "s1",
                "courseId": "c1",
                "cat": 10,
                "fat": "40",
                "individualAssignment": None,
                "isPublished": True,
                "total": 999,
            }
        ],
        "claims": [
            {
                "id": "claim_1",
                "studentId": "s1",
                "courseId": "c1",
                "markId": "m1",
                "assessmentType": "cat",
                "originalMark": 10,
                "explanation": "Re-check",
                "status": "pending",
                "unexpectedField": "ignored",
            }
        ],
    }
    path = tmp_path / "db.json"
    path.write_text(json.dumps(dump), encoding="utf-8")

    counts = import_json_dump(db, str(path))

    assert counts == {
        "users": 2,
        "courses": 1,
        "student_modules": 1,
        "enrollments": 1,
        "marks": 1,
        "claims": 1,
    }
    student = db.query(User).filter(User.id == "s1").one()
    assert (student.intake, student.cohort_year) == ("9", "2024")
    assert db.query(Course).one().claims_enabled is True
    assert db.query(StudentModuleAssignment).one().module_code == "CS101"
    assert db.query(Enrollment).one().joined_at > 0
    mark = db.query(Mark).one()
    assert (mark.fat, mark.individual_assignment, mark.total) == (40.0, 0.0, 50.0)
    assert db.query(Claim).one().status == "pending"

    # Re-importing the same dump updates in place.
    path.write_text(json.dumps({"users": [{"id": "s1", "name": "Lerato M"}]}), encoding="utf-8")
    import_json_dump(db, str(path))
    assert db.query(User).filter(User.id == "s1").one().name == "Lerato M"
    assert db.query(User).count() == 2


def test_import_json_dump_records_mark_history(db, make_user, make_course, tmp_path):
    student = make_user()
    course = make_course()
    mark = upsert_mark(db, student.id, course.id, {"cat": 12, "fat": 30}, True, "lecturer")
    path = tmp_path / "db.json"

    path.write_text(json.dumps({"marks": [{"id": mark.id, "cat": 40}]}), encoding="utf-8")
    import_json_dump(db, str(path))

    db.refresh(mark)
    assert (mark.cat, mark.fat, mark.total) == (40.0, 30.0, 70.0)
    history = get_mark_history(db, mark.id)
    assert len(history) == 2
    assert history[0].change_reason == "Update"
    assert history[0].changed_by == "import"
    assert history[0].old_values["cat"] == 12.0
    assert history[0].new_values["cat"] == 40.0

    # The same values again change nothing and add no entry.
    import_json_dump(db, str(path))
    assert len(get_mark_history(db, mark.id)) == 2


def test_import_json_dump_creates_marks_with_history(db, make_user, make_course, tmp_path):
    student = make_user()
    course = make_course()
    dump = {"marks": [{"id": "m9", "studentId": student.id, "courseId": course.id, "quiz": 7}]}
    path = tmp_path / "db.json"
    path.write_text(json.dumps(dump), encoding="utf-8")

    import_json_dump(db, str(path))

    history = get_mark_history(db, "m9")
    assert [entry.change_reason for entry in history] == ["Creation"]
    assert history[0].old_values is None
    assert history[0].new_values["total"] == 7.0
