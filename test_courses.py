from datetime import datetime, timezone

import pytest

from conftest import NOW, PAST
from records_cli.courses import (
    course_status,
    create_course,
    delete_course,
    is_course_active,
    list_courses,
    parse_course_date,
    set_claims_enabled,
    split_active_completed,
    update_course,
)
from records_cli.errors import NotFoundError, ValidationError
from records_cli.ledger import upsert_mark
from records_cli.models import Course


def test_parse_course_date():
    assert parse_course_date("2025-06-30") == datetime(2025, 6, 30)
    assert parse_course_date("") is None
    assert parse_course_date(None) is None
    assert parse_course_date("30/06/2025") is None


def test_offset_dates_are_read_as_naive_local_time(make_course):
    parsed = parse_course_date("2025-06-30T08:00:00+02:00")
    assert parsed.tzinfo is None
    assert parsed == datetime(2025, 6, 30, 6, 0, tzinfo=timezone.utc).astimezone().replace(
        tzinfo=None
    )

    course = make_course(start_date="2024-01-01T00:00:00+00:00", end_date="2099-12-31T00:00:00+00:00")
    assert is_course_active(course, NOW)
    assert course_status(course, NOW) == "Ongoing"


def test_course_status_and_activity(make_course):
    upcoming = make_course("A", start_date="2025-06-01", end_date="2025-09-01")
    ongoing = make_course("B", start_date="2025-01-01", end_date="2025-06-01")
    done = make_course("C", start_date="2024-01-01", end_date=PAST)
    undated = make_course("D", start_date=None, end_date=None)

    assert course_status(upcoming, NOW) == "Upcoming"
    assert course_status(ongoing, NOW) == "Ongoing"
    assert course_status(done, NOW) == "Done"
    assert course_status(undated, NOW) == "Unknown"

    assert is_course_active(undated, NOW)
    assert not is_course_active(done, NOW)
    active, completed = split_active_completed([upcoming, ongoing, done, undated], NOW)
    assert [c.code for c in active] == ["A", "B", "D"]
    assert [c.code for c in completed] == ["C"]


def test_malformed_end_date_counts_as_active(make_course):
    course = make_course(end_date="someday")
    assert is_course_active(course, NOW)
    assert course_status(course, NOW) == "Unknown"


def test_create_course_validates(db, make_user):
    lecturer = make_user("Lecturer", role="lecturer")

    course = create_course(
        db, " CS101 ", "Intro", lecturer.id, lecturer_id=lecturer.id, intake="9", cohort_year="2025"
    )
    assert course.code == "CS101"
    assert course.claims_enabled is False

    with pytest.raises(ValidationError):
        create_course(db, "", "Nameless code", lecturer.id)
    with pytest.raises(ValidationError):
        create_course(
            db, "CS102", "Backwards", lecturer.id, start_date="2025-06-01", end_date="2025-01-01"
        )
    with pytest.raises(ValidationError):
        create_course(db, "CS103", "Bad date", lecturer.id, end_date="June")
    with pytest.raises(NotFoundError):
        create_course(db, "CS104", "Ghost lecturer", lecturer.id, lecturer_id="missing")


def test_only_staff_may_create_courses(db, make_user):
    student = make_user("Student")
    hod = make_user("Head", role="hod")

    with pytest.raises(ValidationError):
        create_course(db, "CS101", "Intro", student.id)
    with pytest.raises(NotFoundError):
        create_course(db, "CS101", "Intro", "nobody")
    assert db.query(Course).count() == 0

    assert create_course(db, "CS101", "Intro", hod.id).code == "CS101"


def test_only_owner_or_hod_may_manage(db, make_user, make_course):
    owner = make_user("Owner", role="lecturer")
    stranger = make_user("Stranger", role="lecturer")
    hod = make_user("Head", role="hod")
    course = make_course(lecturer_id=owner.id)

    with pytest.raises(ValidationError):
        update_course(db, course.id, stranger.id, {"name": "Hijacked"})

    assert update_course(db, course.id, owner.id, {"name": "Renamed"}).name == "Renamed"
    assert set_claims_enabled(db, course.id, hod.id, True).claims_enabled is True
    with pytest.raises(ValidationError):
        update_course(db, course.id, owner.id, {"id": "other"})


def test_list_courses_by_lecturer(make_user, make_course, db):
    lecturer = make_user("Lecturer", role="lecturer")
    make_course("CS2", lecturer_id=lecturer.id)
    make_course("CS1", lecturer_id=lecturer.id)
    make_course("MA1")

    assert [c.code for c in list_courses(db, lecturer.id)] == ["CS1", "CS2"]
    assert len(list_courses(db)) == 3


def test_delete_course_refuses_when_marks_exist(db, make_user, make_course):
    hod = make_user("Head", role="hod")
    student = make_user()
    graded = make_course("CS101")
    empty = make_course("CS102")
    upsert_mark(db, student.id, graded.id, {"cat": 5}, False)

    with pytest.raises(ValidationError):
        delete_course(db, graded.id, hod.id)

    delete_course(db, empty.id, hod.id)
    assert [c.code for c in db.query(Course).all()] == ["CS101"]
