"""Shared fixtures: an in-memory database and small record factories."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from records_cli.models import (
    Base,
    Course,
    Enrollment,
    Mark,
    StudentModuleAssignment,
    User,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)
FUTURE = "2025-12-31"
PAST = "2024-12-31"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make_user(name="Student", role="student", **fields):
        user = User(name=name, role=role, **fields)
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def make_course(db):
    def _make_course(code="CS101", name=None, **fields):
        fields.setdefault("start_date", "2025-01-15")
        fields.setdefault("end_date", FUTURE)
        course = Course(code=code, name=name or f"{code} course", **fields)
        db.add(course)
        db.commit()
        return course

    return _make_course


@pytest.fixture
def add_sheet_entry(db):
    def _add(student, module_code, academic_year=None):
        entry = StudentModuleAssignment(
            student_id=student.id, module_code=module_code, academic_year=academic_year
        )
        db.add(entry)
        db.commit()
        return entry

    return _add


@pytest.fixture
def enroll(db):
    def _enroll(student, course):
        enrollment = Enrollment(student_id=student.id, course_id=course.id)
        db.add(enrollment)
        db.commit()
        return enrollment

    return _enroll


@pytest.fixture
def make_mark(db):
    """Insert a mark directly, bypassing the ledger and its history."""

    def _make_mark(student, course, total, is_published=True, **components):
        mark = Mark(
            student_id=student.id,
            course_id=course.id,
            total=total,
            is_published=is_published,
            **components,
        )
        db.add(mark)
        db.commit()
        return mark

    return _make_mark
