"""
Enrollment admission: single active course per student, administrative
override and group (bulk) enrollment.

The active-course check runs before the insert and is only a fast path;
the unique (student_id, course_id) constraint on enrollments is what keeps
concurrent joins from producing duplicates.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.courses import get_course, is_course_active
from records_cli.errors import (
    CapacityError,
    NotFoundError,
    RecordsError,
    ValidationError,
)
from records_cli.models import Course, Enrollment, StudentModuleAssignment, User, UserRole
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_GROUP = "Unknown"
GROUP_SEPARATOR = "|"

OVERRIDE_ROLES: Tuple[UserRole, ...] = ("hod",)


@dataclass
class EnrollmentResult:
    enrollment: Enrollment
    created: bool
    message: str


@dataclass
class BulkEnrollmentReport:
    course_id: str
    group_key: str
    enrolled: List[str] = field(default_factory=list)
    already_enrolled: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.enrolled) + len(self.already_enrolled)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def _find_enrollment(
    db: Session, student_id: str, course_id: str
) -> Optional[Enrollment]:
    return (
        db.query(Enrollment)
        .filter(Enrollment.student_id == student_id, Enrollment.course_id == course_id)
        .first()
    )


def get_active_enrollments(
    db: Session, student_id: str, now: Optional[datetime] = None
) -> List[Enrollment]:
    """Enrollments of a student whose course has no end date or ends in the future."""
    enrollments = (
        db.query(Enrollment)
        .join(Course, Enrollment.course_id == Course.id)
        .filter(Enrollment.student_id == student_id)
        .all()
    )
    return [e for e in enrollments if is_course_active(e.course, now)]


def request_enrollment(
    db: Session,
    student_id: str,
    course_id: str,
    acting_role: UserRole = "student",
    override: bool = False,
    now: Optional[datetime] = None,
) -> EnrollmentResult:
    """
    Enroll a student in a course.

    Joining a course twice returns the existing enrollment. Otherwise a student
    holding another active enrollment is refused unless the caller explicitly
    asks for an override and acts as head of department.

    Args:
        db: Database session
        student_id: Student to enroll
        course_id: Course to join
        acting_role: Role of the user performing the request
        override: Skip the single-active-course rule (head of department only)
        now: Reference time for deciding whether a course is still active

    Returns:
        EnrollmentResult with created=False when the student was already enrolled

    Raises:
        NotFoundError: Unknown student or course
        ValidationError: Target is not a student, or override requested without authority
        CapacityError: Student already holds an active enrollment
    """
    student = db.query(User).filter(User.id == student_id).first()
    if not student:
        raise NotFoundError(f"Student {student_id} not found")
    if student.role != "student":
        raise ValidationError(f"User {student_id} is not a student")
    course = get_course(db, course_id)

    existing = _find_enrollment(db, student_id, course_id)
    if existing:
        return EnrollmentResult(
            enrollment=existing,
            created=False,
            message=f"{student.name} is already enrolled in {course.code}",
        )

    if override and acting_role not in OVERRIDE_ROLES:
        raise ValidationError(
            f"Role '{acting_role}' is not allowed to override the active course rule"
        )

    active = [
        e for e in get_active_enrollments(db, student_id, now) if e.course_id != course_id
    ]
    if active and not override:
        codes = ", ".join(e.course.code for e in active)
        raise CapacityError(
            f"{student.name} is already enrolled in an active course ({codes}) "
            "and must complete it before joining another"
        )
    if active:
        logger.info(
            f"Override: enrolling {student_id} in {course.code} despite active enrollment(s)"
        )

    joined_at = int((now or datetime.now()).timestamp())
    enrollment = Enrollment(student_id=student_id, course_id=course_id, joined_at=joined_at)
    db.add(enrollment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_enrollment(db, student_id, course_id)
        if existing is None:
            raise
        logger.info(f"Concurrent join detected for {student_id} in {course_id}")
        return EnrollmentResult(
            enrollment=existing,
            created=False,
            message=f"{student.name} is already enrolled in {course.code}",
        )

    logger.info(f"Enrolled {student_id} in {course.code} ({course_id})")
    return EnrollmentResult(
        enrollment=enrollment,
        created=True,
        message=f"{student.name} joined {course.code}",
    )


def remove_enrollment(db: Session, student_id: str, course_id: str) -> bool:
    """Delete an enrollment; returns False when there was nothing to delete."""
    enrollment = _find_enrollment(db, student_id, course_id)
    if not enrollment:
        return False
    db.delete(enrollment)
    db.commit()
    logger.info(f"Removed enrollment of {student_id} from {course_id}")
    return True


def group_key_for(intake: Optional[str], cohort_year: Optional[str]) -> str:
    return GROUP_SEPARATOR.join(
        [(intake or "").strip() or UNKNOWN_GROUP, (cohort_year or "").strip() or UNKNOWN_GROUP]
    )


def parse_group_key(group_key: str) -> Tuple[str, str]:
    parts = (group_key or "").split(GROUP_SEPARATOR)
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ValidationError(
            f"Invalid group '{group_key}', expected '<intake>{GROUP_SEPARATOR}<cohort>'"
        )
    return parts[0].strip(), parts[1].strip()


def _field_matches(value: Optional[str], wanted: str) -> bool:
    value = (value or "").strip()
    if not value:
        return wanted == UNKNOWN_GROUP
    return value == wanted


def list_group_keys(db: Session) -> List[str]:
    students = db.query(User).filter(User.role == "student").all()
    return sorted({group_key_for(s.intake, s.cohort_year) for s in students})


def find_group_students(db: Session, group_key: str) -> List[User]:
    intake, cohort = parse_group_key(group_key)
    students = db.query(User).filter(User.role == "student").order_by(User.name).all()
    return [
        s
        for s in students
        if _field_matches(s.intake, intake) and _field_matches(s.cohort_year, cohort)
    ]


def bulk_enroll(
    db: Session,
    course_id: str,
    group_key: str,
    acting_role: UserRole = "hod",
    override: bool = False,
    now: Optional[datetime] = None,
) -> BulkEnrollmentReport:
    """
    Enroll every student of an intake/cohort group into a course.

    Each student is processed on their own: a failure is recorded in the
    report and the batch carries on with the next student.
    """
    get_course(db, course_id)
    students = find_group_students(db, group_key)
    report = BulkEnrollmentReport(course_id=course_id, group_key=group_key)

    for student in students:
        try:
            result = request_enrollment(
                db,
                student.id,
                course_id,
                acting_role=acting_role,
                override=override,
                now=now,
            )
            if result.created:
                report.enrolled.append(student.id)
            else:
                report.already_enrolled.append(student.id)
        except RecordsError as e:
            logger.warning(f"Bulk enroll skipped {student.id}: {e.message}")
            report.failed.append((student.id, e.message))
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Bulk enroll failed for {student.id}: {str(e)}")
            report.failed.append((student.id, str(e)))

    logger.info(
        f"Bulk enrollment of '{group_key}' into {course_id}: "
        f"{report.success_count} succeeded, {report.failure_count} failed"
    )
    return report


def list_enrollments(
    db: Session, student_id: Optional[str] = None, course_id: Optional[str] = None
) -> List[Enrollment]:
    query = db.query(Enrollment)
    if student_id:
        query = query.filter(Enrollment.student_id == student_id)
    if course_id:
        query = query.filter(Enrollment.course_id == course_id)
    return query.order_by(Enrollment.joined_at).all()


def list_student_modules(db: Session, student_id: str) -> List[StudentModuleAssignment]:
    return (
        db.query(StudentModuleAssignment)
        .filter(StudentModuleAssignment.student_id == student_id)
        .order_by(StudentModuleAssignment.module_code)
        .all()
    )
