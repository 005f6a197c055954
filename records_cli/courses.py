from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from sqlalchemy.orm import Session

from records_cli.errors import NotFoundError, ValidationError
from records_cli.models import Course, Mark, User
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

CourseStatus = Literal["Upcoming", "Ongoing", "Done", "Unknown"]

EDITABLE_FIELDS = (
    "code",
    "name",
    "intake",
    "cohort_year",
    "target_year",
    "start_date",
    "end_date",
    "lecturer_id",
    "claims_enabled",
)


def parse_course_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO course date, returning None for blank or malformed values.

    Dates carrying a UTC offset are converted to naive local time so they
    compare with datetime.now().
    """
    if not value or not str(value).strip():
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        logger.warning(f"Ignoring malformed course date: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def is_course_active(course: Course, now: Optional[datetime] = None) -> bool:
    """A course is active until its end date; without an end date it never ends."""
    end = parse_course_date(course.end_date)
    if end is None:
        return True
    return end > (now or datetime.now())


def course_status(course: Course, now: Optional[datetime] = None) -> CourseStatus:
    start = parse_course_date(course.start_date)
    end = parse_course_date(course.end_date)
    if start is None or end is None:
        return "Unknown"

    now = now or datetime.now()
    if now < start:
        return "Upcoming"
    if now > end:
        return "Done"
    return "Ongoing"


def split_active_completed(
    courses: Iterable[Course], now: Optional[datetime] = None
) -> Tuple[List[Course], List[Course]]:
    active, completed = [], []
    for course in courses:
        (active if is_course_active(course, now) else completed).append(course)
    return active, completed


def get_course(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError(f"Course {course_id} not found")
    return course


def list_courses(db: Session, lecturer_id: Optional[str] = None) -> List[Course]:
    query = db.query(Course)
    if lecturer_id:
        query = query.filter(Course.lecturer_id == lecturer_id)
    return query.order_by(Course.code, Course.created_at).all()


def _check_dates(start_date: Optional[str], end_date: Optional[str]) -> None:
    for label, value in (("start", start_date), ("end", end_date)):
        if value and parse_course_date(value) is None:
            raise ValidationError(f"Invalid {label} date '{value}', expected YYYY-MM-DD")
    start = parse_course_date(start_date)
    end = parse_course_date(end_date)
    if start and end and end < start:
        raise ValidationError("Course end date is before its start date")


def _check_can_manage(db: Session, course: Course, acting_user_id: str) -> None:
    user = db.query(User).filter(User.id == acting_user_id).first()
    if not user:
        raise NotFoundError(f"User {acting_user_id} not found")
    if user.role == "hod":
        return
    if user.role == "lecturer" and course.lecturer_id == user.id:
        return
    raise ValidationError(
        f"User {acting_user_id} may not manage course {course.code}: "
        "only its lecturer or the head of department can"
    )


def _check_can_create(db: Session, acting_user_id: str) -> None:
    user = db.query(User).filter(User.id == acting_user_id).first()
    if not user:
        raise NotFoundError(f"User {acting_user_id} not found")
    if user.role not in ("lecturer", "hod"):
        raise ValidationError(
            f"User {acting_user_id} may not create courses: "
            "only lecturers and the head of department can"
        )


def create_course(
    db: Session,
    code: str,
    name: str,
    acting_user_id: str,
    lecturer_id: Optional[str] = None,
    intake: Optional[str] = None,
    cohort_year: Optional[str] = None,
    target_year: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    claims_enabled: bool = False,
) -> Course:
    _check_can_create(db, acting_user_id)
    if not code or not code.strip():
        raise ValidationError("Course code is required")
    if not name or not name.strip():
        raise ValidationError("Course name is required")
    _check_dates(start_date, end_date)

    if lecturer_id:
        lecturer = db.query(User).filter(User.id == lecturer_id).first()
        if not lecturer:
            raise NotFoundError(f"Lecturer {lecturer_id} not found")

    course = Course(
        code=code.strip(),
        name=name.strip(),
        lecturer_id=lecturer_id,
        intake=intake,
        cohort_year=cohort_year,
        target_year=target_year,
        start_date=start_date,
        end_date=end_date,
        claims_enabled=claims_enabled,
    )
    db.add(course)
    db.commit()
    logger.info(f"Created course {course.code} ({course.id}) by {acting_user_id}")
    return course


def update_course(
    db: Session, course_id: str, acting_user_id: str, updates: Dict[str, Any]
) -> Course:
    course = get_course(db, course_id)
    _check_can_manage(db, course, acting_user_id)

    unknown = [key for key in updates if key not in EDITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Cannot update course field(s): {', '.join(unknown)}")
    _check_dates(
        updates.get("start_date", course.start_date),
        updates.get("end_date", course.end_date),
    )

    for key, value in updates.items():
        setattr(course, key, value)
    db.commit()
    logger.info(f"Updated course {course.code} ({course.id}): {sorted(updates)}")
    return course


def set_claims_enabled(
    db: Session, course_id: str, acting_user_id: str, enabled: bool
) -> Course:
    return update_course(db, course_id, acting_user_id, {"claims_enabled": enabled})


def delete_course(db: Session, course_id: str, acting_user_id: str) -> None:
    course = get_course(db, course_id)
    _check_can_manage(db, course, acting_user_id)

    has_marks = db.query(Mark.id).filter(Mark.course_id == course_id).first()
    if has_marks:
        raise ValidationError(
            f"Course {course.code} has recorded marks and cannot be deleted"
        )

    db.delete(course)
    db.commit()
    logger.info(f"Deleted course {course.code} ({course_id})")
