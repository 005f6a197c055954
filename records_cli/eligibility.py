"""
Decides which courses a student may join.

The rules are evaluated in order and the first one that holds is reported
as the reason a course is joinable:

1. sheet          - the course code is on the student's module sheet
2. retake         - a published mark for the same code is below the pass mark
3. intake_cohort  - normalized intake and cohort both match the student's
4. legacy_year    - only for students with an empty sheet, no retake and no
                    intake/cohort match: the course target year matches the
                    student's academic year, a missing value on either side
                    counting as a match

Courses the student is already enrolled in are never returned.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Literal, Optional, Set, Tuple

from sqlalchemy.orm import Session

from records_cli.errors import NotFoundError
from records_cli.grade_definitions import is_passing
from records_cli.ledger import compute_total
from records_cli.models import (
    Course,
    Enrollment,
    Mark,
    StudentModuleAssignment,
    User,
)
from records_cli.normalization import (
    normalize_cohort_token,
    normalize_intake_token,
    normalize_module_code,
    normalize_year_token,
)
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

EligibilityReason = Literal["sheet", "retake", "intake_cohort", "legacy_year"]


@dataclass
class StudentProfile:
    """Everything about one student the rules look at, normalized once."""

    student: User
    sheet_codes: Set[str] = field(default_factory=set)
    failed_codes: Set[str] = field(default_factory=set)
    enrolled_course_ids: Set[str] = field(default_factory=set)

    @property
    def intake(self) -> str:
        return normalize_intake_token(self.student.intake)

    @property
    def cohort(self) -> str:
        return normalize_cohort_token(self.student.cohort_year)

    @property
    def academic_year(self) -> str:
        return normalize_year_token(self.student.academic_year)

    @property
    def has_sheet(self) -> bool:
        return bool(self.sheet_codes)


@dataclass
class EligibilityDecision:
    course: Course
    reason: EligibilityReason


Rule = Callable[[StudentProfile, Course], bool]


def in_sheet(profile: StudentProfile, course: Course) -> bool:
    return normalize_module_code(course.code) in profile.sheet_codes


def is_retake(profile: StudentProfile, course: Course) -> bool:
    return normalize_module_code(course.code) in profile.failed_codes


def matches_intake_cohort(profile: StudentProfile, course: Course) -> bool:
    course_intake = normalize_intake_token(course.intake)
    course_cohort = normalize_cohort_token(course.cohort_year)
    intake_match = bool(profile.intake and course_intake) and (
        profile.intake == course_intake
    )
    cohort_match = bool(profile.cohort and course_cohort) and (
        profile.cohort == course_cohort
    )
    return intake_match and cohort_match


def matches_legacy_year(profile: StudentProfile, course: Course) -> bool:
    if profile.has_sheet:
        return False
    if is_retake(profile, course) or matches_intake_cohort(profile, course):
        return False

    course_year = normalize_year_token(course.target_year)
    student_year = profile.academic_year
    if not course_year or not student_year:
        return True
    return course_year == student_year


ELIGIBILITY_RULES: Tuple[Tuple[EligibilityReason, Rule], ...] = (
    ("sheet", in_sheet),
    ("retake", is_retake),
    ("intake_cohort", matches_intake_cohort),
    ("legacy_year", matches_legacy_year),
)


def evaluate_course(
    profile: StudentProfile, course: Course
) -> Optional[EligibilityReason]:
    """Return the first rule that makes the course joinable, or None."""
    for reason, rule in ELIGIBILITY_RULES:
        if rule(profile, course):
            return reason
    return None


def failed_course_codes(marks: Iterable[Mark], courses: Iterable[Course]) -> Set[str]:
    """Normalized codes of courses with a published total below the pass mark."""
    codes_by_course = {c.id: normalize_module_code(c.code) for c in courses}
    failed = set()
    for mark in marks:
        if not mark.is_published:
            continue
        total = mark.total if mark.total is not None else compute_total(
            mark.components()
        )
        if is_passing(total):
            continue
        code = codes_by_course.get(mark.course_id)
        if code:
            failed.add(code)
    return failed


def build_profile(
    student: User,
    courses: Iterable[Course],
    sheet: Iterable[StudentModuleAssignment],
    marks: Iterable[Mark],
    enrollments: Iterable[Enrollment],
) -> StudentProfile:
    courses = list(courses)
    return StudentProfile(
        student=student,
        sheet_codes={
            code
            for code in (normalize_module_code(a.module_code) for a in sheet)
            if code
        },
        failed_codes=failed_course_codes(
            (m for m in marks if m.student_id == student.id), courses
        ),
        enrolled_course_ids={
            e.course_id for e in enrollments if e.student_id == student.id
        },
    )


def resolve_eligible_courses(
    student: User,
    courses: Iterable[Course],
    sheet: Iterable[StudentModuleAssignment],
    marks: Iterable[Mark],
    enrollments: Iterable[Enrollment],
) -> List[EligibilityDecision]:
    """
    Work out the joinable courses of a student from already loaded entities.

    Args:
        student: The student asking
        courses: The full course catalog
        sheet: The student's module sheet entries
        marks: The student's marks, drafts are ignored
        enrollments: The student's current enrollments

    Returns:
        One decision per joinable course, in catalog order
    """
    courses = list(courses)
    profile = build_profile(student, courses, sheet, marks, enrollments)

    decisions = []
    for course in courses:
        if course.id in profile.enrolled_course_ids:
            continue
        reason = evaluate_course(profile, course)
        logger.debug(
            f"Eligibility of {course.code} ({course.id}) for {student.id}: {reason or 'not eligible'}"
        )
        if reason:
            decisions.append(EligibilityDecision(course=course, reason=reason))
    return decisions


def get_joinable_courses(db: Session, student_id: str) -> List[EligibilityDecision]:
    """Load a student's records and resolve the courses they may join."""
    student = db.query(User).filter(User.id == student_id).first()
    if not student:
        raise NotFoundError(f"Student {student_id} not found")

    courses = db.query(Course).order_by(Course.code, Course.created_at).all()
    sheet = (
        db.query(StudentModuleAssignment)
        .filter(StudentModuleAssignment.student_id == student_id)
        .all()
    )
    marks = (
        db.query(Mark)
        .filter(Mark.student_id == student_id, Mark.is_published == True)
        .all()
    )
    enrollments = db.query(Enrollment).filter(Enrollment.student_id == student_id).all()

    decisions = resolve_eligible_courses(student, courses, sheet, marks, enrollments)
    logger.info(
        f"Student {student_id} can join {len(decisions)} of {len(courses)} courses"
    )
    return decisions
