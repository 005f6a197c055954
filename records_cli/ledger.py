"""
Mark ledger: totals, draft/published visibility and the mark audit trail.

Every create or update of a Mark appends one MarkHistory row holding the
full before and after snapshots. The history append runs after the mark
itself is committed and a failure there is logged, never raised: a lost
audit row is preferred over a lost grade.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.errors import NotFoundError, ValidationError
from records_cli.models import (
    ASSESSMENT_TYPES,
    ChangeReason,
    Course,
    Mark,
    MarkHistory,
    User,
)
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)


def coerce_score(value: Any) -> float:
    """Read a component score, counting absent or non-numeric values as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score) or math.isinf(score):
        return 0.0
    return score


def compute_total(components: Optional[Mapping[str, Any]]) -> float:
    """
    Sum the six assessment components, rounded to 2 decimal places.

    Unknown keys are ignored, missing or non-numeric components count as 0.
    """
    if not components:
        return 0.0
    total = sum(coerce_score(components.get(name)) for name in ASSESSMENT_TYPES)
    return round(total, 2)


def get_mark(db: Session, mark_id: str) -> Mark:
    mark = db.query(Mark).filter(Mark.id == mark_id).first()
    if not mark:
        raise NotFoundError(f"Mark {mark_id} not found")
    return mark


def get_visible_marks(
    db: Session, student_id: str, include_drafts: bool = False
) -> List[Mark]:
    """
    List a student's marks.

    Students only ever see published rows; grading staff pass
    include_drafts=True. An unknown student simply has no marks.
    """
    query = db.query(Mark).filter(Mark.student_id == student_id)
    if not include_drafts:
        query = query.filter(Mark.is_published == True)
    return query.order_by(Mark.created_at).all()


def list_course_marks(
    db: Session, course_id: str, include_drafts: bool = True
) -> List[Mark]:
    query = db.query(Mark).filter(Mark.course_id == course_id)
    if not include_drafts:
        query = query.filter(Mark.is_published == True)
    return query.all()


def append_history(
    db: Session,
    mark: Mark,
    old_values: Optional[Dict[str, Any]],
    reason: ChangeReason,
    changed_by: Optional[str],
) -> MarkHistory:
    entry = MarkHistory(
        mark_id=mark.id,
        old_values=old_values,
        new_values=mark.snapshot(),
        change_reason=reason,
        changed_by=changed_by,
    )
    db.add(entry)
    db.commit()
    return entry


def record_history(
    db: Session,
    mark: Mark,
    old_values: Optional[Dict[str, Any]],
    reason: ChangeReason,
    changed_by: Optional[str],
) -> None:
    try:
        append_history(db, mark, old_values, reason, changed_by)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to append history for mark {mark.id} ({reason}) by {changed_by}: {str(e)}"
        )


def upsert_mark(
    db: Session,
    student_id: str,
    course_id: str,
    components: Mapping[str, Any],
    publish: bool,
    changed_by: Optional[str] = None,
) -> Mark:
    """
    Create or update the mark of a student in a course.

    Components present in the mapping replace the stored ones; on creation the
    missing ones start at 0. The total is recomputed and the published flag is
    set to `publish` on every call.

    Args:
        db: Database session
        student_id: Graded student
        course_id: Course the mark belongs to
        components: Component scores keyed by assessment type
        publish: Whether the student may see the mark
        changed_by: Acting user id recorded in the history

    Returns:
        The stored Mark
    """
    unknown = [name for name in components if name not in ASSESSMENT_TYPES]
    if unknown:
        raise ValidationError(
            f"Unknown assessment component(s): {', '.join(sorted(unknown))}"
        )

    student = db.query(User).filter(User.id == student_id).first()
    if not student:
        raise NotFoundError(f"Student {student_id} not found")
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError(f"Course {course_id} not found")

    mark = (
        db.query(Mark)
        .filter(Mark.student_id == student_id, Mark.course_id == course_id)
        .first()
    )

    reason: ChangeReason
    if mark is None:
        old_values = None
        reason = "Creation"
        mark = Mark(student_id=student_id, course_id=course_id)
        for name in ASSESSMENT_TYPES:
            setattr(mark, name, coerce_score(components.get(name)))
        db.add(mark)
    else:
        old_values = mark.snapshot()
        reason = "Update"
        for name, value in components.items():
            setattr(mark, name, coerce_score(value))

    mark.total = compute_total(
        {name: getattr(mark, name) for name in ASSESSMENT_TYPES}
    )
    mark.is_published = publish
    db.commit()

    logger.info(
        f"{reason} of mark {mark.id} for student {student_id} in course {course_id} "
        f"(total={mark.total}, published={publish})"
    )
    record_history(db, mark, old_values, reason, changed_by)
    return mark


def correct_component(
    db: Session,
    mark_id: str,
    assessment_type: str,
    value: Any,
    changed_by: Optional[str] = None,
    reason: ChangeReason = "Claim resolution",
) -> Mark:
    """Overwrite a single component of an existing mark, keeping its visibility."""
    if assessment_type not in ASSESSMENT_TYPES:
        raise ValidationError(f"Unknown assessment component: {assessment_type}")

    mark = get_mark(db, mark_id)
    old_values = mark.snapshot()
    setattr(mark, assessment_type, coerce_score(value))
    mark.total = compute_total(mark.components())
    db.commit()

    logger.info(
        f"Corrected {assessment_type} of mark {mark.id} to {getattr(mark, assessment_type)} "
        f"(total={mark.total})"
    )
    record_history(db, mark, old_values, reason, changed_by)
    return mark


def get_mark_history(db: Session, mark_id: str) -> List[MarkHistory]:
    """History entries of a mark, newest first."""
    return (
        db.query(MarkHistory)
        .filter(MarkHistory.mark_id == mark_id)
        .order_by(MarkHistory.timestamp.desc(), MarkHistory.id.desc())
        .all()
    )


def component_averages(marks: Iterable[Mark]) -> Dict[str, float]:
    """Class average per component, 0 for every component of an empty class."""
    marks = list(marks)
    if not marks:
        return {name: 0.0 for name in ASSESSMENT_TYPES}
    return {
        name: round(sum(getattr(m, name) or 0.0 for m in marks) / len(marks), 2)
        for name in ASSESSMENT_TYPES
    }
