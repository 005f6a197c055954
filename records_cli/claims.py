"""
Claims workflow: a student disputes one component of a published mark and
the course lecturer resolves it.

    pending --approve--> approved
    pending --reject---> rejected

Both outcomes are final. Approval writes the corrected component through the
mark ledger so the change is recorded in the mark history.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.errors import NotFoundError, ValidationError
from records_cli.ledger import correct_component, get_mark
from records_cli.models import ASSESSMENT_TYPES, Claim, ClaimStatus, Course
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

ClaimDecision = Literal["approve", "reject"]

DEFAULT_APPROVAL_COMMENT = "Mark updated."
DEFAULT_REJECTION_COMMENT = "No errors found in marking."


def get_claim(db: Session, claim_id: str) -> Claim:
    claim = db.query(Claim).filter(Claim.id == claim_id).first()
    if not claim:
        raise NotFoundError(f"Claim {claim_id} not found")
    return claim


def submit_claim(
    db: Session,
    student_id: str,
    mark_id: str,
    assessment_type: str,
    explanation: str,
    now: Optional[datetime] = None,
) -> Claim:
    """
    Open a claim against one component of a student's published mark.

    The disputed value is copied into the claim so later edits of the mark
    do not change what the student contested.
    """
    if assessment_type not in ASSESSMENT_TYPES:
        raise ValidationError(
            f"Unknown assessment '{assessment_type}', expected one of: "
            + ", ".join(ASSESSMENT_TYPES)
        )
    if not explanation or not explanation.strip():
        raise ValidationError("An explanation is required to submit a claim")

    mark = get_mark(db, mark_id)
    if mark.student_id != student_id:
        raise ValidationError(f"Mark {mark_id} does not belong to student {student_id}")
    if not mark.is_published:
        raise ValidationError("Claims can only be submitted on published marks")

    course = db.query(Course).filter(Course.id == mark.course_id).first()
    if not course:
        raise NotFoundError(f"Course {mark.course_id} not found")
    if not course.claims_enabled:
        raise ValidationError(f"Claims are closed for {course.code}")

    claim = Claim(
        student_id=student_id,
        course_id=course.id,
        mark_id=mark.id,
        assessment_type=assessment_type,
        original_mark=getattr(mark, assessment_type),
        explanation=explanation.strip(),
        status="pending",
        submitted_at=int((now or datetime.now()).timestamp()),
    )
    db.add(claim)
    db.commit()
    logger.info(
        f"Claim {claim.id} submitted by {student_id} on {assessment_type} of mark {mark_id}"
    )
    return claim


def resolve_claim(
    db: Session,
    claim_id: str,
    decision: ClaimDecision,
    comment: Optional[str] = None,
    corrected_value: Any = None,
    resolved_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Claim:
    """
    Approve or reject a pending claim.

    Args:
        db: Database session
        claim_id: Claim to resolve
        decision: "approve" or "reject"
        comment: Lecturer comment, a default is used when empty
        corrected_value: New component value, required to approve
        resolved_by: Acting user id recorded in the mark history
        now: Resolution time

    Returns:
        The resolved Claim

    Raises:
        NotFoundError: Unknown claim
        ValidationError: Claim already resolved, unknown decision or missing value
    """
    claim = get_claim(db, claim_id)
    if claim.status != "pending":
        raise ValidationError(f"Claim {claim_id} has already been {claim.status}")
    if decision not in ("approve", "reject"):
        raise ValidationError(f"Unknown decision '{decision}', expected approve or reject")

    status: ClaimStatus
    if decision == "approve":
        if corrected_value is None or str(corrected_value).strip() == "":
            raise ValidationError("A corrected value is required to approve a claim")
        try:
            value = float(corrected_value)
        except (TypeError, ValueError):
            raise ValidationError(f"Corrected value '{corrected_value}' is not a number")
        if not math.isfinite(value):
            raise ValidationError(f"Corrected value '{corrected_value}' is not a finite number")

        correct_component(
            db,
            claim.mark_id,
            claim.assessment_type,
            value,
            changed_by=resolved_by,
            reason="Claim resolution",
        )
        status = "approved"
        comment = comment or DEFAULT_APPROVAL_COMMENT
    else:
        status = "rejected"
        comment = comment or DEFAULT_REJECTION_COMMENT

    claim.status = status
    claim.lecturer_comment = comment
    claim.resolved_at = int((now or datetime.now()).timestamp())
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark claim {claim_id} {status}: {str(e)}")
        raise
    logger.info(f"Claim {claim_id} {status} by {resolved_by}")
    return claim


def list_claims(
    db: Session,
    student_id: Optional[str] = None,
    lecturer_id: Optional[str] = None,
) -> List[Claim]:
    """Claims of a student, or claims on the courses a lecturer owns."""
    query = db.query(Claim)
    if student_id:
        query = query.filter(Claim.student_id == student_id)
    if lecturer_id:
        query = query.join(Course, Claim.course_id == Course.id).filter(
            Course.lecturer_id == lecturer_id
        )
    return query.order_by(Claim.submitted_at.desc()).all()


def claim_status_counts(claims: List[Claim]) -> Dict[ClaimStatus, int]:
    counts: Dict[ClaimStatus, int] = {"pending": 0, "approved": 0, "rejected": 0}
    for claim in claims:
        if claim.status in counts:
            counts[claim.status] += 1
    return counts
