import logging

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW
from records_cli.claims import (
    DEFAULT_APPROVAL_COMMENT,
    DEFAULT_REJECTION_COMMENT,
    claim_status_counts,
    list_claims,
    resolve_claim,
    submit_claim,
)
from records_cli.errors import NotFoundError, ValidationError
from records_cli.ledger import get_mark_history, upsert_mark
from records_cli.models import Claim, Mark, MarkHistory


@pytest.fixture
def graded(db, make_user, make_course):
    lecturer = make_user("Lecturer", role="lecturer")
    student = make_user("Student")
    course = make_course(lecturer_id=lecturer.id, claims_enabled=True)
    mark = upsert_mark(
        db, student.id, course.id, {"cat": 12, "fat": 40}, True, lecturer.id
    )
    return lecturer, student, course, mark


def test_submit_snapshots_original_mark(db, graded):
    _, student, _, mark = graded

    claim = submit_claim(db, student.id, mark.id, "cat", " Missing question 3 ", now=NOW)
    upsert_mark(db, student.id, mark.course_id, {"cat": 5}, True)

    db.refresh(claim)
    assert claim.status == "pending"
    assert claim.original_mark == 12.0
    assert claim.explanation == "Missing question 3"
    assert claim.id.startswith("claim_")
    assert claim.submitted_at == int(NOW.timestamp())
    assert claim.resolved_at is None


def test_submit_rejected_when_claims_closed(db, graded):
    _, student, course, mark = graded
    course.claims_enabled = False
    db.commit()

    with pytest.raises(ValidationError):
        submit_claim(db, student.id, mark.id, "cat", "Please re-check")
    assert db.query(Claim).count() == 0


def test_submit_requires_published_own_mark(db, graded, make_user):
    _, student, course, mark = graded
    other = make_user("Other")
    draft = upsert_mark(db, other.id, course.id, {"cat": 3}, False)

    with pytest.raises(ValidationError):
        submit_claim(db, other.id, draft.id, "cat", "Draft mark")
    with pytest.raises(ValidationError):
        submit_claim(db, other.id, mark.id, "cat", "Not my mark")
    with pytest.raises(NotFoundError):
        submit_claim(db, student.id, "missing", "cat", "No mark")


@pytest.mark.parametrize(
    "assessment_type, explanation",
    [("exam", "Unknown component"), ("cat", ""), ("cat", "   ")],
)
def test_submit_validates_input(db, graded, assessment_type, explanation):
    _, student, _, mark = graded
    with pytest.raises(ValidationError):
        submit_claim(db, student.id, mark.id, assessment_type, explanation)


def test_approve_updates_component_and_history(db, graded):
    lecturer, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "fat", "Page 4 not counted")
    history_before = db.query(MarkHistory).count()

    resolved = resolve_claim(
        db, claim.id, "approve", corrected_value=85, resolved_by=lecturer.id, now=NOW
    )

    stored = db.query(Mark).filter(Mark.id == mark.id).one()
    assert stored.fat == 85.0
    assert stored.total == 97.0
    assert stored.is_published is True
    assert db.query(MarkHistory).count() == history_before + 1
    latest = get_mark_history(db, mark.id)[0]
    assert latest.change_reason == "Claim resolution"
    assert latest.changed_by == lecturer.id
    assert resolved.status == "approved"
    assert resolved.lecturer_comment == DEFAULT_APPROVAL_COMMENT
    assert resolved.resolved_at == int(NOW.timestamp())


def test_resolving_twice_is_rejected(db, graded):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "fat", "Page 4 not counted")
    resolve_claim(db, claim.id, "approve", corrected_value=85)

    with pytest.raises(ValidationError):
        resolve_claim(db, claim.id, "reject")
    with pytest.raises(ValidationError):
        resolve_claim(db, claim.id, "approve", corrected_value=90)
    assert db.query(Mark).filter(Mark.id == mark.id).one().fat == 85.0


def test_reject_leaves_mark_untouched(db, graded):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "cat", "Re-check")
    history_before = db.query(MarkHistory).count()

    resolved = resolve_claim(db, claim.id, "reject", comment="Marked correctly")

    assert resolved.status == "rejected"
    assert resolved.lecturer_comment == "Marked correctly"
    assert db.query(MarkHistory).count() == history_before
    assert db.query(Mark).filter(Mark.id == mark.id).one().cat == 12.0


def test_reject_uses_default_comment(db, graded):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "cat", "Re-check")
    assert resolve_claim(db, claim.id, "reject").lecturer_comment == DEFAULT_REJECTION_COMMENT


@pytest.mark.parametrize("value", [None, "", "eighty", "nan", "inf", float("-inf")])
def test_approve_requires_numeric_value(db, graded, value):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "cat", "Re-check")

    with pytest.raises(ValidationError):
        resolve_claim(db, claim.id, "approve", corrected_value=value)
    db.refresh(claim)
    assert claim.status == "pending"


def test_failed_claim_commit_is_rolled_back_and_logged(db, graded, monkeypatch, caplog):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "cat", "Re-check")

    def locked_commit():
        raise OperationalError("UPDATE claims", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", locked_commit)
    with caplog.at_level(logging.ERROR, logger="records_cli.claims"):
        with pytest.raises(OperationalError):
            resolve_claim(db, claim.id, "reject", now=NOW)
    monkeypatch.undo()

    assert f"Failed to mark claim {claim.id} rejected" in caplog.text
    db.refresh(claim)
    assert claim.status == "pending"
    assert claim.resolved_at is None


def test_unknown_decision_and_claim(db, graded):
    _, student, _, mark = graded
    claim = submit_claim(db, student.id, mark.id, "cat", "Re-check")
    with pytest.raises(ValidationError):
        resolve_claim(db, claim.id, "escalate")
    with pytest.raises(NotFoundError):
        resolve_claim(db, "claim_missing", "reject")


def test_list_claims_by_student_and_lecturer(db, graded, make_user, make_course):
    lecturer, student, _, mark = graded
    other_lecturer = make_user("Other lecturer", role="lecturer")
    other_course = make_course("CS999", lecturer_id=other_lecturer.id, claims_enabled=True)
    other_mark = upsert_mark(db, student.id, other_course.id, {"quiz": 4}, True)

    first = submit_claim(db, student.id, mark.id, "cat", "One")
    second = submit_claim(db, student.id, other_mark.id, "quiz", "Two")
    resolve_claim(db, second.id, "reject")

    assert {c.id for c in list_claims(db, student_id=student.id)} == {first.id, second.id}
    assert [c.id for c in list_claims(db, lecturer_id=lecturer.id)] == [first.id]
    assert list_claims(db, student_id="nobody") == []

    counts = claim_status_counts(list_claims(db))
    assert counts == {"pending": 1, "approved": 0, "rejected": 1}
