from typing import Dict, Optional

import click
from sqlalchemy.orm import Session

from records_cli.commands.common import fail, format_score, format_timestamp
from records_cli.errors import RecordsError
from records_cli.grade_definitions import get_grade_by_marks, grade_distribution
from records_cli.ledger import (
    component_averages,
    get_mark_history,
    get_visible_marks,
    list_course_marks,
    upsert_mark,
)
from records_cli.models import ASSESSMENT_TYPES, Course


def set_mark(
    db: Session,
    student_id: str,
    course_id: str,
    components: Dict[str, float],
    publish: bool,
    changed_by: Optional[str] = None,
) -> None:
    try:
        mark = upsert_mark(
            db, student_id, course_id, components, publish, changed_by=changed_by
        )
    except RecordsError as e:
        fail(e.message)

    state = "published" if mark.is_published else "saved as draft"
    click.secho(
        f"Mark {mark.id} {state}: total {format_score(mark.total)} "
        f"({get_grade_by_marks(mark.total)})",
        fg="green",
    )


def show_student_marks(db: Session, student_id: str, include_drafts: bool) -> None:
    marks = get_visible_marks(db, student_id, include_drafts=include_drafts)
    if not marks:
        click.secho(f"No marks found for {student_id}", fg="yellow")
        return

    header = "  ".join(f"{name[:10]:>10}" for name in ASSESSMENT_TYPES)
    click.echo(f"{'course':<10}  {header}  {'total':>6}  grade")
    for mark in marks:
        course = db.query(Course).filter(Course.id == mark.course_id).first()
        code = course.code if course else mark.course_id
        scores = "  ".join(
            f"{format_score(getattr(mark, name)):>10}" for name in ASSESSMENT_TYPES
        )
        draft = "" if mark.is_published else "  (draft)"
        click.echo(
            f"{code:<10}  {scores}  {format_score(mark.total):>6}  "
            f"{get_grade_by_marks(mark.total)}{draft}"
        )


def show_course_summary(db: Session, course_id: str) -> None:
    """Class averages per component and the grade distribution of a course."""
    marks = list_course_marks(db, course_id)
    if not marks:
        click.secho(f"No marks recorded for course {course_id}", fg="yellow")
        return

    click.echo(f"Average class performance ({len(marks)} students):")
    for name, average in component_averages(marks).items():
        click.echo(f"  {name:<22} {average:g}")

    click.echo("Grade distribution:")
    for grade, count in grade_distribution(m.total for m in marks).items():
        click.echo(f"  {grade}: {count}")


def show_mark_history(db: Session, mark_id: str) -> None:
    entries = get_mark_history(db, mark_id)
    if not entries:
        click.secho(f"No history recorded for mark {mark_id}", fg="yellow")
        return

    for entry in entries:
        click.echo(
            f"{format_timestamp(entry.timestamp)}  {entry.change_reason:<16} "
            f"by {entry.changed_by or 'unknown'}"
        )
        old = entry.old_values or {}
        for key, new_value in entry.new_values.items():
            old_value = old.get(key)
            if old_value != new_value:
                click.echo(f"    {key}: {old_value} -> {new_value}")
