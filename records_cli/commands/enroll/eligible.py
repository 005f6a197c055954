import click
from sqlalchemy.orm import Session

from records_cli.commands.common import fail
from records_cli.courses import course_status
from records_cli.eligibility import get_joinable_courses
from records_cli.errors import RecordsError

REASON_LABELS = {
    "sheet": "module sheet",
    "retake": "retake",
    "intake_cohort": "intake & cohort",
    "legacy_year": "year (no module sheet)",
}


def show_eligible_courses(db: Session, student_id: str) -> None:
    """List the courses a student may join with the rule that allowed each one."""
    try:
        decisions = get_joinable_courses(db, student_id)
    except RecordsError as e:
        fail(e.message)

    if not decisions:
        click.secho("No new courses available for this student.", fg="yellow")
        return

    for decision in decisions:
        course = decision.course
        click.echo(
            f"{course.id}  {course.code:<10} {course.name:<40} "
            f"[{course_status(course)}] via {REASON_LABELS[decision.reason]}"
        )
