import click
from sqlalchemy.orm import Session

from records_cli.admission import (
    bulk_enroll,
    find_group_students,
    list_group_keys,
    parse_group_key,
)
from records_cli.commands.common import fail
from records_cli.errors import RecordsError
from records_cli.models import UserRole


def show_groups(db: Session) -> None:
    keys = list_group_keys(db)
    if not keys:
        click.secho("No students found.", fg="yellow")
        return
    for key in keys:
        count = len(find_group_students(db, key))
        intake, cohort = parse_group_key(key)
        click.echo(f"{key:<30} Intake {intake} / {cohort}  ({count} students)")


def enroll_group(
    db: Session,
    course_id: str,
    group_key: str,
    acting_role: UserRole = "hod",
    override: bool = False,
) -> None:
    try:
        report = bulk_enroll(
            db, course_id, group_key, acting_role=acting_role, override=override
        )
    except RecordsError as e:
        fail(e.message)

    total = report.success_count + report.failure_count
    if total == 0:
        click.secho(f"No students found in group '{group_key}'", fg="yellow")
        return

    click.echo(f"Bulk enrollment complete for '{group_key}'")
    click.secho(f"Success: {report.success_count}", fg="green")
    if report.already_enrolled:
        click.secho(
            f"  of which already enrolled: {len(report.already_enrolled)}", fg="blue"
        )
    if report.failed:
        click.secho(f"Failed: {report.failure_count}", fg="red")
        for student_id, reason in report.failed:
            click.echo(f"  {student_id}: {reason}")
