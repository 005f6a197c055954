import click
from sqlalchemy.orm import Session

from records_cli.admission import remove_enrollment, request_enrollment
from records_cli.commands.common import fail
from records_cli.errors import RecordsError
from records_cli.models import UserRole


def enroll_student(
    db: Session,
    student_id: str,
    course_id: str,
    acting_role: UserRole = "student",
    override: bool = False,
) -> None:
    """Enroll one student, reporting an existing enrollment as a no-op."""
    try:
        result = request_enrollment(
            db, student_id, course_id, acting_role=acting_role, override=override
        )
    except RecordsError as e:
        fail(e.message)

    if result.created:
        click.secho(result.message, fg="green")
    else:
        click.secho(result.message, fg="yellow")


def unenroll_student(db: Session, student_id: str, course_id: str) -> None:
    if remove_enrollment(db, student_id, course_id):
        click.secho(f"Removed {student_id} from course {course_id}", fg="green")
    else:
        click.secho(f"{student_id} was not enrolled in course {course_id}", fg="yellow")
