from typing import List, Tuple

import click
from sqlalchemy import func
from sqlalchemy.orm import Session

from records_cli.models import Mark


def find_duplicate_marks(db: Session) -> List[Tuple[str, str, int]]:
    """(student_id, course_id, count) for every pair holding more than one mark."""
    return [
        (student_id, course_id, count)
        for student_id, course_id, count in (
            db.query(Mark.student_id, Mark.course_id, func.count(Mark.id))
            .group_by(Mark.student_id, Mark.course_id)
            .having(func.count(Mark.id) > 1)
            .all()
        )
    ]


def check_duplicate_marks(db: Session) -> None:
    total = db.query(func.count(Mark.id)).scalar() or 0
    click.echo(f"Marks count: {total}")

    duplicates = find_duplicate_marks(db)
    if not duplicates:
        click.secho(
            "No duplicates found based on the student/course constraint.", fg="green"
        )
        return

    click.secho(f"Duplicates found: {len(duplicates)}", fg="red")
    for student_id, course_id, count in duplicates:
        click.echo(f"  student {student_id} / course {course_id}: {count} rows")
