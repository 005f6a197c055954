from typing import List, Optional

import click
from sqlalchemy.orm import Session

from records_cli.commands.common import fail
from records_cli.courses import parse_course_date
from records_cli.models import Course


def update_course_dates(
    db: Session,
    codes: List[str],
    start_date: str,
    end_date: str,
    cohort_year: Optional[str] = None,
) -> int:
    """Move every offering of the given course codes to a new schedule."""
    start = parse_course_date(start_date)
    end = parse_course_date(end_date)
    if start is None or end is None:
        fail("Dates must be given as YYYY-MM-DD")
    if end < start:
        fail("End date is before start date")

    courses = db.query(Course).filter(Course.code.in_(codes)).all()
    if not courses:
        click.secho(f"No courses found for: {', '.join(codes)}", fg="yellow")
        return 0

    for course in courses:
        course.start_date = start_date
        course.end_date = end_date
        if cohort_year:
            course.cohort_year = cohort_year
    db.commit()

    updated_codes = sorted({c.code for c in courses})
    click.secho(
        f"Successfully updated course dates for: {', '.join(updated_codes)} "
        f"({len(courses)} offerings)",
        fg="green",
    )
    return len(courses)
