from typing import Any, Dict, Optional

import click
from sqlalchemy.orm import Session

from records_cli.commands.common import fail
from records_cli.courses import (
    course_status,
    create_course,
    delete_course,
    get_course,
    list_courses,
    set_claims_enabled,
    update_course,
)
from records_cli.errors import RecordsError


def show_courses(db: Session, lecturer_id: Optional[str] = None) -> None:
    courses = list_courses(db, lecturer_id)
    if not courses:
        click.secho("No courses found.", fg="yellow")
        return

    for course in courses:
        claims = "open" if course.claims_enabled else "closed"
        click.echo(
            f"{course.id}  {course.code:<10} {course.name:<40} "
            f"Intake {course.intake or '-'} / {course.cohort_year or '-'}  "
            f"{course.start_date or '?'} -> {course.end_date or '?'}  "
            f"[{course_status(course)}] claims {claims}"
        )
    click.echo(f"\nTotal: {len(courses)} courses")


def add_course(db: Session, **fields: Any) -> None:
    try:
        course = create_course(db, **fields)
    except RecordsError as e:
        fail(e.message)
    click.secho(f"Created course {course.code} with id {course.id}", fg="green")


def edit_course(
    db: Session, course_id: str, acting_user_id: str, updates: Dict[str, Any]
) -> None:
    if not updates:
        click.secho("Nothing to update.", fg="yellow")
        return
    try:
        course = update_course(db, course_id, acting_user_id, updates)
    except RecordsError as e:
        fail(e.message)
    click.secho(f"Updated course {course.code}: {', '.join(sorted(updates))}", fg="green")


def remove_course(db: Session, course_id: str, acting_user_id: str) -> None:
    try:
        delete_course(db, course_id, acting_user_id)
    except RecordsError as e:
        fail(e.message)
    click.secho(f"Deleted course {course_id}", fg="green")


def toggle_claims(db: Session, course_id: str, acting_user_id: str) -> None:
    try:
        course = get_course(db, course_id)
        course = set_claims_enabled(
            db, course_id, acting_user_id, not course.claims_enabled
        )
    except RecordsError as e:
        fail(e.message)
    state = "OPEN" if course.claims_enabled else "CLOSED"
    click.secho(f"Claims for {course.code} are now {state}", fg="green")
