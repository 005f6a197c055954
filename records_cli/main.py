from typing import Optional

import click
from sqlalchemy.orm import Session

from records_cli.commands.check.duplicate_marks import check_duplicate_marks
from records_cli.commands.claims.review import (
    decide_claim,
    export_claim_report,
    file_claim,
    show_claims,
)
from records_cli.commands.courses.manage import (
    add_course,
    edit_course,
    remove_course,
    show_courses,
    toggle_claims,
)
from records_cli.commands.db.import_json import import_json_dump
from records_cli.commands.enroll.bulk import enroll_group, show_groups
from records_cli.commands.enroll.eligible import show_eligible_courses
from records_cli.commands.enroll.student import enroll_student, unenroll_student
from records_cli.commands.export.marks import export_course_marks
from records_cli.commands.marks.grade import (
    set_mark,
    show_course_summary,
    show_mark_history,
    show_student_marks,
)
from records_cli.commands.update.course_dates import update_course_dates
from records_cli.commands.update.marks import update_marks_from_excel
from records_cli.db.config import get_engine, get_session, init_db
from records_cli.models import ASSESSMENT_TYPES
from records_cli.utils.logging_config import configure_from_env

ROLE_CHOICE = click.Choice(["student", "lecturer", "hod"])


def get_db() -> Session:
    engine = get_engine()
    init_db(engine)
    return get_session(engine)


@click.group()
def cli() -> None:
    configure_from_env()


@cli.group()
def db() -> None:
    """Database maintenance."""
    pass


@db.command(name="init")
def db_init() -> None:
    init_db(get_engine())
    click.secho("Database tables created.", fg="green")


@db.command(name="import-json")
@click.argument("file_path", type=click.Path(exists=True))
def db_import_json(file_path: str) -> None:
    """Upsert users, courses, enrollments, marks and claims from a JSON dump."""
    session = get_db()
    counts = import_json_dump(session, file_path)
    for table, count in counts.items():
        click.echo(f"  {table}: {count}")


@cli.group()
def courses() -> None:
    pass


@courses.command(name="list")
@click.option("--lecturer", "lecturer_id", help="Only courses owned by this lecturer")
def courses_list(lecturer_id: Optional[str]) -> None:
    show_courses(get_db(), lecturer_id)


@courses.command(name="create")
@click.argument("code")
@click.argument("name")
@click.option("--as", "acting_user_id", required=True, help="Acting lecturer or hod id")
@click.option("--lecturer", "lecturer_id", help="Owning lecturer id")
@click.option("--intake", help="Intake month, e.g. 1 or January")
@click.option("--cohort", "cohort_year", help="Cohort year, e.g. 2024")
@click.option("--year", "target_year", help="Legacy academic year, e.g. Year 1")
@click.option("--start", "start_date", help="Start date (YYYY-MM-DD)")
@click.option("--end", "end_date", help="End date (YYYY-MM-DD)")
@click.option("--claims/--no-claims", "claims_enabled", default=False)
def courses_create(code: str, name: str, **fields) -> None:
    add_course(get_db(), code=code, name=name, **fields)


@courses.command(name="update")
@click.argument("course_id")
@click.option("--as", "acting_user_id", required=True, help="Acting user id")
@click.option("--code")
@click.option("--name")
@click.option("--lecturer", "lecturer_id")
@click.option("--intake")
@click.option("--cohort", "cohort_year")
@click.option("--year", "target_year")
@click.option("--start", "start_date")
@click.option("--end", "end_date")
def courses_update(course_id: str, acting_user_id: str, **fields) -> None:
    updates = {key: value for key, value in fields.items() if value is not None}
    edit_course(get_db(), course_id, acting_user_id, updates)


@courses.command(name="delete")
@click.argument("course_id")
@click.option("--as", "acting_user_id", required=True, help="Acting user id")
def courses_delete(course_id: str, acting_user_id: str) -> None:
    remove_course(get_db(), course_id, acting_user_id)


@courses.command(name="toggle-claims")
@click.argument("course_id")
@click.option("--as", "acting_user_id", required=True, help="Acting user id")
def courses_toggle_claims(course_id: str, acting_user_id: str) -> None:
    """Open or close the claims window of a course."""
    toggle_claims(get_db(), course_id, acting_user_id)


@cli.group()
def enroll() -> None:
    pass


@enroll.command(name="eligible")
@click.argument("student_id")
def enroll_eligible(student_id: str) -> None:
    """List the courses a student can join."""
    show_eligible_courses(get_db(), student_id)


@enroll.command(name="student")
@click.argument("student_id")
@click.argument("course_id")
@click.option("--role", "acting_role", type=ROLE_CHOICE, default="student")
@click.option(
    "--override",
    is_flag=True,
    help="Bypass the one-active-course limit (head of department only)",
)
def enroll_one(
    student_id: str, course_id: str, acting_role: str, override: bool
) -> None:
    enroll_student(get_db(), student_id, course_id, acting_role, override)


@enroll.command(name="bulk")
@click.argument("course_id")
@click.argument("group_key")
@click.option("--role", "acting_role", type=ROLE_CHOICE, default="hod")
@click.option("--override", is_flag=True, help="Bypass the one-active-course limit")
def enroll_bulk(
    course_id: str, group_key: str, acting_role: str, override: bool
) -> None:
    """Enroll every student of an '<intake>|<cohort>' group into a course."""
    enroll_group(get_db(), course_id, group_key, acting_role, override)


@enroll.command(name="remove")
@click.argument("student_id")
@click.argument("course_id")
def enroll_remove(student_id: str, course_id: str) -> None:
    unenroll_student(get_db(), student_id, course_id)


@enroll.command(name="groups")
def enroll_groups() -> None:
    """List the intake/cohort groups available for bulk enrollment."""
    show_groups(get_db())


def _component_options(func):
    for name in reversed(ASSESSMENT_TYPES):
        func = click.option(
            f"--{name.replace('_', '-')}", name, type=float, default=None
        )(func)
    return func


@cli.group()
def marks() -> None:
    pass


@marks.command(name="set")
@click.argument("student_id")
@click.argument("course_id")
@_component_options
@click.option("--publish/--draft", default=False)
@click.option("--by", "changed_by", help="Lecturer recording the mark")
def marks_set(
    student_id: str,
    course_id: str,
    publish: bool,
    changed_by: Optional[str],
    **scores,
) -> None:
    """Record component scores for a student; omitted components are kept."""
    components = {key: value for key, value in scores.items() if value is not None}
    set_mark(get_db(), student_id, course_id, components, publish, changed_by)


@marks.command(name="show")
@click.argument("student_id", required=False)
@click.option("--course", "course_id", help="Summarise a course instead")
@click.option("--drafts", is_flag=True, help="Include unpublished marks")
def marks_show(
    student_id: Optional[str], course_id: Optional[str], drafts: bool
) -> None:
    session = get_db()
    if course_id:
        show_course_summary(session, course_id)
    elif student_id:
        show_student_marks(session, student_id, drafts)
    else:
        raise click.UsageError("Give a STUDENT_ID or --course")


@marks.command(name="history")
@click.argument("mark_id")
def marks_history(mark_id: str) -> None:
    show_mark_history(get_db(), mark_id)


@cli.group()
def claims() -> None:
    pass


@claims.command(name="submit")
@click.argument("student_id")
@click.argument("mark_id")
@click.argument("assessment_type", type=click.Choice(list(ASSESSMENT_TYPES)))
@click.argument("explanation")
def claims_submit(
    student_id: str, mark_id: str, assessment_type: str, explanation: str
) -> None:
    file_claim(get_db(), student_id, mark_id, assessment_type, explanation)


@claims.command(name="resolve")
@click.argument("claim_id")
@click.argument("decision", type=click.Choice(["approve", "reject"]))
@click.option("--value", "corrected_value", type=float, help="Corrected score")
@click.option("--comment")
@click.option("--by", "resolved_by", help="Resolving lecturer")
def claims_resolve(
    claim_id: str,
    decision: str,
    corrected_value: Optional[float],
    comment: Optional[str],
    resolved_by: Optional[str],
) -> None:
    decide_claim(get_db(), claim_id, decision, comment, corrected_value, resolved_by)


@claims.command(name="list")
@click.option("--student", "student_id")
@click.option("--lecturer", "lecturer_id")
def claims_list(student_id: Optional[str], lecturer_id: Optional[str]) -> None:
    show_claims(get_db(), student_id, lecturer_id)


@claims.command(name="report")
@click.argument("claim_id")
@click.option("--output-dir", type=click.Path(file_okay=False))
def claims_report(claim_id: str, output_dir: Optional[str]) -> None:
    """Generate the PDF correction report of a resolved claim."""
    export_claim_report(get_db(), claim_id, output_dir)


@cli.group()
def update() -> None:
    pass


@update.command(name="course-dates")
@click.argument("codes", nargs=-1, required=True)
@click.option("--start", "start_date", required=True, help="YYYY-MM-DD")
@click.option("--end", "end_date", required=True, help="YYYY-MM-DD")
@click.option("--cohort", "cohort_year", help="Also set the cohort year")
def update_dates(
    codes: tuple[str, ...], start_date: str, end_date: str, cohort_year: Optional[str]
) -> None:
    update_course_dates(get_db(), list(codes), start_date, end_date, cohort_year)


@update.command(name="marks")
@click.argument("file_path", type=click.Path(exists=True))
@click.option("--by", "changed_by", help="Lecturer recording the marks")
def update_marks(file_path: str, changed_by: Optional[str]) -> None:
    """Import marks from an Excel workbook."""
    update_marks_from_excel(get_db(), file_path, changed_by)


@cli.group()
def export() -> None:
    pass


@export.command(name="marks")
@click.argument("course_id")
@click.option("--output-dir", default="exports", type=click.Path(file_okay=False))
def export_marks(course_id: str, output_dir: str) -> None:
    export_course_marks(get_db(), course_id, output_dir)


@cli.group()
def check() -> None:
    pass


@check.command(name="duplicate-marks")
def duplicate_marks() -> None:
    check_duplicate_marks(get_db())


if __name__ == "__main__":
    cli()
