import os
from datetime import datetime
from typing import Optional

import click
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy.orm import Session

from records_cli.commands.common import fail
from records_cli.grade_definitions import get_grade_by_marks
from records_cli.models import Course, Mark, User

COMPONENT_HEADERS = [
    ("CAT", "cat"),
    ("FAT", "fat"),
    ("Individual Assignment", "individual_assignment"),
    ("Group Assignment", "group_assignment"),
    ("Quiz", "quiz"),
    ("Attendance", "attendance"),
]


def export_course_marks(
    db: Session, course_id: str, output_dir: str = "exports"
) -> Optional[str]:
    """Export the marks of a course, drafts included, to an Excel workbook."""
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        fail(f"Course {course_id} not found")

    rows = (
        db.query(Mark, User)
        .join(User, Mark.student_id == User.id)
        .filter(Mark.course_id == course_id)
        .order_by(User.name)
        .all()
    )
    if not rows:
        click.secho(f"No marks recorded for {course.code}.", fg="yellow")
        return None

    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = course.code[:31]

    header = (
        ["StudentID", "CourseID", "Name", "Reg Number", "Intake", "Cohort"]
        + [label for label, _ in COMPONENT_HEADERS]
        + ["Total", "Grade", "Publish"]
    )
    worksheet.append(header)
    for cell in worksheet[1]:
        cell.font = Font(bold=True)

    for mark, student in rows:
        worksheet.append(
            [
                student.id,
                course.id,
                student.name,
                student.reg_number,
                student.intake,
                student.cohort_year,
            ]
            + [getattr(mark, field) for _, field in COMPONENT_HEADERS]
            + [mark.total, get_grade_by_marks(mark.total), "yes" if mark.is_published else "no"]
        )

    os.makedirs(output_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    file_path = os.path.join(output_dir, f"marks_{course.code}_{timestamp}.xlsx")
    workbook.save(file_path)

    click.secho(
        f"Successfully exported {len(rows)} marks for {course.code} to: {file_path}",
        fg="green",
    )
    return file_path
