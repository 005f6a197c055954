import os
from typing import Any, Dict, Optional

import click
import openpyxl
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.errors import RecordsError
from records_cli.ledger import upsert_mark
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

COMPONENT_COLUMNS = {
    "CAT": "cat",
    "FAT": "fat",
    "Individual Assignment": "individual_assignment",
    "Group Assignment": "group_assignment",
    "Quiz": "quiz",
    "Attendance": "attendance",
}
REQUIRED_COLUMNS = ["StudentID", "CourseID"]
TRUE_VALUES = {"1", "true", "yes", "y", "publish", "published"}


def _is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES if value is not None else False


def update_marks_from_excel(
    db: Session, file_path: str, changed_by: Optional[str] = None
) -> Dict[str, int]:
    """
    Record grading rows from an Excel workbook through the mark ledger.

    Processed rows are flagged "done" in a Status column and the workbook is
    saved back, so running the import again skips them.
    """
    counts = {"updated": 0, "skipped": 0, "errors": 0}

    if not os.path.exists(file_path):
        click.secho(f"Error: File {file_path} not found", fg="red")
        return counts

    click.echo(f"Reading data from {file_path}...")
    workbook = openpyxl.load_workbook(file_path, data_only=True)
    worksheet = workbook.active

    if worksheet is None:
        click.secho(f"Error: No active worksheet found in {file_path}", fg="red")
        return counts

    header_row = [cell.value for cell in worksheet[1]]
    missing_columns = [c for c in REQUIRED_COLUMNS if c not in header_row]
    if missing_columns:
        click.secho(
            f"Error: Missing required columns: {', '.join(missing_columns)}",
            fg="red",
        )
        return counts

    column_indices = {column: header_row.index(column) for column in REQUIRED_COLUMNS}
    component_indices = {
        field: header_row.index(column)
        for column, field in COMPONENT_COLUMNS.items()
        if column in header_row
    }
    publish_index = header_row.index("Publish") if "Publish" in header_row else None

    if "Status" in header_row:
        status_column_index = header_row.index("Status") + 1
    else:
        status_column_index = len(header_row) + 1
        worksheet.cell(row=1, column=status_column_index, value="Status")

    for row_index, row in enumerate(worksheet.iter_rows(min_row=2), start=2):
        status_cell = worksheet.cell(row=row_index, column=status_column_index)
        if status_cell.value == "done":
            counts["skipped"] += 1
            continue

        student_id = row[column_indices["StudentID"]].value
        course_id = row[column_indices["CourseID"]].value
        if student_id is None or course_id is None:
            continue

        components = {
            field: row[index].value
            for field, index in component_indices.items()
            if index < len(row)
        }
        publish = (
            _is_truthy(row[publish_index].value) if publish_index is not None else False
        )

        try:
            upsert_mark(
                db,
                str(student_id).strip(),
                str(course_id).strip(),
                components,
                publish,
                changed_by=changed_by,
            )
        except RecordsError as e:
            click.secho(f"Warning: Row {row_index}: {e.message}", fg="yellow")
            counts["errors"] += 1
            continue
        except SQLAlchemyError as e:
            db.rollback()
            click.secho(f"Error processing row {row_index}: {str(e)}", fg="red")
            logger.error(f"Mark import failed at row {row_index} of {file_path}: {e}")
            counts["errors"] += 1
            continue

        counts["updated"] += 1
        status_cell.value = "done"

    workbook.save(file_path)
    click.secho(f"Successfully updated {counts['updated']} marks", fg="green")

    if counts["skipped"] > 0:
        click.secho(
            f"Skipped {counts['skipped']} rows that were already marked as done",
            fg="blue",
        )
    if counts["errors"] > 0:
        click.secho(f"Encountered {counts['errors']} errors while updating", fg="red")
    return counts
