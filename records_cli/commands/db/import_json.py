import json
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type

import click
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.ledger import coerce_score, compute_total, record_history
from records_cli.models import (
    ASSESSMENT_TYPES,
    Base,
    ChangeReason,
    Claim,
    Course,
    Enrollment,
    Mark,
    StudentModuleAssignment,
    User,
)
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

# Dependency order: parents first.
TABLES: List[tuple[str, Type[Base]]] = [
    ("users", User),
    ("courses", Course),
    ("student_modules", StudentModuleAssignment),
    ("enrollments", Enrollment),
    ("marks", Mark),
    ("claims", Claim),
]

TIMESTAMP_FIELDS = {"created_at", "joined_at", "submitted_at", "resolved_at"}
FIELD_ALIASES = {"role": {"head-of-department": "hod", "head_of_department": "hod"}}


def to_snake_case(key: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key).lower()


def _parse_timestamp(value: Any) -> Optional[int]:
    if value is None or isinstance(value, (int, float)):
        return int(value) if value is not None else None
    try:
        return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp {value!r}")
        return None


def normalize_record(model: Type[Base], record: Dict[str, Any]) -> Dict[str, Any]:
    """Map a dumped record onto the model's columns, dropping unknown keys."""
    columns = {c.key for c in inspect(model).column_attrs}
    values: Dict[str, Any] = {}
    for raw_key, value in record.items():
        key = to_snake_case(raw_key)
        if key not in columns:
            continue
        if key in TIMESTAMP_FIELDS:
            value = _parse_timestamp(value)
            if value is None and key != "resolved_at":
                continue
        elif key in FIELD_ALIASES and isinstance(value, str):
            value = FIELD_ALIASES[key].get(value, value)
        elif key in ("intake", "cohort_year", "academic_year", "target_year"):
            value = str(value) if value is not None else None
        values[key] = value

    if model is Mark:
        for name in ASSESSMENT_TYPES:
            if name in values:
                values[name] = coerce_score(values[name])
        values["total"] = compute_total(values)
    return values


IMPORTED_BY = "import"


def _stage_mark(
    db: Session, values: Dict[str, Any]
) -> Optional[Tuple[Mark, Optional[Dict[str, Any]], ChangeReason]]:
    """
    Apply one dumped mark to the session.

    Returns the mark with its previous snapshot and change reason, or None
    when the stored row already holds the same values.
    """
    mark = None
    if values.get("id"):
        mark = db.query(Mark).filter(Mark.id == values["id"]).first()
    if mark is None:
        mark = (
            db.query(Mark)
            .filter(
                Mark.student_id == values.get("student_id"),
                Mark.course_id == values.get("course_id"),
            )
            .first()
        )

    if mark is None:
        mark = Mark(**values)
        db.add(mark)
        return mark, None, "Creation"

    old_values = mark.snapshot()
    for key, value in values.items():
        if key not in ("id", "total"):
            setattr(mark, key, value)
    mark.total = compute_total(mark.components())
    if mark.snapshot() == old_values:
        return None
    return mark, old_values, "Update"


def _import_marks(db: Session, records: List[Dict[str, Any]]) -> None:
    staged = []
    for record in records:
        change = _stage_mark(db, normalize_record(Mark, record))
        if change is not None:
            staged.append(change)
            db.flush()
    db.commit()

    for mark, old_values, reason in staged:
        record_history(db, mark, old_values, reason, IMPORTED_BY)


def import_json_dump(db: Session, file_path: str) -> Dict[str, int]:
    """
    Upsert every known table of a JSON dump into the database.

    Each table is committed on its own; a failing table is rolled back and
    reported without stopping the rest of the import.
    """
    counts: Dict[str, int] = {}
    if not os.path.exists(file_path):
        click.secho(f"Error: File {file_path} not found", fg="red")
        return counts

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    click.echo("Starting import...")
    for table, model in TABLES:
        records = data.get(table)
        if records is None:
            records = data.get(re.sub(r"_(\w)", lambda m: m.group(1).upper(), table))
        if not records:
            continue

        click.echo(f"Importing {len(records)} {table}...")
        try:
            if model is Mark:
                _import_marks(db, records)
            else:
                for record in records:
                    db.merge(model(**normalize_record(model, record)))
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Import of {table} failed: {e}")
            click.secho(f"Error importing {table}: {str(e)}", fg="red")
            continue

        counts[table] = len(records)
        click.secho(f"{table} imported.", fg="green")

    click.secho("Import completed!", fg="green")
    return counts
