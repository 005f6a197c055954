from typing import Optional

import click
from sqlalchemy.orm import Session

from records_cli.claims import (
    ClaimDecision,
    claim_status_counts,
    list_claims,
    resolve_claim,
    submit_claim,
)
from records_cli.commands.common import fail, format_score, format_timestamp
from records_cli.errors import RecordsError
from records_cli.utils.pdf_generator import generate_correction_report

STATUS_COLORS = {"pending": "yellow", "approved": "green", "rejected": "red"}


def file_claim(
    db: Session, student_id: str, mark_id: str, assessment_type: str, explanation: str
) -> None:
    try:
        claim = submit_claim(db, student_id, mark_id, assessment_type, explanation)
    except RecordsError as e:
        fail(e.message)
    click.secho(
        f"Claim {claim.id} submitted: {assessment_type} "
        f"(original mark {format_score(claim.original_mark)})",
        fg="green",
    )


def decide_claim(
    db: Session,
    claim_id: str,
    decision: ClaimDecision,
    comment: Optional[str],
    corrected_value: Optional[float],
    resolved_by: Optional[str],
) -> None:
    try:
        claim = resolve_claim(
            db,
            claim_id,
            decision,
            comment=comment,
            corrected_value=corrected_value,
            resolved_by=resolved_by,
        )
    except RecordsError as e:
        fail(e.message)
    click.secho(
        f"Claim {claim.id} {claim.status}: {claim.lecturer_comment}",
        fg=STATUS_COLORS[claim.status],
    )


def show_claims(
    db: Session, student_id: Optional[str] = None, lecturer_id: Optional[str] = None
) -> None:
    claims = list_claims(db, student_id=student_id, lecturer_id=lecturer_id)
    if not claims:
        click.secho("No claims found.", fg="yellow")
        return

    for claim in claims:
        click.secho(
            f"{claim.id}  {claim.status:<9} {claim.assessment_type:<22} "
            f"original {format_score(claim.original_mark):>6}  "
            f"submitted {format_timestamp(claim.submitted_at)}  "
            f"resolved {format_timestamp(claim.resolved_at)}",
            fg=STATUS_COLORS.get(claim.status),
        )

    counts = claim_status_counts(claims)
    click.echo(
        f"\nPending: {counts['pending']}  Approved: {counts['approved']}  "
        f"Rejected: {counts['rejected']}"
    )


def export_claim_report(db: Session, claim_id: str, output_dir: Optional[str]) -> None:
    try:
        path = generate_correction_report(db, claim_id, output_dir)
    except RecordsError as e:
        fail(e.message)
    click.secho(f"Correction report generated: {path}", fg="green")
