import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)
from sqlalchemy.orm import Session

from records_cli.claims import get_claim
from records_cli.errors import ValidationError
from records_cli.models import Claim, Course, User
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

OUTPUT_DIR = Path("correction_reports")

ASSESSMENT_LABELS = {
    "cat": "CAT",
    "fat": "FAT",
    "individual_assignment": "Individual Assignment",
    "group_assignment": "Group Assignment",
    "quiz": "Quiz",
    "attendance": "Attendance",
}


def _format_timestamp(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M")


class CorrectionReportGenerator:
    """Generates the academic correction report of a resolved claim"""

    BRAND_PRIMARY = colors.HexColor("#212121")
    BRAND_GRAY = colors.HexColor("#333333")

    @staticmethod
    def generate(
        claim: Claim,
        student: Optional[User],
        course: Optional[Course],
        output_dir: Optional[Path] = None,
    ) -> str:
        """Write the report PDF and return its path

        Args:
            claim: A resolved claim
            student: The claimant, if still on record
            course: The course of the disputed mark
            output_dir: Directory for the PDF (default: correction_reports)
        """
        output_dir = Path(output_dir or OUTPUT_DIR)
        output_dir.mkdir(parents=True, exist_ok=True)
        pdf_path = os.path.join(output_dir, f"CorrectionReport_{claim.id}.pdf")

        styles = CorrectionReportGenerator._create_styles()
        doc = SimpleDocTemplate(
            pdf_path,
            pagesize=A4,
            rightMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            topMargin=0.5 * inch,
            bottomMargin=0.5 * inch,
            title=f"Correction Report - {claim.id}",
            author="Academic Records",
        )

        elements: List[Any] = []
        elements.append(Paragraph("ACADEMIC CORRECTION REPORT", styles["title"]))
        elements.append(
            HRFlowable(
                width="100%",
                thickness=2,
                color=CorrectionReportGenerator.BRAND_PRIMARY,
                spaceBefore=4,
                spaceAfter=12,
            )
        )
        elements.append(
            CorrectionReportGenerator._build_details_table(
                claim, student, course, styles
            )
        )
        elements.append(Spacer(1, 0.3 * inch))
        elements.append(Paragraph("Student Explanation", styles["section_header"]))
        elements.append(Paragraph(escape(claim.explanation), styles["normal"]))
        elements.append(Spacer(1, 0.2 * inch))
        elements.append(Paragraph("Lecturer Comments", styles["section_header"]))
        elements.append(Paragraph(escape(claim.lecturer_comment or ""), styles["normal"]))
        elements.append(Spacer(1, 0.4 * inch))
        elements.append(
            Paragraph(
                f"Generated on {datetime.now().strftime('%Y-%m-%d %H:%M')}",
                styles["small"],
            )
        )

        doc.build(elements)
        logger.info(f"Generated correction report: {pdf_path}")
        return pdf_path

    @staticmethod
    def _build_details_table(
        claim: Claim,
        student: Optional[User],
        course: Optional[Course],
        styles: Dict[str, ParagraphStyle],
    ) -> Table:
        student_label = "Unknown"
        if student:
            student_label = student.name
            if student.email:
                student_label += f" ({student.email})"
        course_label = f"{course.code} - {course.name}" if course else "Unknown"

        rows = [
            ("Claim ID", claim.id),
            ("Student", student_label),
            ("Course", course_label),
            (
                "Assessment",
                ASSESSMENT_LABELS.get(claim.assessment_type, claim.assessment_type),
            ),
            ("Original Mark", f"{claim.original_mark:g}"),
            ("Decision", claim.status.upper()),
            ("Submitted At", _format_timestamp(claim.submitted_at)),
            ("Resolved At", _format_timestamp(claim.resolved_at)),
        ]
        data = [
            [
                Paragraph(label, styles["data_label"]),
                Paragraph(escape(str(value)), styles["data_value"]),
            ]
            for label, value in rows
        ]

        table = Table(data, colWidths=[1.8 * inch, 5 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return table

    @staticmethod
    def _create_styles() -> Dict[str, ParagraphStyle]:
        return {
            "title": ParagraphStyle(
                "Title",
                fontSize=15,
                alignment=0,
                spaceAfter=8,
                fontName="Helvetica-Bold",
                textColor=CorrectionReportGenerator.BRAND_PRIMARY,
                leading=17,
            ),
            "section_header": ParagraphStyle(
                "SectionHeader",
                fontSize=11,
                fontName="Helvetica-Bold",
                spaceAfter=8,
                textColor=CorrectionReportGenerator.BRAND_PRIMARY,
                leading=13,
            ),
            "normal": ParagraphStyle(
                "Normal",
                fontSize=9,
                fontName="Helvetica",
                leading=11,
            ),
            "small": ParagraphStyle(
                "Small",
                fontSize=7,
                fontName="Helvetica",
                leading=9,
                textColor=CorrectionReportGenerator.BRAND_GRAY,
            ),
            "data_label": ParagraphStyle(
                "DataLabel",
                fontSize=9,
                fontName="Helvetica-Bold",
                textColor=CorrectionReportGenerator.BRAND_GRAY,
            ),
            "data_value": ParagraphStyle(
                "DataValue",
                fontSize=9,
                fontName="Helvetica",
            ),
        }


def generate_correction_report(
    db: Session, claim_id: str, output_dir: Optional[Path] = None
) -> str:
    """Create the correction report PDF of a resolved claim."""
    claim = get_claim(db, claim_id)
    if claim.status == "pending":
        raise ValidationError(f"Claim {claim_id} is still pending")

    student = db.query(User).filter(User.id == claim.student_id).first()
    course = db.query(Course).filter(Course.id == claim.course_id).first()
    return CorrectionReportGenerator.generate(claim, student, course, output_dir)
