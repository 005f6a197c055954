"""
Letter grade definitions for course totals.

Totals are out of 100. The pass mark is shared with the eligibility rules,
where a published total below it opens the retake path.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional

GradeLetter = Literal["A", "B", "C", "D", "F"]

PASS_MARK = 50


@dataclass
class MarkRange:
    """Represents a mark range with an inclusive minimum."""

    min: float
    max: float


@dataclass
class GradeDefinition:
    grade: GradeLetter
    description: str
    marks_range: MarkRange


GRADE_DEFINITIONS: List[GradeDefinition] = [
    GradeDefinition(
        grade="A",
        description="Excellent",
        marks_range=MarkRange(min=70, max=100),
    ),
    GradeDefinition(
        grade="B",
        description="Very Good",
        marks_range=MarkRange(min=60, max=70),
    ),
    GradeDefinition(
        grade="C",
        description="Pass",
        marks_range=MarkRange(min=50, max=60),
    ),
    GradeDefinition(
        grade="D",
        description="Marginal Fail",
        marks_range=MarkRange(min=40, max=50),
    ),
    GradeDefinition(
        grade="F",
        description="Fail",
        marks_range=MarkRange(min=0, max=40),
    ),
]

_GRADE_LOOKUP: Dict[GradeLetter, GradeDefinition] = {
    grade_def.grade: grade_def for grade_def in GRADE_DEFINITIONS
}


def get_grade_definition(grade: GradeLetter) -> Optional[GradeDefinition]:
    return _GRADE_LOOKUP.get(grade)


def get_grade_by_marks(total: float) -> GradeLetter:
    """
    Get the letter grade for a course total.

    Args:
        total: The course total, usually 0 to 100

    Returns:
        The first grade whose minimum the total reaches, "F" otherwise
    """
    for grade_def in GRADE_DEFINITIONS:
        if total >= grade_def.marks_range.min:
            return grade_def.grade
    return "F"


def is_passing(total: Optional[float]) -> bool:
    if total is None:
        return False
    return total >= PASS_MARK


def grade_distribution(totals: Iterable[float]) -> Dict[GradeLetter, int]:
    """Count totals per letter grade, listing every grade even when empty."""
    counts: Dict[GradeLetter, int] = {
        grade_def.grade: 0 for grade_def in GRADE_DEFINITIONS
    }
    for total in totals:
        counts[get_grade_by_marks(total)] += 1
    return counts
