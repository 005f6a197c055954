import pytest

from records_cli.grade_definitions import (
    PASS_MARK,
    get_grade_by_marks,
    get_grade_definition,
    grade_distribution,
    is_passing,
)


@pytest.mark.parametrize(
    "total, grade",
    [
        (100, "A"),
        (70, "A"),
        (69.99, "B"),
        (60, "B"),
        (50, "C"),
        (49.5, "D"),
        (40, "D"),
        (39, "F"),
        (0, "F"),
        (-5, "F"),
    ],
)
def test_get_grade_by_marks(total, grade):
    assert get_grade_by_marks(total) == grade


def test_pass_mark_boundary():
    assert is_passing(PASS_MARK)
    assert not is_passing(PASS_MARK - 0.01)
    assert not is_passing(None)


def test_grade_definition_lookup():
    definition = get_grade_definition("C")
    assert definition is not None
    assert definition.description == "Pass"
    assert definition.marks_range.min == PASS_MARK


def test_grade_distribution_lists_every_grade():
    counts = grade_distribution([95, 72, 55, 10])
    assert counts == {"A": 2, "B": 0, "C": 1, "D": 0, "F": 1}
    assert grade_distribution([]) == {"A": 0, "B": 0, "C": 0, "D": 0, "F": 0}
