import math

import pytest

from qpi_tracker.core.errors import InvalidGradeError
from qpi_tracker.grading.scale import (
    GRADE_SCALE,
    convert_letter_to_grade_point,
    convert_numerical_to_grade_point,
    convert_numerical_to_letter,
    get_available_letter_grades,
    get_grade_scale_info,
    is_passing,
    is_passing_letter_grade,
    is_valid_numerical_grade,
)


@pytest.mark.parametrize(
    "score, letter, points",
    [
        (100, "A", 4.0),
        (98, "A", 4.0),
        (97, "B+", 3.5),
        (94, "B+", 3.5),
        (93, "B", 3.0),
        (90, "B", 3.0),
        (89, "C+", 2.5),
        (86, "C+", 2.5),
        (85, "C", 2.0),
        (82, "C", 2.0),
        (81, "D+", 1.5),
        (78, "D+", 1.5),
        (77, "D", 1.0),
        (75, "D", 1.0),
        (74, "F", 0.0),
        (0, "F", 0.0),
    ],
)
def test_band_boundaries(score, letter, points):
    assert convert_numerical_to_letter(score) == letter
    assert convert_numerical_to_grade_point(score) == points


def test_fractional_scores_stay_in_lower_band():
    assert convert_numerical_to_letter(97.5) == "B+"
    assert convert_numerical_to_letter(74.9) == "F"
    assert convert_numerical_to_grade_point(89.99) == 2.5


@pytest.mark.parametrize("bad", [-1, 100.01, 101, math.nan, math.inf, "95", None, True])
def test_invalid_numerical_grades_raise(bad):
    assert not is_valid_numerical_grade(bad)
    with pytest.raises(InvalidGradeError):
        convert_numerical_to_letter(bad)


def test_letter_lookup_is_case_insensitive():
    assert convert_letter_to_grade_point("b+") == 3.5
    assert convert_letter_to_grade_point(" A ") == 4.0


@pytest.mark.parametrize("bad", ["A+", "Z", "", "E"])
def test_unknown_letters_raise(bad):
    with pytest.raises(InvalidGradeError):
        convert_letter_to_grade_point(bad)


def test_scale_info_and_letter_order():
    assert get_available_letter_grades() == ["A", "B+", "B", "C+", "C", "D+", "D", "F"]
    info = get_grade_scale_info("c+")
    assert (info.min, info.max, info.points) == (86, 89, 2.5)


def test_bands_cover_zero_to_hundred_without_gaps():
    bands = sorted(GRADE_SCALE.values(), key=lambda b: b.min)
    assert bands[0].min == 0 and bands[-1].max == 100
    for lower, upper in zip(bands, bands[1:]):
        assert upper.min == lower.max + 1


def test_passing():
    assert is_passing(75)
    assert not is_passing(74.9)
    assert not is_passing(150)
    assert is_passing_letter_grade("d")
    assert not is_passing_letter_grade("F")
    assert not is_passing_letter_grade("Q")
