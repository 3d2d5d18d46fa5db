"""
Grade scale conversion

Fixed institutional scale: numerical score (0-100) -> letter grade -> grade point.
A score belongs to the highest band whose lower bound it reaches, so a
fractional score such as 97.5 stays in B+.
"""

import math
from dataclasses import dataclass
from typing import Dict, List

from qpi_tracker.core.errors import InvalidGradeError


@dataclass(frozen=True)
class GradeBand:
    min: int
    max: int
    points: float


# Ordered from highest to lowest band
GRADE_SCALE: Dict[str, GradeBand] = {
    "A": GradeBand(min=98, max=100, points=4.0),
    "B+": GradeBand(min=94, max=97, points=3.5),
    "B": GradeBand(min=90, max=93, points=3.0),
    "C+": GradeBand(min=86, max=89, points=2.5),
    "C": GradeBand(min=82, max=85, points=2.0),
    "D+": GradeBand(min=78, max=81, points=1.5),
    "D": GradeBand(min=75, max=77, points=1.0),
    "F": GradeBand(min=0, max=74, points=0.0),
}

PASSING_GRADE = 75


def is_valid_numerical_grade(grade) -> bool:
    """True for finite numbers within 0-100."""
    if isinstance(grade, bool) or not isinstance(grade, (int, float)):
        return False
    return math.isfinite(grade) and 0 <= grade <= 100


def _band_for(numerical_grade: float) -> str:
    if not is_valid_numerical_grade(numerical_grade):
        raise InvalidGradeError(
            f"Invalid numerical grade: {numerical_grade}. Must be between 0 and 100."
        )
    for letter, band in GRADE_SCALE.items():
        if numerical_grade >= band.min:
            return letter
    # F starts at 0, unreachable for valid input
    raise InvalidGradeError(f"Unable to convert numerical grade: {numerical_grade}")


def convert_numerical_to_letter(numerical_grade: float) -> str:
    return _band_for(numerical_grade)


def convert_numerical_to_grade_point(numerical_grade: float) -> float:
    return GRADE_SCALE[_band_for(numerical_grade)].points


def _normalize_letter(letter_grade: str) -> str:
    normalized = (letter_grade or "").strip().upper()
    if normalized not in GRADE_SCALE:
        raise InvalidGradeError(
            f"Invalid letter grade: {letter_grade!r}. "
            f"Valid grades are: {', '.join(GRADE_SCALE)}"
        )
    return normalized


def convert_letter_to_grade_point(letter_grade: str) -> float:
    """Case-insensitive letter grade -> grade point."""
    return GRADE_SCALE[_normalize_letter(letter_grade)].points


def get_grade_scale_info(letter_grade: str) -> GradeBand:
    return GRADE_SCALE[_normalize_letter(letter_grade)]


def get_available_letter_grades() -> List[str]:
    return list(GRADE_SCALE)


def is_passing(numerical_grade: float) -> bool:
    return is_valid_numerical_grade(numerical_grade) and numerical_grade >= PASSING_GRADE


def is_passing_letter_grade(letter_grade: str) -> bool:
    normalized = (letter_grade or "").strip().upper()
    return normalized in GRADE_SCALE and normalized != "F"
