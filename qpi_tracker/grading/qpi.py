"""
QPI arithmetic

QPI = total quality points / total units, where quality points = units * grade point.
Only graded records (those with a grade point) take part. Every function returns
0.0 rather than dividing by zero.
"""

from collections import OrderedDict
from typing import Iterable, List, Optional

from qpi_tracker.records.models import (
    GradeRecord,
    QPIResult,
    SemesterRecord,
    SemesterType,
    YearlyQPI,
)


def calculate_quality_points(units: float, grade_point: float) -> float:
    return units * grade_point


def calculate_semester_totals(grades: Iterable[GradeRecord]) -> QPIResult:
    """Units, quality points and QPI over the graded records."""
    total_units = 0.0
    total_quality_points = 0.0

    for grade in grades:
        if not grade.is_graded:
            continue
        total_units += grade.units
        total_quality_points += calculate_quality_points(grade.units, grade.grade_point)

    qpi = total_quality_points / total_units if total_units > 0 else 0.0
    return QPIResult(qpi=qpi, total_units=total_units, total_quality_points=total_quality_points)


def calculate_qpi(grades: Iterable[GradeRecord]) -> float:
    return calculate_semester_totals(grades).qpi


def calculate_semester_qpi(semester: SemesterRecord) -> float:
    """QPI from a semester's stored totals."""
    if not semester.total_units:
        return 0.0
    return semester.total_quality_points / semester.total_units


def calculate_cumulative_qpi(semesters: Iterable[SemesterRecord]) -> float:
    total_units = 0.0
    total_quality_points = 0.0
    for semester in semesters:
        total_units += semester.total_units or 0.0
        total_quality_points += semester.total_quality_points or 0.0

    if total_units == 0:
        return 0.0
    return total_quality_points / total_units


def calculate_yearly_qpi(
    first_sem_qpi: float,
    second_sem_qpi: Optional[float] = None,
    summer_qpi: Optional[float] = None,
    first_sem_units: Optional[float] = None,
    second_sem_units: Optional[float] = None,
    summer_units: Optional[float] = None,
) -> float:
    """
    Yearly QPI from semester QPIs.

    With first and second semester units given, the result is unit-weighted;
    otherwise it is the plain average of the semester QPIs supplied.
    """
    if first_sem_units is not None and second_sem_units is not None:
        pairs = [
            (first_sem_qpi, first_sem_units),
            (second_sem_qpi, second_sem_units),
            (summer_qpi, summer_units),
        ]
        weighted = 0.0
        total_units = 0.0
        for qpi, units in pairs:
            if qpi is None or units is None:
                continue
            weighted += qpi * units
            total_units += units
        return weighted / total_units if total_units > 0 else 0.0

    qpis = [q for q in (first_sem_qpi, second_sem_qpi, summer_qpi) if q is not None]
    return sum(qpis) / len(qpis) if qpis else 0.0


def calculate_yearly_qpis(semesters: Iterable[SemesterRecord]) -> List[YearlyQPI]:
    """Group semesters by academic year (first appearance order)."""
    by_year: "OrderedDict[str, List[SemesterRecord]]" = OrderedDict()
    for semester in semesters:
        by_year.setdefault(semester.academic_year, []).append(semester)

    result = []
    for academic_year, year_semesters in by_year.items():
        def _qpi_of(kind: SemesterType) -> Optional[float]:
            for s in year_semesters:
                if s.semester_type == kind:
                    return s.semester_qpi
            return None

        first = _qpi_of(SemesterType.FIRST)
        second = _qpi_of(SemesterType.SECOND)
        summer = _qpi_of(SemesterType.SUMMER)
        present = [q for q in (first, second, summer) if q is not None]

        result.append(
            YearlyQPI(
                academic_year=academic_year,
                first_sem_qpi=first,
                second_sem_qpi=second,
                summer_qpi=summer,
                yearly_qpi=sum(present) / len(present) if present else None,
            )
        )
    return result
