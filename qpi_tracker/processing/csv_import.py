"""CSV import of grade records, grouped by semester."""

import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from qpi_tracker.core.errors import CSVImportError, InvalidGradeError
from qpi_tracker.grading.scale import (
    convert_letter_to_grade_point,
    convert_numerical_to_grade_point,
    convert_numerical_to_letter,
    is_valid_numerical_grade,
)
from qpi_tracker.records.models import SemesterType

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "course_code": ("Course Code", "courseCode", "course_code"),
    "course_title": ("Course Title", "courseTitle", "title", "course_title"),
    "units": ("Units", "units"),
    "numerical_grade": ("Numerical Grade", "numericalGrade", "numerical_grade"),
}

OPTIONAL_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "course_id": ("Course ID", "courseId", "course_id"),
    "notes": ("Notes", "notes"),
    "semester": ("Semester", "semester"),
    "academic_year": ("Academic Year", "academicYear", "academic_year"),
    "year_level": ("Year Level", "yearLevel", "year_level"),
}

MAX_UNITS = 6
SEMESTER_TYPES = [t.value for t in SemesterType]


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ImportedRow:
    """One CSV row after conversion, kept for previews and semester grouping."""
    row: int
    course_code: str
    course_title: str
    units: float
    grade: Optional[float]
    semester: str
    academic_year: str
    year_level: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class CSVConversion:
    grades: List[Dict[str, Any]]  # payloads accepted by GradeStore.add_grade
    semester_groups: Dict[str, List[ImportedRow]]


@dataclass
class ParsedGradeEntry:
    letter_grade: str
    grade_point: float
    numerical_grade: Optional[float] = None


def parse_csv(csv_content: str) -> List[Dict[str, str]]:
    """CSV text -> list of row dicts (all values as stripped strings)."""
    text = csv_content.lstrip("\ufeff").strip()
    if not text:
        return []

    df = pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    df = df.apply(lambda col: col.str.strip())
    return df.to_dict("records")


def resolve_columns(first_row: Dict[str, str]) -> Tuple[Dict[str, str], List[str]]:
    """Map canonical names to the header actually used. Returns (mapping, errors)."""
    mapping: Dict[str, str] = {}
    errors: List[str] = []

    for canonical, aliases in REQUIRED_COLUMNS.items():
        found = next((a for a in aliases if a in first_row), None)
        if found is None:
            errors.append(f"Missing required column: {' or '.join(aliases)}")
        else:
            mapping[canonical] = found

    for canonical, aliases in OPTIONAL_COLUMNS.items():
        found = next((a for a in aliases if a in first_row), None)
        if found is not None:
            mapping[canonical] = found

    return mapping, errors


def _to_float(value: str) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_csv_structure(rows: List[Dict[str, str]]) -> ValidationResult:
    if not rows:
        return ValidationResult(is_valid=True)

    columns, errors = resolve_columns(rows[0])
    if errors:
        return ValidationResult(is_valid=False, errors=errors)

    for idx, row in enumerate(rows, start=1):
        course_code = row.get(columns["course_code"], "")
        title = row.get(columns["course_title"], "")
        units_value = row.get(columns["units"], "")
        grade_value = row.get(columns["numerical_grade"], "")

        units = _to_float(units_value)
        if units is None or units <= 0 or units > MAX_UNITS:
            errors.append(f'Row {idx}: Invalid units value "{units_value}". Must be between 0.5 and {MAX_UNITS}.')

        # Blank grade: ungraded course slot
        grade = _to_float(grade_value)
        if grade_value and (grade is None or not is_valid_numerical_grade(grade)):
            errors.append(f'Row {idx}: Invalid numerical grade value "{grade_value}". Must be between 0 and 100.')

        if not course_code or not 3 <= len(course_code) <= 20:
            errors.append(f'Row {idx}: Invalid course code "{course_code}". Must be 3-20 characters.')

        if not title or len(title) > 200:
            errors.append(f'Row {idx}: Invalid course title "{title}". Must be 1-200 characters.')

        if "semester" in columns:
            semester_value = row.get(columns["semester"], "")
            if semester_value and semester_value.lower() not in SEMESTER_TYPES:
                errors.append(f'Row {idx}: Invalid semester "{semester_value}". Must be one of: {", ".join(SEMESTER_TYPES)}.')

        if "year_level" in columns:
            year_level_value = row.get(columns["year_level"], "")
            if year_level_value:
                try:
                    year_level = int(year_level_value)
                except ValueError:
                    year_level = None
                if year_level is None or not 1 <= year_level <= 5:
                    errors.append(f'Row {idx}: Invalid year level "{year_level_value}". Must be between 1 and 5.')

    return ValidationResult(is_valid=not errors, errors=errors)


def normalize_academic_year(value: str) -> str:
    """A bare year "2021" is the year a term ends in: "2020-2021"."""
    value = (value or "").strip()
    if re.fullmatch(r"\d{4}", value):
        year = int(value)
        return f"{year - 1}-{year}"
    return value


def semester_key(academic_year: str, semester: str) -> str:
    return f"{normalize_academic_year(academic_year)}-{(semester or '').strip().lower()}"


def convert_csv_to_grades(rows: List[Dict[str, str]], semester_id: str = "") -> CSVConversion:
    """
    Validated rows -> grade payloads (all assigned to ``semester_id``) and
    rows grouped by ``"{academic_year}-{semester}"``.
    """
    validation = validate_csv_structure(rows)
    if not validation.is_valid:
        raise CSVImportError("CSV validation failed", validation.errors)
    if not rows:
        return CSVConversion(grades=[], semester_groups={})

    columns, _ = resolve_columns(rows[0])

    def _get(row: Dict[str, str], name: str) -> str:
        return row.get(columns[name], "") if name in columns else ""

    grades: List[Dict[str, Any]] = []
    groups: Dict[str, List[ImportedRow]] = {}

    for idx, row in enumerate(rows, start=1):
        units = float(_get(row, "units"))
        grade_value = _get(row, "numerical_grade")
        numerical_grade = float(grade_value) if grade_value else None
        semester = _get(row, "semester").lower()
        academic_year = normalize_academic_year(_get(row, "academic_year"))
        year_level_value = _get(row, "year_level")

        imported = ImportedRow(
            row=idx,
            course_code=_get(row, "course_code"),
            course_title=_get(row, "course_title"),
            units=units,
            grade=numerical_grade,
            semester=semester,
            academic_year=academic_year,
            year_level=int(year_level_value) if year_level_value else None,
        )
        if not semester or not academic_year:
            imported.warnings.append("No semester context; row goes to the target semester")
        groups.setdefault(semester_key(academic_year, semester), []).append(imported)

        grades.append(
            {
                "course_id": _get(row, "course_id") or imported.course_code,
                "course_code": imported.course_code,
                "course_title": imported.course_title,
                "units": units,
                "numerical_grade": numerical_grade,
                "notes": _get(row, "notes") or None,
                "semester_id": semester_id,
            }
        )

    logger.debug(f"Converted {len(grades)} CSV rows into {len(groups)} semester groups")
    return CSVConversion(grades=grades, semester_groups=groups)


def import_csv_into_store(store, csv_content: str, semester_id: Optional[str] = None) -> list:
    """
    Parse, validate and add CSV rows to a GradeStore.

    With ``semester_id`` every row lands in that semester. Otherwise each
    semester group is matched to an existing semester by (academic year,
    semester type) or a new semester is created for it.
    """
    conversion = convert_csv_to_grades(parse_csv(csv_content), semester_id or "")
    if semester_id:
        return store.add_grades(conversion.grades)

    missing = [
        f"Row {r.row}: missing semester context"
        for group in conversion.semester_groups.values()
        for r in group
        if not r.semester or not r.academic_year
    ]
    if missing:
        raise CSVImportError("Rows without Semester/Academic Year need a target semester", missing)

    payloads = []
    for group in conversion.semester_groups.values():
        first = group[0]
        target = next(
            (
                s for s in store.semesters
                if s.academic_year == first.academic_year and s.semester_type.value == first.semester
            ),
            None,
        )
        if target is None:
            target = store.add_semester(
                {
                    "year_level": first.year_level or 1,
                    "semester_type": first.semester,
                    "academic_year": first.academic_year,
                }
            )
            logger.info(f"Created semester {first.academic_year} {first.semester} for import")

        for imported in group:
            payload = dict(conversion.grades[imported.row - 1])
            payload["semester_id"] = target.id
            payloads.append(payload)

    return store.add_grades(payloads)


def parse_grade_entry(grade_input: str) -> ParsedGradeEntry:
    """A numerical grade, a letter grade, or INC (incomplete, 0 points)."""
    trimmed = (grade_input or "").strip()
    if not trimmed:
        raise InvalidGradeError("Grade input cannot be empty")

    if trimmed.upper() == "INC":
        return ParsedGradeEntry(letter_grade="INC", grade_point=0.0)

    number = _to_float(trimmed)
    if number is not None:
        return ParsedGradeEntry(
            letter_grade=convert_numerical_to_letter(number),
            grade_point=convert_numerical_to_grade_point(number),
            numerical_grade=number,
        )

    try:
        return ParsedGradeEntry(
            letter_grade=trimmed.upper(),
            grade_point=convert_letter_to_grade_point(trimmed),
        )
    except InvalidGradeError:
        raise InvalidGradeError(
            f'Invalid grade input: "{trimmed}". Must be a numerical grade (0-100) '
            "or letter grade (A, B+, B, C+, C, D+, D, F)."
        ) from None
