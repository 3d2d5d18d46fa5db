"""
CSV export of grade records.

Two layouts:
- full: every stored and derived field plus semester context
- re-import: only what csv_import needs to rebuild the records
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

import pandas as pd

from qpi_tracker.records.models import AcademicRecord, GradeRecord, SemesterRecord


FULL_HEADERS = [
    "Course Code",
    "Course Title",
    "Units",
    "Numerical Grade",
    "Letter Grade",
    "Grade Point",
    "Quality Points",
    "Semester",
    "Academic Year",
    "Year Level",
    "Notes",
]

REIMPORT_HEADERS = [
    "Course Code",
    "Course Title",
    "Units",
    "Numerical Grade",
    "Notes",
    "Semester",
    "Academic Year",
    "Year Level",
]


def _cell(value: Any) -> str:
    """Stringify for CSV: None -> empty, 3.0 -> 3."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if hasattr(value, "value"):  # enums
        return str(value.value)
    return str(value)


def format_csv_value(value: Any, delimiter: str = ",") -> str:
    """Quote a single value when it contains the delimiter, quotes or line breaks."""
    text = _cell(value)
    needs_quotes = any(ch in text for ch in (delimiter, '"', "\n", "\r", "\t"))
    if not needs_quotes:
        return text
    return '"' + text.replace('"', '""') + '"'


def _build_row(grade: GradeRecord, semester: Optional[SemesterRecord], for_reimport: bool) -> List[str]:
    sem_type = semester.semester_type if semester else None
    academic_year = semester.academic_year if semester else None
    year_level = semester.year_level if semester else None

    if for_reimport:
        values = [
            grade.course_code, grade.course_title, grade.units, grade.numerical_grade,
            grade.notes, sem_type, academic_year, year_level,
        ]
    else:
        values = [
            grade.course_code, grade.course_title, grade.units, grade.numerical_grade,
            grade.letter_grade, grade.grade_point, grade.quality_points,
            sem_type, academic_year, year_level, grade.notes,
        ]
    return [_cell(v) for v in values]


def export_grades_to_csv(
    grades: Iterable[GradeRecord],
    semesters: Optional[Iterable[SemesterRecord]] = None,
    for_reimport: bool = False,
    delimiter: str = ",",
    include_headers: bool = True,
) -> str:
    headers = REIMPORT_HEADERS if for_reimport else FULL_HEADERS
    semester_map = {s.id: s for s in semesters or []}

    rows = [_build_row(g, semester_map.get(g.semester_id), for_reimport) for g in grades]
    if not rows:
        return delimiter.join(headers) if include_headers else ""

    df = pd.DataFrame(rows, columns=headers)
    text = df.to_csv(index=False, header=include_headers, sep=delimiter, lineterminator="\n")
    return text[:-1] if text.endswith("\n") else text


def export_academic_record_to_csv(
    record: AcademicRecord,
    semesters: Iterable[SemesterRecord],
    grades: Iterable[GradeRecord],
    include_summary: bool = False,
    semester_filter: Optional[Sequence[str]] = None,
    for_reimport: bool = False,
    delimiter: str = ",",
    include_headers: bool = True,
) -> str:
    """Grades of every semester (or of ``semester_filter``), optionally with a summary block."""
    semesters = list(semesters)
    wanted = set(semester_filter) if semester_filter is not None else {s.id for s in semesters}
    selected = [g for g in grades if g.semester_id in wanted]

    content = export_grades_to_csv(
        selected,
        semesters,
        for_reimport=for_reimport,
        delimiter=delimiter,
        include_headers=include_headers,
    )

    # The summary block would break a re-import
    if not include_summary or for_reimport:
        return content

    qpi = f"{record.cumulative_qpi:.2f}" if record.cumulative_qpi is not None else "N/A"
    summary = [
        "",
        "=== ACADEMIC SUMMARY ===",
        f"Total Units: {_cell(record.total_units or 0)}",
        f"Cumulative QPI: {qpi}",
        f"Total Years: {record.configuration.total_years}",
        f"Includes Summer: {'Yes' if record.configuration.includes_summer else 'No'}",
    ]
    return content + "\n" + "\n".join(summary)


def export_semester_summary(semester: SemesterRecord, grades: Iterable[GradeRecord]) -> str:
    """Header block with semester totals followed by its course rows."""
    owned = [g for g in grades if g.semester_id == semester.id]
    qpi = f"{semester.semester_qpi:.2f}" if semester.semester_qpi is not None else "N/A"

    lines = [
        f"Semester,{_cell(semester.semester_type)}",
        f"Academic Year,{semester.academic_year or 'N/A'}",
        f"Year Level,{semester.year_level}",
        f"Total Units,{_cell(semester.total_units or 0)}",
        f"QPI,{qpi}",
        "",
    ]

    if owned:
        lines.append("Course Code,Course Title,Units,Grade,Grade Point,Quality Points")
        for g in owned:
            row = [g.course_code, g.course_title, g.units, g.letter_grade, g.grade_point, g.quality_points]
            lines.append(",".join(format_csv_value(v) for v in row))

    return "\n".join(lines)


def generate_csv_filename(base_name: str = "grades", extension: str = "csv") -> str:
    now = datetime.now(timezone.utc)
    return f"{base_name}_{now:%Y-%m-%d}_{now:%H-%M-%S}.{extension}"
