from typing import List, Optional

from qpi_tracker.records.models import AcademicRecord, GradeRecord, SemesterRecord


def _fmt_qpi(value: Optional[float]) -> str:
    return f"{value:.2f}" if value is not None else "N/A"


def _fmt_num(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


class SummaryReportGenerator:
    """Plain markdown QPI report, one table per semester."""

    @staticmethod
    def generate_semester_table(semester: SemesterRecord, grades: List[GradeRecord]) -> str:
        title = f"Year {semester.year_level} · {semester.semester_type.value.title()} Semester ({semester.academic_year})"
        md = f"### {title}\n\n"

        if not grades:
            md += "_No courses yet._\n\n"
            return md

        md += "| Course | Title | Units | Grade | Letter | Points |\n"
        md += "|---|---|---|---|---|---|\n"
        for g in grades:
            course_title = g.course_title.replace("|", "\\|")
            md += (
                f"| {g.course_code} | {course_title} | {_fmt_num(g.units)} | "
                f"{_fmt_num(g.numerical_grade)} | {g.letter_grade or '-'} | {_fmt_num(g.grade_point)} |\n"
            )

        md += (
            f"\n**Units:** {_fmt_num(semester.total_units)} · "
            f"**Quality points:** {_fmt_num(semester.total_quality_points)} · "
            f"**Semester QPI:** {_fmt_qpi(semester.semester_qpi)}\n\n"
        )
        return md

    @staticmethod
    def format_full_report(
        semesters: List[SemesterRecord],
        grades: List[GradeRecord],
        record: Optional[AcademicRecord] = None,
    ) -> str:
        report = "# QPI Summary\n\n"

        if record is not None:
            report += f"- Cumulative QPI: **{_fmt_qpi(record.cumulative_qpi)}**\n"
            report += f"- Total units: {_fmt_num(record.total_units)}\n"
            report += f"- Program length: {record.configuration.total_years} years"
            report += " (with summer terms)\n" if record.configuration.includes_summer else "\n"
            for year in record.yearly_qpis:
                report += f"- {year.academic_year}: {_fmt_qpi(year.yearly_qpi)}\n"
            report += "\n"

        # Semesters in year level / term order
        order = {"first": 0, "second": 1, "summer": 2}
        for semester in sorted(semesters, key=lambda s: (s.year_level, order[s.semester_type.value])):
            owned = [g for g in grades if g.semester_id == semester.id]
            report += SummaryReportGenerator.generate_semester_table(semester, owned)

        return report
