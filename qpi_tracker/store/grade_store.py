"""GradeStore: grades, semesters and the academic record, recalculated and saved on every change."""

import dataclasses
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from qpi_tracker.config.settings import Settings
from qpi_tracker.core.errors import QPITrackerError
from qpi_tracker.grading.qpi import (
    calculate_cumulative_qpi,
    calculate_quality_points,
    calculate_semester_totals,
    calculate_yearly_qpis,
)
from qpi_tracker.grading.scale import convert_numerical_to_grade_point, convert_numerical_to_letter
from qpi_tracker.records.models import (
    AcademicConfiguration,
    AcademicRecord,
    GradeRecord,
    QPIResult,
    SemesterRecord,
    SemesterType,
    YearlyQPIResult,
    now_iso,
)
from qpi_tracker.storage.academic_storage import AcademicStorage
from qpi_tracker.storage.backends import JsonFileBackend

logger = logging.getLogger(__name__)

# Assigned by the store, never by callers
_GRADE_PROTECTED = {"id", "created_at", "updated_at", "letter_grade", "grade_point", "quality_points"}
_SEMESTER_PROTECTED = {
    "id", "created_at", "updated_at", "grades",
    "total_units", "total_quality_points", "semester_qpi",
}
_RECORD_PROTECTED = {
    "id", "created_at", "updated_at", "semesters", "total_units",
    "total_quality_points", "cumulative_qpi", "yearly_qpis", "last_calculated",
}


def _check_fields(kind: str, changes: Mapping[str, Any], allowed: Iterable[str], protected: set) -> None:
    allowed = set(allowed)
    for key in changes:
        if key in protected:
            raise TypeError(f"{kind} field '{key}' is managed by the store")
        if key not in allowed:
            raise TypeError(f"Unknown {kind} field '{key}'")


def derive_grade_fields(grade: GradeRecord) -> GradeRecord:
    """Recompute letter grade, grade point and quality points from the score."""
    if grade.numerical_grade is None:
        grade.letter_grade = None
        grade.grade_point = None
        grade.quality_points = None
        return grade

    grade.letter_grade = convert_numerical_to_letter(grade.numerical_grade)
    grade.grade_point = convert_numerical_to_grade_point(grade.numerical_grade)
    grade.quality_points = calculate_quality_points(grade.units, grade.grade_point)
    return grade


class GradeStore:
    def __init__(self, storage: AcademicStorage, settings: Optional[Settings] = None) -> None:
        self.storage = storage
        self.settings = settings or Settings.from_env()

        self.grades: List[GradeRecord] = []
        self.semesters: List[SemesterRecord] = []
        self.academic_record: Optional[AcademicRecord] = None

        self.error: Optional[str] = None
        self.last_saved: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GradeStore":
        """File-backed store hydrated from settings.storage_path."""
        storage = AcademicStorage(JsonFileBackend(settings.storage_path))
        store = cls(storage, settings=settings)
        store.load_data()
        return store

    # --- lookups ---

    def _find_grade(self, grade_id: str) -> Optional[GradeRecord]:
        return next((g for g in self.grades if g.id == grade_id), None)

    def _find_semester(self, semester_id: str) -> Optional[SemesterRecord]:
        return next((s for s in self.semesters if s.id == semester_id), None)

    def _commit(self) -> None:
        self.recalculate_all()
        self.save_data()

    # --- grades ---

    def _build_grade(self, data: Mapping[str, Any]) -> GradeRecord:
        _check_fields(
            "grade", data,
            (f.name for f in dataclasses.fields(GradeRecord)),
            _GRADE_PROTECTED,
        )
        return derive_grade_fields(GradeRecord(**data))

    def add_grade(self, data: Mapping[str, Any]) -> GradeRecord:
        grade = self._build_grade(data)
        self.grades.append(grade)
        if self._find_semester(grade.semester_id) is None:
            logger.debug(f"Grade {grade.id} added for unknown semester {grade.semester_id}")
        self._commit()
        return grade

    def add_grades(self, items: Iterable[Mapping[str, Any]]) -> List[GradeRecord]:
        """Add several grades with a single recalculation and save."""
        new_grades = [self._build_grade(data) for data in items]
        if not new_grades:
            return []
        self.grades.extend(new_grades)
        self._commit()
        return new_grades

    def update_grade(self, grade_id: str, **changes: Any) -> Optional[GradeRecord]:
        """Merge ``changes`` into a grade. Returns None when the id is unknown."""
        _check_fields(
            "grade", changes,
            (f.name for f in dataclasses.fields(GradeRecord)),
            _GRADE_PROTECTED,
        )
        grade = self._find_grade(grade_id)
        if grade is None:
            logger.warning(f"update_grade: grade {grade_id} not found")
            return None

        # Derive on a copy so an invalid score leaves the store untouched
        updated = derive_grade_fields(dataclasses.replace(grade, **changes))
        updated.updated_at = now_iso()
        self.grades[self.grades.index(grade)] = updated
        self._commit()
        return updated

    def remove_grade(self, grade_id: str) -> bool:
        grade = self._find_grade(grade_id)
        if grade is None:
            logger.warning(f"remove_grade: grade {grade_id} not found")
            return False
        self.grades.remove(grade)
        self._commit()
        return True

    # --- semesters ---

    def add_semester(self, data: Mapping[str, Any]) -> SemesterRecord:
        _check_fields(
            "semester", data,
            (f.name for f in dataclasses.fields(SemesterRecord)),
            _SEMESTER_PROTECTED,
        )
        semester = SemesterRecord(**data)
        self.semesters.append(semester)
        if self.academic_record is not None:
            self.academic_record.semesters.append(semester.id)
            self.academic_record.updated_at = now_iso()
        self._commit()
        return semester

    def update_semester(self, semester_id: str, **changes: Any) -> Optional[SemesterRecord]:
        _check_fields(
            "semester", changes,
            (f.name for f in dataclasses.fields(SemesterRecord)),
            _SEMESTER_PROTECTED,
        )
        semester = self._find_semester(semester_id)
        if semester is None:
            logger.warning(f"update_semester: semester {semester_id} not found")
            return None

        updated = dataclasses.replace(semester, **changes)
        updated.updated_at = now_iso()
        self.semesters[self.semesters.index(semester)] = updated
        self._commit()
        return updated

    def remove_semester(self, semester_id: str) -> bool:
        """Remove a semester together with every grade it owns."""
        semester = self._find_semester(semester_id)
        if semester is None:
            logger.warning(f"remove_semester: semester {semester_id} not found")
            return False

        self.grades = [g for g in self.grades if g.semester_id != semester_id]
        self.semesters.remove(semester)
        if self.academic_record is not None and semester_id in self.academic_record.semesters:
            self.academic_record.semesters.remove(semester_id)
            self.academic_record.updated_at = now_iso()
        self._commit()
        return True

    # --- academic record ---

    def initialize_academic_record(
        self,
        config: Union[AcademicConfiguration, Mapping[str, Any]],
        attach_existing: bool = False,
    ) -> AcademicRecord:
        """
        Create the academic record. Its totals always cover every semester;
        ``attach_existing`` only fills the id list with the current semesters.
        """
        if not isinstance(config, AcademicConfiguration):
            config = AcademicConfiguration(**config)

        record = AcademicRecord(configuration=config)
        if attach_existing:
            record.semesters = [s.id for s in self.semesters]
        self.academic_record = record
        self._commit()
        return record

    def update_academic_record(self, **changes: Any) -> Optional[AcademicRecord]:
        if self.academic_record is None:
            logger.warning("update_academic_record: no academic record initialized")
            return None
        _check_fields(
            "academic record", changes,
            (f.name for f in dataclasses.fields(AcademicRecord)),
            _RECORD_PROTECTED,
        )
        if isinstance(changes.get("configuration"), Mapping):
            changes["configuration"] = AcademicConfiguration(**changes["configuration"])

        self.academic_record = dataclasses.replace(self.academic_record, **changes)
        self.academic_record.updated_at = now_iso()
        self._commit()
        return self.academic_record

    # --- templates ---

    def load_template(self, template: Mapping[str, Any], start_year: Optional[int] = None) -> List[SemesterRecord]:
        """
        Create semesters and ungraded course slots from a curriculum template.

        ``template["semesters"]`` is a list of ``{year_level, semester_type,
        courses: [{id, course_code, title, units}]}``. Year level N is placed in
        academic year ``start_year + N - 1``.
        """
        start_year = start_year or datetime.now().year
        new_semesters: List[SemesterRecord] = []
        new_grades: List[GradeRecord] = []

        for sem_data in template.get("semesters", []):
            year_level = int(sem_data["year_level"])
            first_year = start_year + year_level - 1
            semester = SemesterRecord(
                year_level=year_level,
                semester_type=sem_data["semester_type"],
                academic_year=sem_data.get("academic_year") or f"{first_year}-{first_year + 1}",
            )
            new_semesters.append(semester)

            for course in sem_data.get("courses") or []:
                new_grades.append(
                    GradeRecord(
                        course_id=str(course.get("id") or course.get("course_id") or course["course_code"]),
                        course_code=course["course_code"],
                        course_title=course.get("title") or course.get("course_title", ""),
                        units=float(course["units"]),
                        semester_id=semester.id,
                    )
                )

        self.semesters.extend(new_semesters)
        self.grades.extend(new_grades)

        if self.academic_record is None:
            self.academic_record = AcademicRecord(
                configuration=AcademicConfiguration(
                    total_years=self.settings.default_total_years,
                    includes_summer=any(s.semester_type == SemesterType.SUMMER for s in new_semesters),
                )
            )
        self.academic_record.semesters.extend(s.id for s in new_semesters)
        self.academic_record.updated_at = now_iso()

        logger.info(
            f"Loaded template '{template.get('name', 'unnamed')}': "
            f"{len(new_semesters)} semesters, {len(new_grades)} courses"
        )
        self._commit()
        return new_semesters

    # --- persistence ---

    def load_data(self) -> bool:
        """Hydrate from storage. On failure the error is logged and kept in ``self.error``."""
        self.error = None
        try:
            self.storage.migrate_schema()
            grades = self.storage.load_grades()
            semesters = self.storage.load_semesters()
            record = self.storage.load_academic_record()
        except QPITrackerError as e:
            logger.error(f"Failed to load data: {e}")
            self.error = str(e)
            return False

        self.grades = grades
        self.semesters = semesters
        self.academic_record = record
        self.recalculate_all()
        logger.debug(f"Loaded {len(grades)} grades, {len(semesters)} semesters")
        return True

    def save_data(self) -> bool:
        try:
            self.storage.save_grades(self.grades)
            self.storage.save_semesters(self.semesters)
            if self.academic_record is not None:
                self.storage.save_academic_record(self.academic_record)
            else:
                self.storage.remove_academic_record()
        except QPITrackerError as e:
            logger.error(f"Failed to save data: {e}")
            self.error = str(e)
            return False

        self.last_saved = now_iso()
        self.error = None
        return True

    def reset_all(self) -> None:
        """Back to the empty initial state (persisted)."""
        self.grades = []
        self.semesters = []
        self.academic_record = None
        self.save_data()
        self.error = None
        self.last_saved = None

    # --- derived values ---

    def recalculate_all(self) -> None:
        for semester in self.semesters:
            owned = self.get_grades_by_semester(semester.id)
            semester.grades = [g.id for g in owned]
            totals = calculate_semester_totals(owned)
            semester.total_units = totals.total_units
            semester.total_quality_points = totals.total_quality_points
            semester.semester_qpi = totals.qpi if totals.total_units > 0 else None

        record = self.academic_record
        if record is None:
            return

        known = {s.id for s in self.semesters}
        record.semesters = [sid for sid in record.semesters if sid in known]

        # Totals cover every semester in the store, attached or not
        record.total_units = sum(s.total_units for s in self.semesters)
        record.total_quality_points = sum(s.total_quality_points for s in self.semesters)
        record.cumulative_qpi = calculate_cumulative_qpi(self.semesters) if record.total_units > 0 else None
        record.yearly_qpis = calculate_yearly_qpis(self.semesters)
        record.last_calculated = now_iso()

    # --- queries ---

    def get_grades_by_semester(self, semester_id: str) -> List[GradeRecord]:
        return [g for g in self.grades if g.semester_id == semester_id]

    def get_semester_qpi(self, semester_id: str) -> Optional[QPIResult]:
        if self._find_semester(semester_id) is None:
            return None
        totals = calculate_semester_totals(self.get_grades_by_semester(semester_id))
        if totals.total_units == 0:
            return None
        return totals

    def get_yearly_qpi(self, academic_year: str) -> Optional[YearlyQPIResult]:
        record = self.academic_record
        if record is None:
            return None
        year = next((y for y in record.yearly_qpis if y.academic_year == academic_year), None)
        if year is None or year.yearly_qpi is None:
            return None
        return YearlyQPIResult(
            qpi=year.yearly_qpi,
            semesters=[s.id for s in self.semesters if s.academic_year == academic_year],
        )

    def get_cumulative_qpi(self) -> Optional[QPIResult]:
        record = self.academic_record
        if record is None or record.cumulative_qpi is None:
            return None
        return QPIResult(
            qpi=record.cumulative_qpi,
            total_units=record.total_units,
            total_quality_points=record.total_quality_points,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grades": [g.to_dict() for g in self.grades],
            "semesters": [s.to_dict() for s in self.semesters],
            "academic_record": self.academic_record.to_dict() if self.academic_record else None,
        }
