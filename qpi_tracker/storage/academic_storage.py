"""
Typed bridge between the grade store and a key-value backend.

Each collection lives under its own key as a JSON document:

    qpi_grades           list of grade records
    qpi_semesters        list of semester records
    qpi_academic_record  the academic record (or absent)
    qpi_schema_version   integer, bumped by migrate_schema()
    qpi_last_backup      timestamp of the last import_all()
"""

import json
import logging
from typing import Any, Dict, List, Optional

from qpi_tracker.core.errors import StorageError, StorageUnavailableError
from qpi_tracker.records.models import AcademicRecord, GradeRecord, SemesterRecord, now_iso
from qpi_tracker.storage.backends import KeyValueBackend

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "grades": "qpi_grades",
    "semesters": "qpi_semesters",
    "academic_record": "qpi_academic_record",
    "schema_version": "qpi_schema_version",
    "last_backup": "qpi_last_backup",
}

CURRENT_SCHEMA_VERSION = 1


class AcademicStorage:
    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    # --- raw access ---

    def is_available(self) -> bool:
        try:
            return self.backend.is_available()
        except OSError:
            return False

    def _get_item(self, key: str) -> Any:
        if not self.is_available():
            raise StorageUnavailableError("Key-value store is not available")
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f'Error reading key "{key}": {e}')
            return None

    def _set_item(self, key: str, value: Any) -> None:
        if not self.is_available():
            raise StorageUnavailableError("Key-value store is not available")
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f'Cannot encode value for key "{key}": {e}') from e
        self.backend.set(key, encoded)

    def _remove_item(self, key: str) -> None:
        if not self.is_available():
            raise StorageUnavailableError("Key-value store is not available")
        self.backend.remove(key)

    def _load_list(self, key: str) -> List[Dict[str, Any]]:
        value = self._get_item(key)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    # --- grades ---

    def load_grades(self) -> List[GradeRecord]:
        grades = []
        for item in self._load_list(STORAGE_KEYS["grades"]):
            try:
                grades.append(GradeRecord.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed grade record {item.get('id')}: {e}")
        return grades

    def save_grades(self, grades: List[GradeRecord]) -> None:
        self._set_item(STORAGE_KEYS["grades"], [g.to_dict() for g in grades])

    def save_grade(self, grade: GradeRecord) -> None:
        """Insert or replace a single grade record."""
        grades = self.load_grades()
        grade.updated_at = now_iso()
        for idx, existing in enumerate(grades):
            if existing.id == grade.id:
                grades[idx] = grade
                break
        else:
            grades.append(grade)
        self.save_grades(grades)

    def remove_grade(self, grade_id: str) -> None:
        self.save_grades([g for g in self.load_grades() if g.id != grade_id])

    # --- semesters ---

    def load_semesters(self) -> List[SemesterRecord]:
        semesters = []
        for item in self._load_list(STORAGE_KEYS["semesters"]):
            try:
                semesters.append(SemesterRecord.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed semester record {item.get('id')}: {e}")
        return semesters

    def save_semesters(self, semesters: List[SemesterRecord]) -> None:
        self._set_item(STORAGE_KEYS["semesters"], [s.to_dict() for s in semesters])

    def save_semester(self, semester: SemesterRecord) -> None:
        semesters = self.load_semesters()
        semester.updated_at = now_iso()
        for idx, existing in enumerate(semesters):
            if existing.id == semester.id:
                semesters[idx] = semester
                break
        else:
            semesters.append(semester)
        self.save_semesters(semesters)

    def remove_semester(self, semester_id: str) -> None:
        self.save_semesters([s for s in self.load_semesters() if s.id != semester_id])

    # --- academic record ---

    def load_academic_record(self) -> Optional[AcademicRecord]:
        value = self._get_item(STORAGE_KEYS["academic_record"])
        if not isinstance(value, dict):
            return None
        try:
            return AcademicRecord.from_dict(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed academic record: {e}")
            return None

    def save_academic_record(self, record: AcademicRecord) -> None:
        self._set_item(STORAGE_KEYS["academic_record"], record.to_dict())

    def remove_academic_record(self) -> None:
        self._remove_item(STORAGE_KEYS["academic_record"])

    # --- schema migration ---

    def schema_version(self) -> int:
        value = self._get_item(STORAGE_KEYS["schema_version"])
        return value if isinstance(value, int) else 0

    def migrate_schema(self) -> None:
        current = self.schema_version()
        if current >= CURRENT_SCHEMA_VERSION:
            return

        logger.info(f"Migrating data from version {current} to {CURRENT_SCHEMA_VERSION}")
        if current == 0:
            self._migrate_v0_to_v1()
        self._set_item(STORAGE_KEYS["schema_version"], CURRENT_SCHEMA_VERSION)

    def _migrate_v0_to_v1(self) -> None:
        """v1 requires timestamps on every grade and semester."""
        timestamp = now_iso()
        for name in ("grades", "semesters"):
            items = self._load_list(STORAGE_KEYS[name])
            changed = False
            for item in items:
                for stamp in ("created_at", "updated_at"):
                    if not item.get(stamp):
                        item[stamp] = timestamp
                        changed = True
            if changed:
                self._set_item(STORAGE_KEYS[name], items)

    # --- backup / restore ---

    def export_all(self) -> str:
        record = self.load_academic_record()
        data = {
            "grades": [g.to_dict() for g in self.load_grades()],
            "semesters": [s.to_dict() for s in self.load_semesters()],
            "academic_record": record.to_dict() if record else None,
            "schema_version": CURRENT_SCHEMA_VERSION,
            "exported_at": now_iso(),
        }
        return json.dumps(data, ensure_ascii=False, indent=2)

    def import_all(self, json_data: str) -> None:
        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise StorageError(f"Failed to import data: {e}") from e
        if not isinstance(data, dict):
            raise StorageError("Failed to import data: Invalid data format")

        if data.get("grades") is not None:
            self._set_item(STORAGE_KEYS["grades"], data["grades"])
        if data.get("semesters") is not None:
            self._set_item(STORAGE_KEYS["semesters"], data["semesters"])
        if data.get("academic_record"):
            self._set_item(STORAGE_KEYS["academic_record"], data["academic_record"])
        if data.get("schema_version"):
            self._set_item(STORAGE_KEYS["schema_version"], data["schema_version"])

        self._set_item(STORAGE_KEYS["last_backup"], now_iso())

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self._remove_item(key)

    def storage_info(self) -> Dict[str, Any]:
        if not self.is_available():
            return {
                "is_available": False,
                "grade_count": 0,
                "semester_count": 0,
                "has_academic_record": False,
                "schema_version": 0,
                "last_backup": None,
            }
        return {
            "is_available": True,
            "grade_count": len(self.load_grades()),
            "semester_count": len(self.load_semesters()),
            "has_academic_record": self.load_academic_record() is not None,
            "schema_version": self.schema_version(),
            "last_backup": self._get_item(STORAGE_KEYS["last_backup"]),
        }
