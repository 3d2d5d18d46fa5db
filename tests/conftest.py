"""
Pytest configuration and fixtures
"""
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from qpi_tracker.config.settings import Settings  # noqa: E402
from qpi_tracker.storage.academic_storage import AcademicStorage  # noqa: E402
from qpi_tracker.storage.backends import MemoryBackend  # noqa: E402
from qpi_tracker.store.grade_store import GradeStore  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's .env and data directory."""
    return Settings(
        data_dir=tmp_path / "data",
        storage_file="",
        export_dir_override="",
        log_level="DEBUG",
        default_total_years=4,
        default_includes_summer=False,
    )


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def storage(backend):
    return AcademicStorage(backend)


@pytest.fixture
def store(storage, settings):
    return GradeStore(storage, settings=settings)


@pytest.fixture
def semester(store):
    return store.add_semester(
        {"year_level": 1, "semester_type": "first", "academic_year": "2023-2024"}
    )


@pytest.fixture
def grade_data():
    """Builds add_grade payloads."""

    def _build(semester_id, code="CS101", units=3, grade=95, **extra):
        payload = {
            "course_id": code.lower(),
            "course_code": code,
            "course_title": f"{code} title",
            "units": units,
            "numerical_grade": grade,
            "semester_id": semester_id,
        }
        payload.update(extra)
        return payload

    return _build


@pytest.fixture
def store_factory(settings):
    """Fresh in-memory stores, for tests that need more than one."""

    def _build():
        return GradeStore(AcademicStorage(MemoryBackend()), settings=settings)

    return _build
