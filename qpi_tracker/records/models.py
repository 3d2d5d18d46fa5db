from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_id(prefix: str) -> str:
    """Random identifier such as ``grade-3f9c1a2b7d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    # Stored documents may carry keys from older/newer schema versions
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


class SemesterType(str, Enum):
    """Term within an academic year."""
    FIRST = "first"
    SECOND = "second"
    SUMMER = "summer"


@dataclass
class GradeRecord:
    """One course taken in one semester."""

    course_id: str
    course_code: str
    course_title: str
    units: float
    semester_id: str
    numerical_grade: Optional[float] = None  # 0-100, absent until entered
    letter_grade: Optional[str] = None  # derived
    grade_point: Optional[float] = None  # derived
    quality_points: Optional[float] = None  # derived: units * grade_point
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: make_id("grade"))
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    @property
    def is_graded(self) -> bool:
        return self.grade_point is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GradeRecord":
        return cls(**_known_fields(cls, data))


@dataclass
class SemesterRecord:
    """A term and the ids of the grades it owns, in insertion order."""

    year_level: int
    semester_type: SemesterType
    academic_year: str  # e.g. 2023-2024
    is_completed: bool = False
    grades: List[str] = field(default_factory=list)
    total_units: float = 0.0
    total_quality_points: float = 0.0
    semester_qpi: Optional[float] = None
    id: str = field(default_factory=lambda: make_id("semester"))
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def __post_init__(self):
        self.semester_type = SemesterType(self.semester_type)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["semester_type"] = self.semester_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SemesterRecord":
        return cls(**_known_fields(cls, data))


@dataclass
class AcademicConfiguration:
    total_years: int = 4
    includes_summer: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class YearlyQPI:
    """Per academic year breakdown kept on the academic record."""

    academic_year: str
    first_sem_qpi: Optional[float] = None
    second_sem_qpi: Optional[float] = None
    summer_qpi: Optional[float] = None
    yearly_qpi: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AcademicRecord:
    """Top-level aggregate over every semester."""

    configuration: AcademicConfiguration = field(default_factory=AcademicConfiguration)
    semesters: List[str] = field(default_factory=list)
    total_units: float = 0.0
    total_quality_points: float = 0.0
    cumulative_qpi: Optional[float] = None
    yearly_qpis: List[YearlyQPI] = field(default_factory=list)
    id: str = "main"  # single record per user
    version: int = 1
    last_calculated: str = field(default_factory=now_iso)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def __post_init__(self):
        if isinstance(self.configuration, dict):
            self.configuration = AcademicConfiguration(**self.configuration)
        self.yearly_qpis = [
            YearlyQPI(**y) if isinstance(y, dict) else y for y in self.yearly_qpis
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcademicRecord":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class QPIResult:
    qpi: float
    total_units: float
    total_quality_points: float


@dataclass(frozen=True)
class YearlyQPIResult:
    qpi: float
    semesters: List[str]
