import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime settings read from environment variables (.env supported)."""

    data_dir: Path = Path(os.getenv("QPI_DATA_DIR", "data"))
    storage_file: str = os.getenv("QPI_STORAGE_FILE", "")
    export_dir_override: str = os.getenv("QPI_EXPORT_DIR", "")

    log_level: str = os.getenv("QPI_LOG_LEVEL", "INFO").upper()

    # Defaults applied when an academic record is created implicitly
    default_total_years: int = int(os.getenv("QPI_TOTAL_YEARS", "4"))
    default_includes_summer: bool = _env_bool("QPI_INCLUDES_SUMMER")

    @property
    def storage_path(self) -> Path:
        """JSON document backing the key-value store."""
        if self.storage_file:
            return Path(self.storage_file)
        return self.data_dir / "qpi_store.json"

    @property
    def export_dir(self) -> Path:
        if self.export_dir_override:
            return Path(self.export_dir_override)
        return self.data_dir / "exports"

    @classmethod
    def from_env(cls) -> "Settings":
        """dotenv -> environment values."""
        return cls()

    def with_storage(self, path: Path) -> "Settings":
        """Return a copy pointing at a different storage file."""
        return replace(self, storage_file=str(path))
