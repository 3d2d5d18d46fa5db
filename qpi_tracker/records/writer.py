from pathlib import Path
import logging
from typing import Optional

from qpi_tracker.processing.csv_export import generate_csv_filename

logger = logging.getLogger(__name__)


class ExportWriter:
    """Writes CSV exports under an export directory (UTF-8 with BOM for Excel)."""

    def __init__(self, base_path: Path = Path("data/exports")) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def write(self, csv_content: str, filename: Optional[str] = None) -> Path:
        if filename:
            name = filename if filename.endswith(".csv") else f"{filename}.csv"
        else:
            name = generate_csv_filename()

        out_path = self.base_path / name
        with out_path.open("w", encoding="utf-8-sig", newline="") as f:
            f.write(csv_content)
            if not csv_content.endswith("\n"):
                f.write("\n")
        logger.info(f"Exported CSV → {out_path}")
        return out_path
