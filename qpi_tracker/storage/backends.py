import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from qpi_tracker.core.errors import StorageError, StorageUnavailableError

logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    """String key -> string value store."""

    def is_available(self) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryBackend:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    def is_available(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileBackend:
    """
    Keeps every key in one JSON document on disk (e.g. data/qpi_store.json).
    Writes go to a temp file first and then replace the original.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.data = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load key-value store {self.path}: {e}")
            return {}
        if not isinstance(loaded, dict):
            logger.error(f"Ignoring malformed key-value store {self.path}")
            return {}
        return {str(k): v for k, v in loaded.items() if isinstance(v, str)}

    def _flush(self) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".qpi-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Error writing to {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def is_available(self) -> bool:
        parent = self.path.parent
        if parent.exists():
            return os.access(parent, os.W_OK)
        # Directory is created on first write; check the closest existing ancestor
        for ancestor in parent.parents:
            if ancestor.exists():
                return os.access(ancestor, os.W_OK)
        return False

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if not self.is_available():
            raise StorageUnavailableError(f"Key-value store is not writable: {self.path}")
        self.data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if key in self.data:
            del self.data[key]
            self._flush()
