from typing import List, Optional


class QPITrackerError(Exception):
    """Base class for every error raised by the tracker."""


class InvalidGradeError(QPITrackerError, ValueError):
    """A numerical or letter grade that is not on the grade scale."""


class StorageError(QPITrackerError):
    """Reading from or writing to the key-value store failed."""


class StorageUnavailableError(StorageError):
    """The key-value backend cannot be used at all."""


class CSVImportError(QPITrackerError):
    """CSV content failed validation. ``errors`` holds one message per problem."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])
