"""Export error kinds and the exceptions carrying them."""

from enum import StrEnum


class ExportErrorKind(StrEnum):
    """Categories of export failures."""

    NOT_AN_EXPORT = "not_an_export"
    INVALID_REFERENCE = "invalid_reference"
    INVALID_HEADERS = "invalid_headers"
    INVALID_QUERY = "invalid_query"
    STORAGE_FAILURE = "storage_failure"


class ExportError(Exception):
    """Base class for export failures.

    Args:
        kind: The failure category.
        message: Human-readable error description.
    """

    def __init__(self, kind: ExportErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class ExportValidationError(ExportError):
    """Raised when an export record fails validation.

    ``fields`` maps each offending export-record field to a message so
    callers can present field-level errors.
    """

    def __init__(self, kind: ExportErrorKind, fields: dict[str, str] | None = None, message: str | None = None) -> None:
        self.fields = dict(fields or {})
        if message is None:
            message = "; ".join(f"{name}: {error}" for name, error in self.fields.items()) or str(kind)
        super().__init__(kind, message)


class ExportStorageError(ExportError):
    """Raised when a generated artifact cannot be written to storage."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(ExportErrorKind.STORAGE_FAILURE, f"{key}: {message}")
