"""Export format enum and the streaming writer interface."""

from collections.abc import Sequence
from enum import StrEnum
from typing import Any, Protocol


class ExportFormat(StrEnum):
    """Supported output formats."""

    CSV = "csv"
    XLSX = "xlsx"


# Characters that trigger formula execution in spreadsheet applications
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def sanitize_cell(value: object) -> object:
    """Sanitize a cell value to prevent formula injection.

    Prefixes values starting with formula-triggering characters with
    a single quote to prevent execution in spreadsheet applications.

    Args:
        value: The cell value to sanitize.

    Returns:
        The sanitized value.
    """
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


class ExportWriter(Protocol):
    """Streaming sink for one export: a header row followed by data rows."""

    def write_header(self, labels: Sequence[str]) -> None:
        """Write the header row."""
        ...

    def write_row(self, cells: Sequence[Any]) -> None:
        """Append one data row."""
        ...

    def finalize(self) -> None:
        """Flush any buffered output to the underlying stream."""
        ...
