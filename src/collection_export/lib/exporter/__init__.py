"""Exporter library — public API for tabular export output.

Provides format-specific streaming writers, value formatting and field path
resolution.
"""

from typing import BinaryIO

from collection_export.lib.exporter.base import ExportFormat, ExportWriter, sanitize_cell
from collection_export.lib.exporter.csv_writer import CSVExportWriter
from collection_export.lib.exporter.errors import (
    ExportError,
    ExportErrorKind,
    ExportStorageError,
    ExportValidationError,
)
from collection_export.lib.exporter.formatter import format_timestamp, format_value, load_timezone, stringify_value
from collection_export.lib.exporter.xlsx_writer import XLSXExportWriter

# Format registry mapping format names to writer classes
_WRITERS: dict[str, type[CSVExportWriter] | type[XLSXExportWriter]] = {
    ExportFormat.CSV: CSVExportWriter,
    ExportFormat.XLSX: XLSXExportWriter,
}

SUPPORTED_FORMATS = [str(name) for name in _WRITERS]

FILE_EXTENSIONS: dict[str, str] = {
    ExportFormat.CSV: ".csv",
    ExportFormat.XLSX: ".xlsx",
}


def create_writer(output_format: str, stream: BinaryIO, *, sanitize_formulas: bool = False) -> ExportWriter:
    """Create the streaming writer for an output format.

    Args:
        output_format: Output format (csv, xlsx).
        stream: Binary stream receiving the output.
        sanitize_formulas: Quote-prefix cells that would run as spreadsheet formulas.

    Returns:
        A writer implementing ExportWriter.

    Raises:
        ValueError: If the format is not supported.
    """
    if output_format not in _WRITERS:
        msg = f"Unsupported format: {output_format}. Supported: {SUPPORTED_FORMATS}"
        raise ValueError(msg)
    return _WRITERS[output_format](stream, sanitize_formulas=sanitize_formulas)


__all__ = [
    "CSVExportWriter",
    "ExportError",
    "ExportErrorKind",
    "ExportFormat",
    "ExportStorageError",
    "ExportValidationError",
    "ExportWriter",
    "FILE_EXTENSIONS",
    "SUPPORTED_FORMATS",
    "XLSXExportWriter",
    "create_writer",
    "format_timestamp",
    "format_value",
    "load_timezone",
    "sanitize_cell",
    "stringify_value",
]
