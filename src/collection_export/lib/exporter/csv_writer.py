"""CSV export writer."""

import csv
import io
from collections.abc import Sequence
from typing import Any, BinaryIO

from collection_export.lib.exporter.base import sanitize_cell
from collection_export.lib.exporter.formatter import stringify_value


class CSVExportWriter:
    """Writes rows to a binary stream as UTF-8 CSV, one encoded line at a time.

    Args:
        stream: Binary stream receiving the output.
        sanitize_formulas: Quote-prefix cells that would run as spreadsheet formulas.
    """

    def __init__(self, stream: BinaryIO, *, sanitize_formulas: bool = False) -> None:
        self._stream = stream
        self._sanitize_formulas = sanitize_formulas
        self._line = io.StringIO()
        self._writer = csv.writer(self._line, lineterminator="\n")
        self.rows_written = 0

    def write_header(self, labels: Sequence[str]) -> None:
        self._write_line(labels)

    def write_row(self, cells: Sequence[Any]) -> None:
        self._write_line(cells)
        self.rows_written += 1

    def finalize(self) -> None:
        self._stream.flush()

    def _write_line(self, cells: Sequence[Any]) -> None:
        values = [stringify_value(cell) for cell in cells]
        if self._sanitize_formulas:
            values = [sanitize_cell(value) for value in values]
        self._writer.writerow(values)
        self._stream.write(self._line.getvalue().encode("utf-8"))
        self._line.seek(0)
        self._line.truncate()
