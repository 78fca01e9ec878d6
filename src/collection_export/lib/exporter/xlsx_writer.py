"""XLSX export writer built on an openpyxl write-only workbook.

Rows are handed to openpyxl as they arrive, so no list of rows is kept in
memory. The zip container itself can only be written once all rows are known,
which happens in :meth:`XLSXExportWriter.finalize`.
"""

from collections.abc import Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, BinaryIO

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from collection_export.lib.exporter.base import sanitize_cell
from collection_export.lib.exporter.formatter import stringify_value

DEFAULT_SHEET_TITLE = "Sheet1"

_SCALAR_TYPES = (int, float, Decimal, datetime, date, time)


class XLSXExportWriter:
    """Writes rows to a single worksheet and saves the workbook on finalize.

    Args:
        stream: Binary stream receiving the workbook.
        sanitize_formulas: Quote-prefix cells that would run as spreadsheet formulas.
        sheet_title: Title of the only worksheet.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        sanitize_formulas: bool = False,
        sheet_title: str = DEFAULT_SHEET_TITLE,
    ) -> None:
        self._stream = stream
        self._sanitize_formulas = sanitize_formulas
        self._workbook = Workbook(write_only=True)
        self._sheet = self._workbook.create_sheet(sheet_title)
        self._finalized = False
        self.rows_written = 0

    def write_header(self, labels: Sequence[str]) -> None:
        self._sheet.append([self._cell(label) for label in labels])

    def write_row(self, cells: Sequence[Any]) -> None:
        self._sheet.append([self._cell(value) for value in cells])
        self.rows_written += 1

    def finalize(self) -> None:
        if self._finalized:
            msg = "workbook already finalized"
            raise RuntimeError(msg)
        self._workbook.save(self._stream)
        self._finalized = True

    def _cell(self, value: Any) -> WriteOnlyCell:
        if value is None or isinstance(value, bool) or isinstance(value, _SCALAR_TYPES):
            return WriteOnlyCell(self._sheet, value=value)

        text = ILLEGAL_CHARACTERS_RE.sub("", stringify_value(value))
        if self._sanitize_formulas:
            text = str(sanitize_cell(text))
        cell = WriteOnlyCell(self._sheet, value=text)
        # Exported text is data, never a formula
        cell.data_type = "s"
        return cell
