import io
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import openpyxl

from ..errors import ReadError

logger = logging.getLogger(__name__)


class Sheet:
    """A worksheet snapshot: non-empty cells keyed by zero-based (row, col).

    The used range is inclusive and zero-based, mirroring the sheet's
    declared dimension.
    """

    def __init__(self, name: str, cells: Dict[Tuple[int, int], Any],
                 min_row: int = 0, min_col: int = 0,
                 max_row: int = 0, max_col: int = 0):
        self.name = name
        self.cells = cells
        self.min_row = min_row
        self.min_col = min_col
        self.max_row = max_row
        self.max_col = max_col

    @classmethod
    def from_worksheet(cls, ws) -> "Sheet":
        cells = {}
        min_row, min_col = ws.min_row, ws.min_column
        rows = ws.iter_rows(min_row=min_row, min_col=min_col, values_only=True)
        for r, row in enumerate(rows, start=min_row - 1):
            for c, value in enumerate(row, start=min_col - 1):
                if value is not None:
                    cells[(r, c)] = value
        return cls(
            name=ws.title,
            cells=cells,
            min_row=min_row - 1,
            min_col=min_col - 1,
            max_row=ws.max_row - 1,
            max_col=ws.max_column - 1,
        )

    def value(self, row: int, col: int) -> Any:
        """Raw cell value or None when the cell is absent."""
        return self.cells.get((row, col))

    def row_values(self, row: int) -> List[Any]:
        """Values of one row across the used column range, None for gaps."""
        return [self.value(row, c) for c in range(self.min_col, self.max_col + 1)]

    def data_rows(self, start: int) -> Iterator[int]:
        """Row indexes from ``start`` through the end of the used range."""
        return iter(range(start, self.max_row + 1))

    def __repr__(self) -> str:
        return f"Sheet({self.name!r}, rows={self.max_row + 1}, cols={self.max_col + 1})"


class Workbook:
    """Named sheets of a parsed spreadsheet, in workbook order."""

    def __init__(self, sheets: List[Sheet]):
        self._sheets = {sheet.name: sheet for sheet in sheets}
        self.sheet_names = [sheet.name for sheet in sheets]

    def get(self, name: str) -> Optional[Sheet]:
        return self._sheets.get(name)

    def sheet(self, name: str) -> Sheet:
        try:
            return self._sheets[name]
        except KeyError:
            raise KeyError(f"Sheet not found: {name}") from None

    def has_sheets(self, names) -> bool:
        return all(name in self._sheets for name in names)

    def __contains__(self, name: str) -> bool:
        return name in self._sheets


def read_workbook(data: Union[bytes, bytearray]) -> Workbook:
    """Load a workbook from raw spreadsheet bytes.

    Formula cells yield their cached results.

    Args:
        data: Contents of an .xlsx/.xlsm file

    Returns:
        Workbook with every worksheet loaded

    Raises:
        ReadError: If the bytes are not a readable workbook
    """
    if not data:
        raise ReadError("Empty spreadsheet data")

    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), data_only=True)
    except Exception as e:
        raise ReadError(f"Unreadable spreadsheet: {e}") from e

    try:
        return Workbook([Sheet.from_worksheet(ws) for ws in wb.worksheets])
    finally:
        wb.close()


class ExcelAdapter:
    """File adapter for Excel workbooks."""

    def can_handle(self, file_path) -> bool:
        return Path(file_path).suffix.lower() in [".xlsx", ".xlsm"]

    def read(self, file_path) -> Workbook:
        path = Path(file_path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Read Excel file failed: {path}: {e}")
            raise ReadError(f"Cannot read {path.name}: {e}") from e
        return read_workbook(data)
