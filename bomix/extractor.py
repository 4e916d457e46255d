"""
Cell and labeled-field extraction.

Spreadsheet cells are loosely typed: the same column can hold text in one row,
a number in the next and a date further down. Everything the parsers read goes
through ``cell_value`` which turns the raw openpyxl value into a ``CellValue``
tagged with its kind, so parser logic never branches on Python types.
"""

import datetime
import logging
import re
from enum import Enum
from typing import Any, Optional, Tuple

from .adapters.excel_adapter import Sheet

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^\$?([A-Za-z]{1,3})\$?(\d+)$")


class CellKind(Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BLANK = "blank"


class CellValue:
    """A spreadsheet cell value tagged with its kind."""

    __slots__ = ("kind", "raw")

    def __init__(self, kind: CellKind, raw: Any = None):
        self.kind = kind
        self.raw = raw

    @classmethod
    def of(cls, raw: Any) -> "CellValue":
        if raw is None:
            return BLANK
        if isinstance(raw, bool):
            return cls(CellKind.TEXT, "TRUE" if raw else "FALSE")
        if isinstance(raw, (int, float)):
            return cls(CellKind.NUMBER, raw)
        if isinstance(raw, (datetime.datetime, datetime.date, datetime.time)):
            return cls(CellKind.DATE, raw)
        if isinstance(raw, str):
            return cls(CellKind.TEXT, raw) if raw.strip() else BLANK
        return cls(CellKind.TEXT, str(raw))

    @property
    def is_blank(self) -> bool:
        return self.kind is CellKind.BLANK

    @property
    def text(self) -> str:
        """String rendering; integral floats lose their trailing ``.0``."""
        if self.kind is CellKind.BLANK:
            return ""
        if self.kind is CellKind.NUMBER:
            return _number_text(self.raw)
        if self.kind is CellKind.DATE:
            return _date_text(self.raw)
        return self.raw

    @property
    def value(self) -> Any:
        """JSON-friendly value: str, int/float, ISO date string or None."""
        if self.kind is CellKind.BLANK:
            return None
        if self.kind is CellKind.DATE:
            return _date_text(self.raw)
        return self.raw

    def __eq__(self, other) -> bool:
        if isinstance(other, CellValue):
            return self.kind is other.kind and self.raw == other.raw
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, self.raw))

    def __repr__(self) -> str:
        return f"CellValue({self.kind.value}, {self.raw!r})"


BLANK = CellValue(CellKind.BLANK)


def _number_text(number) -> str:
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def _date_text(value) -> str:
    if isinstance(value, datetime.datetime) and value.time() == datetime.time(0):
        return value.date().isoformat()
    return value.isoformat()


def decode_address(address: str) -> Tuple[int, int]:
    """Convert an A1-style address to zero-based (row, col).

    Raises:
        ValueError: If the address is not A1-style
    """
    match = _ADDRESS_RE.match(address.strip())
    if not match:
        raise ValueError(f"Invalid cell address: {address}")
    letters, digits = match.groups()
    col = 0
    for ch in letters.upper():
        col = col * 26 + (ord(ch) - ord("A") + 1)
    return int(digits) - 1, col - 1


def cell_value(sheet: Optional[Sheet], row: int, col: int) -> CellValue:
    """Tagged value of the cell at zero-based (row, col); blank when absent."""
    if sheet is None:
        return BLANK
    return CellValue.of(sheet.value(row, col))


def extract_labeled(sheet: Optional[Sheet], address: str, prefix: str) -> str:
    """
    Read a label-prefixed header cell such as ``"Product Code: ABC-1"``.

    Args:
        sheet: Sheet to read
        address: A1-style cell address
        prefix: Label expected at the start of the cell text

    Returns:
        The trimmed text after the first occurrence of ``prefix``, the trimmed
        cell text when the label is missing, or "" for a blank cell
    """
    row, col = decode_address(address)
    cell = cell_value(sheet, row, col)
    if cell.is_blank:
        return ""

    text = cell.text
    if prefix and prefix in text:
        return text.split(prefix, 1)[1].strip()
    return text.strip()


def key_text(value: Any) -> str:
    """Render one join-key component."""
    if value is None:
        return ""
    if isinstance(value, CellValue):
        return value.text
    if isinstance(value, float):
        return _number_text(value)
    return str(value)


def make_join_key(mfg: Any, mfg_pn: Any) -> str:
    """Join key ``{manufacturer}_{manufacturer part number}``."""
    return f"{key_text(mfg)}_{key_text(mfg_pn)}"
