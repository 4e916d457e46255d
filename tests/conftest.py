"""Shared fixtures: in-memory BOM workbooks and throwaway series databases."""

import io
import sys
from pathlib import Path

import openpyxl
import pytest

# Add parent directory to path to import bomix
sys.path.insert(0, str(Path(__file__).parent.parent))

from bomix.schema import COMMON_COLUMNS, COMMON_SHEETS, MATRIX_SHEETS
from bomix.store.model import BomModel

HEADER = {
    "project": "ACME-1",
    "description": "Main board",
    "pca_pn": "PCA-100",
    "version": "1.0",
    "phase": "EVT",
    "date": "2024-01-02",
}

MATRIX_SLOTS = ["CFG-A", "CFG-B", "CFG-C", "CFG-D", "CFG-E", "CFG-F"]


def _put(ws, row: int, col: int, value) -> None:
    """Write a value at 1-based (row, col); None leaves the cell absent."""
    if value is not None:
        ws.cell(row=row, column=col, value=value)


def _write_header(ws, header) -> None:
    _put(ws, 3, 2, f"Product Code: {header['project']}")
    _put(ws, 4, 2, f"Description: {header['description']}")
    _put(ws, 4, 6, f"PCA PN: {header['pca_pn']}")
    _put(ws, 3, 8, f"BOM Version: {header['version']}")
    _put(ws, 3, 10, f"Phase: {header['phase']}")
    _put(ws, 4, 8, f"Date: {header['date']}")


def _write_rows(ws, rows) -> None:
    for offset, values in enumerate(rows):
        for col, value in enumerate(values, start=1):
            _put(ws, 6 + offset, col, value)


def _to_bytes(wb) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def common_row(item=None, house_pn=None, mfg=None, mfg_pn=None, **extra):
    """A 13-column common BOM row."""
    values = {"item": item, "house_pn": house_pn, "mfg": mfg, "mfg_pn": mfg_pn, **extra}
    return [values.get(name) for name in COMMON_COLUMNS]


def matrix_row(item=None, house_pn=None, mfg=None, mfg_pn=None, flags=(), remark=None,
               slots=len(MATRIX_SLOTS), qty=None, location=None):
    """An 8 fixed + 2 spare + slot flags + remark matrix BOM row."""
    fixed = [item, house_pn, None, None, mfg, mfg_pn, qty, location]
    marks = ["V" if i in flags else None for i in range(slots)]
    return fixed + [None, None] + marks + [remark]


def build_common_workbook(sheets=None, header=None, title_cells=13) -> bytes:
    """
    Common BOM workbook bytes.

    Args:
        sheets: Sheet name -> data rows; every common sheet is created
        header: Header fields written to the SMD sheet
        title_cells: Number of filled cells on each title row
    """
    sheets = sheets or {}
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name in COMMON_SHEETS:
        ws = wb.create_sheet(name)
        if name == "SMD":
            _write_header(ws, header or HEADER)
        for col in range(1, title_cells + 1):
            _put(ws, 5, col, f"Title {col}")
        _write_rows(ws, sheets.get(name, []))
    return _to_bytes(wb)


def build_matrix_workbook(sheets=None, header=None, slot_names=None) -> bytes:
    """
    Matrix BOM workbook bytes with SMD and PTH sheets 17 columns wide.

    Args:
        sheets: Sheet name -> data rows built with ``matrix_row``
        header: Header fields written to the SMD sheet
        slot_names: Names written on row 4 from column K
    """
    sheets = sheets or {}
    slot_names = MATRIX_SLOTS if slot_names is None else slot_names
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    names = list(MATRIX_SHEETS) + [n for n in sheets if n not in MATRIX_SHEETS]
    for name in names:
        ws = wb.create_sheet(name)
        if name == "SMD":
            _write_header(ws, header or HEADER)
        for offset, slot in enumerate(slot_names):
            _put(ws, 4, 11 + offset, slot)
        for col in range(1, 18):
            _put(ws, 5, col, f"Title {col}")
        _write_rows(ws, sheets.get(name, []))
    return _to_bytes(wb)


def build_plain_workbook() -> bytes:
    wb = openpyxl.Workbook()
    wb.active.title = "Sheet1"
    wb.active["A1"] = "not a bom"
    return _to_bytes(wb)


@pytest.fixture
def common_rows():
    """R1 with one alternate on SMD and one single-part group on PTH."""
    return {
        "SMD": [
            common_row("R1", "H1", "ACME", "X1", qty=2, location="R1,R2", ccl="Y"),
            common_row(None, "H2", "ACME", "X2"),
        ],
        "PTH": [
            common_row("J1", "H3", "CONN", "C100", qty=1, location="J1"),
        ],
    }


@pytest.fixture
def common_bytes(common_rows):
    return build_common_workbook(common_rows)


@pytest.fixture
def matrix_bytes():
    """Selections for R1: slot 0 keeps the main part, slot 2 takes the alternate."""
    return build_matrix_workbook({
        "SMD": [
            matrix_row("R1", "H1", "ACME", "X1", flags=(0,)),
            matrix_row(None, "H2", "ACME", "X2", flags=(2,)),
        ],
    })


@pytest.fixture
def write_file(tmp_path):
    """Write bytes under tmp_path and return the path."""
    def write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return write


@pytest.fixture
def model(tmp_path):
    db = BomModel(tmp_path / "series.db", autocompact_interval=None)
    db.init_series("Series A", "test series")
    yield db
    if not db.closed:
        db.close()
