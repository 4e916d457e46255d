"""Tests for reading spreadsheet bytes into Workbook/Sheet snapshots."""

import io

import openpyxl
import pytest

from bomix.adapters.excel_adapter import ExcelAdapter, read_workbook
from bomix.errors import ReadError

from conftest import build_common_workbook, build_plain_workbook


def test_read_workbook_sheets_in_order(common_bytes):
    """All sheets are loaded in workbook order."""
    workbook = read_workbook(common_bytes)

    assert workbook.sheet_names == ["ALL", "SMD", "PTH", "BOTTOM", "MP"]
    assert "SMD" in workbook
    assert workbook.get("missing") is None
    assert workbook.has_sheets(["SMD", "PTH"])
    assert not workbook.has_sheets(["SMD", "XYZ"])


def test_sheet_cells_are_zero_based(common_bytes):
    """Cell A6 of the file is (5, 0) in the snapshot."""
    sheet = read_workbook(common_bytes).sheet("SMD")

    assert sheet.value(5, 0) == "R1"
    assert sheet.value(5, 1) == "H1"
    assert sheet.value(2, 1) == "Product Code: ACME-1"
    assert sheet.value(100, 100) is None


def test_cells_keep_their_address_when_sheet_starts_at_b3():
    """A sheet whose first used cell is B3 is not shifted to the origin."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "SMD"
    ws["B3"] = "Product Code: P1"
    ws["C6"] = "R1"
    buffer = io.BytesIO()
    wb.save(buffer)

    sheet = read_workbook(buffer.getvalue()).sheet("SMD")

    assert sheet.cells == {(2, 1): "Product Code: P1", (5, 2): "R1"}
    assert (sheet.min_row, sheet.min_col, sheet.max_row, sheet.max_col) == (2, 1, 5, 2)
    assert sheet.row_values(5) == [None, "R1"]


def test_sheet_used_range():
    sheet = read_workbook(build_common_workbook()).sheet("ALL")

    assert sheet.min_col == 0
    assert sheet.max_col == 12
    assert sheet.max_row == 4
    assert len(sheet.row_values(4)) == 13
    assert list(sheet.data_rows(5)) == []


def test_missing_sheet_raises_key_error():
    workbook = read_workbook(build_plain_workbook())

    with pytest.raises(KeyError):
        workbook.sheet("SMD")


def test_empty_bytes_raise_read_error():
    with pytest.raises(ReadError):
        read_workbook(b"")


def test_garbage_bytes_raise_read_error():
    with pytest.raises(ReadError):
        read_workbook(b"this is not a zip archive")


def test_adapter_can_handle():
    adapter = ExcelAdapter()

    assert adapter.can_handle("bom.xlsx")
    assert adapter.can_handle("BOM.XLSM")
    assert not adapter.can_handle("bom.csv")


def test_adapter_reads_file(write_file, common_bytes):
    path = write_file("common.xlsx", common_bytes)

    workbook = ExcelAdapter().read(path)

    assert workbook.sheet("PTH").value(5, 0) == "J1"


def test_adapter_missing_file_raises_read_error(tmp_path):
    with pytest.raises(ReadError):
        ExcelAdapter().read(tmp_path / "missing.xlsx")
