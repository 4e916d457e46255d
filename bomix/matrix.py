"""
Matrix BOM parsing.

A matrix BOM repeats the parts of an already imported common BOM and adds one
column per build configuration ("matrix slot", starting at column K). A ``V``
in a slot column marks the row's part as the alternate selected for that
configuration.

Rows are grouped the same way as in a common BOM: an item row opens a group
and its manufacturer/MFG PN forms the group's join key, which is later used to
find the stored common-BOM groups the selections belong to.
"""

import functools
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .adapters.excel_adapter import Sheet, Workbook
from .extractor import cell_value, make_join_key
from .parser import Row, extract_project_info, is_part_row, part_from_row, read_row
from .records import MatrixBom, MatrixGroup
from .schema import (
    FIRST_DATA_ROW,
    HEADER_SHEET,
    MATRIX_COLUMNS,
    MATRIX_FIRST_COLUMN,
    MATRIX_FLAG,
    MATRIX_NAME_ROW,
    PART_SHEETS,
)

logger = logging.getLogger(__name__)


def matrix_count(sheet: Optional[Sheet]) -> int:
    """Number of consecutive slot names on row 4 starting at column K."""
    count = 0
    while not cell_value(sheet, MATRIX_NAME_ROW, MATRIX_FIRST_COLUMN + count).is_blank:
        count += 1
    return count


def is_flagged(cell) -> bool:
    return cell.text.strip().upper() == MATRIX_FLAG


def read_matrix_row(sheet: Sheet, row: int, count: int) -> Tuple[Row, List[int]]:
    """Read the fixed columns, the remark and the flagged slot indexes of one row."""
    data = read_row(sheet, row, MATRIX_COLUMNS)
    data["remark"] = cell_value(sheet, row, MATRIX_FIRST_COLUMN + count)
    flagged = [
        slot for slot in range(count)
        if is_flagged(cell_value(sheet, row, MATRIX_FIRST_COLUMN + slot))
    ]
    return data, flagged


@dataclass(frozen=True)
class _MatrixFold:
    done: Tuple[MatrixGroup, ...] = ()
    current: Optional[MatrixGroup] = None

    def flushed(self) -> Tuple[MatrixGroup, ...]:
        if self.current is None:
            return self.done
        return self.done + (self.current,)


def _start_matrix_group(acc: _MatrixFold, process: str, row: Row, count: int) -> _MatrixFold:
    group = MatrixGroup(
        process=process,
        join_key=make_join_key(row["mfg"], row["mfg_pn"]),
        item=row["item"].value,
        qty=row["qty"].value,
        location=row["location"].value,
        matrix=("",) * count,
    )
    return _MatrixFold(done=acc.flushed(), current=group)


def _fold_matrix_row(process: str, count: int, acc: _MatrixFold, scanned) -> _MatrixFold:
    row, flagged = scanned
    if not is_part_row(row):
        return acc
    if not row["item"].is_blank:
        acc = _start_matrix_group(acc, process, row, count)
    if acc.current is None:
        return acc
    return _MatrixFold(done=acc.done, current=acc.current.with_row(part_from_row(row), flagged))


def parse_matrix_sheet(sheet: Sheet, count: int) -> Tuple[MatrixGroup, ...]:
    """Fold the data rows of one matrix-BOM sheet into matrix groups."""
    rows = (read_matrix_row(sheet, r, count) for r in sheet.data_rows(FIRST_DATA_ROW))
    step = functools.partial(_fold_matrix_row, sheet.name, count)
    return functools.reduce(step, rows, _MatrixFold()).flushed()


def parse_matrix_bom(workbook: Workbook, count: Optional[int] = None) -> List[MatrixGroup]:
    """
    Parse the matrix groups of a matrix BOM workbook.

    Args:
        workbook: Workbook already classified as a matrix BOM
        count: Number of matrix slots; read from the SMD sheet when omitted

    Returns:
        Matrix groups of the SMD, PTH and BOTTOM sheets in sheet then row
        order. Missing sheets are skipped.
    """
    if count is None:
        count = matrix_count(workbook.get(HEADER_SHEET))

    groups: List[MatrixGroup] = []
    for name in PART_SHEETS:
        sheet = workbook.get(name)
        if sheet is None:
            continue
        groups.extend(parse_matrix_sheet(sheet, count))
    return groups


def parse_matrix_workbook(workbook: Workbook, filename: str = "") -> MatrixBom:
    """Header info, slot count and matrix groups of a matrix BOM workbook."""
    info = extract_project_info(workbook, filename)
    count = matrix_count(workbook.get(HEADER_SHEET))
    logger.debug(f"{filename or info.label}: {count} matrix slots")
    return MatrixBom(info=info, matrix_count=count, groups=tuple(parse_matrix_bom(workbook, count)))
