"""
Common BOM parsing.

A common BOM lists every placed item on the SMD, PTH and BOTTOM sheets using
13 fixed columns (A-M). A row with an item number opens a new group and its
part becomes the group's main source; following rows with a blank item column
are alternates of that group.

The row walk is a fold: ``_GroupFold`` is an immutable accumulator and
``_start_group`` / ``_append_part`` are the two transitions over it.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .adapters.excel_adapter import Sheet, Workbook
from .extractor import CellValue, cell_value, extract_labeled
from .records import CommonBom, GroupDraft, Part, ProjectInfo
from .schema import COMMON_COLUMNS, FIRST_DATA_ROW, HEADER_CELLS, HEADER_SHEET, PART_SHEETS

logger = logging.getLogger(__name__)

Row = Dict[str, CellValue]


def extract_project_info(workbook: Workbook, filename: str = "") -> ProjectInfo:
    """Read the project header fields from the SMD sheet.

    Missing cells (or a missing SMD sheet) give empty strings.
    """
    sheet = workbook.get(HEADER_SHEET)
    fields = {
        name: extract_labeled(sheet, address, prefix)
        for name, (address, prefix) in HEADER_CELLS.items()
    }
    return ProjectInfo(filename=filename, **fields)


def read_row(sheet: Sheet, row: int, columns: List[str], start_col: int = 0) -> Row:
    """Read consecutive cells of one row into a dict keyed by column name."""
    return {
        name: cell_value(sheet, row, start_col + offset)
        for offset, name in enumerate(columns)
    }


def is_part_row(row: Row) -> bool:
    """A row describes a part only when it has a house PN and an MFG PN."""
    return not (row["house_pn"].is_blank or row["mfg_pn"].is_blank)


def part_from_row(row: Row, is_main: bool = False) -> Part:
    values = {name: cell.value for name, cell in row.items() if name in Part.__dataclass_fields__}
    return Part(is_main=is_main, **values)


@dataclass(frozen=True)
class _GroupFold:
    groups: Tuple[GroupDraft, ...] = ()
    # index of the open group in ``groups``, None before the first item row
    open_index: Optional[int] = None


def _start_group(acc: _GroupFold, process: str, row: Row) -> _GroupFold:
    group = GroupDraft(
        process=process,
        item=row["item"].value,
        qty=row["qty"].value,
        location=row["location"].value,
        ccl=row["ccl"].value,
        parts=(part_from_row(row, is_main=True),),
    )
    return _GroupFold(groups=acc.groups + (group,), open_index=len(acc.groups))


def _append_part(acc: _GroupFold, row: Row) -> _GroupFold:
    i = acc.open_index
    group = acc.groups[i].with_part(part_from_row(row, is_main=False))
    return _GroupFold(groups=acc.groups[:i] + (group,) + acc.groups[i + 1:], open_index=i)


def _fold_row(process: str, acc: _GroupFold, row: Row) -> _GroupFold:
    if not is_part_row(row):
        return acc
    if not row["item"].is_blank:
        return _start_group(acc, process, row)
    if acc.open_index is not None:
        return _append_part(acc, row)
    # alternate row before any item row: nothing to attach it to
    return acc


def parse_sheet_groups(sheet: Sheet) -> Tuple[GroupDraft, ...]:
    """Fold the data rows of one common-BOM sheet into groups."""
    rows = (read_row(sheet, r, COMMON_COLUMNS) for r in sheet.data_rows(FIRST_DATA_ROW))
    fold = functools.reduce(functools.partial(_fold_row, sheet.name), rows, _GroupFold())
    return fold.groups


def parse_common_bom(workbook: Workbook) -> List[GroupDraft]:
    """
    Parse every group of a common BOM workbook.

    Args:
        workbook: Workbook already classified as a common BOM

    Returns:
        Groups of the SMD, PTH and BOTTOM sheets, in sheet then row order.
        Every group has exactly one main part.
    """
    groups: List[GroupDraft] = []
    for name in PART_SHEETS:
        sheet = workbook.get(name)
        if sheet is None:
            logger.warning(f"Common BOM has no {name} sheet, skipping it")
            continue
        sheet_groups = parse_sheet_groups(sheet)
        logger.debug(f"Parsed {len(sheet_groups)} groups from sheet {name}")
        groups.extend(sheet_groups)
    return groups


def parse_common_workbook(workbook: Workbook, filename: str = "") -> CommonBom:
    """Header info plus groups of a common BOM workbook."""
    info = extract_project_info(workbook, filename)
    return CommonBom(info=info, groups=tuple(parse_common_bom(workbook)))
