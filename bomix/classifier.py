"""
BOM type detection.

Decides which of the two supported layouts a workbook uses by looking at its
sheet names and at how many cells the column-title row (row 5) holds:

- common BOM: sheets ALL, SMD, PTH, BOTTOM and MP, each with exactly 13
  non-empty title cells
- matrix BOM: sheets SMD and PTH, each with a title row spanning exactly 17
  columns (empty cells included)

The common check wins when both could match.
"""

import logging
from enum import Enum

from .adapters.excel_adapter import Workbook
from .errors import ClassificationError
from .schema import (
    COMMON_SHEETS,
    COMMON_TITLE_CELLS,
    MATRIX_SHEETS,
    MATRIX_TITLE_CELLS,
    TITLE_ROW,
)

logger = logging.getLogger(__name__)


class BomType(Enum):
    COMMON = "commonBOM"
    MATRIX = "matrixBOM"
    UNKNOWN = "unknown"


def _is_common(workbook: Workbook) -> bool:
    if not workbook.has_sheets(COMMON_SHEETS):
        return False
    for name in COMMON_SHEETS:
        title_row = workbook.sheet(name).row_values(TITLE_ROW)
        if sum(1 for cell in title_row if cell is not None) != COMMON_TITLE_CELLS:
            return False
    return True


def _is_matrix(workbook: Workbook) -> bool:
    if not workbook.has_sheets(MATRIX_SHEETS):
        return False
    return all(
        len(workbook.sheet(name).row_values(TITLE_ROW)) == MATRIX_TITLE_CELLS
        for name in MATRIX_SHEETS
    )


def detect_bom_type(workbook: Workbook) -> BomType:
    """Classify a workbook as a common, matrix or unknown BOM.

    Raises:
        ClassificationError: If the workbook structure cannot be inspected
    """
    try:
        if _is_common(workbook):
            return BomType.COMMON
        if _is_matrix(workbook):
            return BomType.MATRIX
        return BomType.UNKNOWN
    except Exception as e:
        logger.error(f"Detect BOM type failed: {e}", exc_info=True)
        raise ClassificationError(f"Cannot inspect workbook: {e}") from e
