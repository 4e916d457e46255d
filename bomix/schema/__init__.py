"""BOM layout definitions: sheet names, fixed column layouts and header cells."""

from typing import Dict, List, Tuple

# Sheets that must all exist in a common BOM workbook
COMMON_SHEETS = ["ALL", "SMD", "PTH", "BOTTOM", "MP"]

# Sheets that must all exist in a matrix BOM workbook
MATRIX_SHEETS = ["SMD", "PTH"]

# Sheets walked for parts, in import order
PART_SHEETS = ["SMD", "PTH", "BOTTOM"]

# Sheet holding the project header cells
HEADER_SHEET = "SMD"

# Zero-based index of the column-title row used for type detection (row 5)
TITLE_ROW = 4

# Zero-based index of the first data row (row 6)
FIRST_DATA_ROW = 5

COMMON_TITLE_CELLS = 13
MATRIX_TITLE_CELLS = 17

# Common BOM columns A-M, in order
COMMON_COLUMNS: List[str] = [
    "item",
    "house_pn",
    "std_pn",
    "group_pn",
    "description",
    "mfg",
    "mfg_pn",
    "qty",
    "location",
    "ccl",
    "lead_time",
    "remark",
    "approval",
]

# Matrix BOM fixed columns A-H; matrix flags start at K and the remark follows them
MATRIX_COLUMNS: List[str] = [
    "item",
    "house_pn",
    "std_pn",
    "description",
    "mfg",
    "mfg_pn",
    "qty",
    "location",
]

# Row with the matrix slot names (row 4) and the column they start in (K)
MATRIX_NAME_ROW = 3
MATRIX_FIRST_COLUMN = 10

# Cell value that selects an alternate in a matrix slot
MATRIX_FLAG = "V"

# Project header cells on the SMD sheet: field -> (address, label prefix)
HEADER_CELLS: Dict[str, Tuple[str, str]] = {
    "project": ("B3", "Product Code:"),
    "description": ("B4", "Description:"),
    "pca_pn": ("F4", "PCA PN:"),
    "version": ("H3", "BOM Version:"),
    "phase": ("J3", "Phase:"),
    "date": ("H4", "Date:"),
}

# Document type discriminators
SERIES = "series"
BOM = "bom"
GROUP = "group"
DOCUMENT_TYPES = (SERIES, BOM, GROUP)

# Selection lists kept in the series config, one per BOM kind
SELECTED_BOM_KINDS = ("common", "matrix", "bccl")

__all__ = [
    "COMMON_SHEETS",
    "MATRIX_SHEETS",
    "PART_SHEETS",
    "HEADER_SHEET",
    "TITLE_ROW",
    "FIRST_DATA_ROW",
    "COMMON_TITLE_CELLS",
    "MATRIX_TITLE_CELLS",
    "COMMON_COLUMNS",
    "MATRIX_COLUMNS",
    "MATRIX_NAME_ROW",
    "MATRIX_FIRST_COLUMN",
    "MATRIX_FLAG",
    "HEADER_CELLS",
    "SERIES",
    "BOM",
    "GROUP",
    "DOCUMENT_TYPES",
    "SELECTED_BOM_KINDS",
]
