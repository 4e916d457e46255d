from .adapters.excel_adapter import ExcelAdapter, Workbook, read_workbook
from .classifier import BomType, detect_bom_type
from .parser import parse_common_bom, parse_common_workbook, extract_project_info
from .matrix import parse_matrix_bom, parse_matrix_workbook
from .records import ProjectInfo, Part, GroupDraft, MatrixGroup, CommonBom, MatrixBom, DuplicateBomDetails
from .config import ConfigManager
from .store import BomModel, DocumentStore
from .ingest import BomManager, ImportResult, ImportStatus, LogLevel, SessionLog

__all__ = [
    "ExcelAdapter", "Workbook", "read_workbook",
    "BomType", "detect_bom_type",
    "parse_common_bom", "parse_common_workbook", "extract_project_info",
    "parse_matrix_bom", "parse_matrix_workbook",
    "ProjectInfo", "Part", "GroupDraft", "MatrixGroup", "CommonBom", "MatrixBom", "DuplicateBomDetails",
    "ConfigManager",
    "BomModel", "DocumentStore",
    "BomManager", "ImportResult", "ImportStatus", "LogLevel", "SessionLog",
]
