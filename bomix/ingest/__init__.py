"""BOM import orchestration over the active series database."""

from .manager import BomManager, ConfirmOverwrite, ChooseDatabase
from .session_log import ImportResult, ImportStatus, LogEntry, LogLevel, SessionLog

__all__ = [
    "BomManager",
    "ConfirmOverwrite",
    "ChooseDatabase",
    "ImportResult",
    "ImportStatus",
    "LogEntry",
    "LogLevel",
    "SessionLog",
]
