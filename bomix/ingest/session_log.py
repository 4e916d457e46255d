"""Per-session import log shown to the user after a batch import."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from ..classifier import BomType


class LogLevel(Enum):
    INFO = "information"
    WARNING = "warning"
    ERROR = "error"


class ImportStatus(Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ImportResult:
    """Outcome of importing one file."""
    filename: str
    status: ImportStatus
    level: LogLevel
    message: str
    bom_type: Optional[BomType] = None

    @property
    def ok(self) -> bool:
        return self.status is ImportStatus.IMPORTED


@dataclass
class LogEntry:
    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class SessionLog:
    """Newest-first list of messages, capped at ``max_logs`` entries."""

    MAX_LOGS = 500

    def __init__(self, max_logs: int = MAX_LOGS):
        self.max_logs = max_logs
        self.entries: List[LogEntry] = []

    def push(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        entry = LogEntry(message=message, level=level)
        self.entries.insert(0, entry)
        del self.entries[self.max_logs:]
        return entry

    def extend(self, results: List[ImportResult]) -> None:
        for result in results:
            self.push(result.message, result.level)

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)
