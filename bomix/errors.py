"""Exception hierarchy for BOM import, classification and storage."""

from typing import Iterable, Optional


class BomixError(Exception):
    """Base class for every error raised by bomix."""


class ReadError(BomixError):
    """The spreadsheet bytes could not be read as a workbook."""


class ClassificationError(BomixError):
    """The workbook structure broke while detecting its BOM type."""


class UnsupportedFormat(BomixError):
    """The workbook matches neither the common nor the matrix layout."""


class MissingMainPart(BomixError, ValueError):
    """A group does not have exactly one part flagged as main source."""


class CommonBomNotFound(BomixError):
    """
    A matrix BOM was imported before its common BOM.

    The identifying triple is kept on the exception so callers can tell the
    user which common BOM has to be imported first.
    """

    def __init__(self, project: str, version: str, phase: str):
        self.project = project
        self.version = version
        self.phase = phase
        super().__init__(
            f"Common BOM not found for {project}_{phase}_{version}; "
            f"import the common BOM first."
        )


class UserCancelled(BomixError):
    """The user declined to overwrite an existing BOM."""


class NoDatabaseOpen(BomixError, RuntimeError):
    """An operation needs an open series database but none is open."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "No database is open")


class StoreClosed(BomixError, RuntimeError):
    """The document store has already been closed."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Document store is closed")


class InvalidDatabase(BomixError):
    """The file is not a series database."""


class SeriesAlreadyInitialized(BomixError):
    """The store already holds its series document."""


class SeriesNotInitialized(BomixError):
    """The store has no series document yet."""


class MissingRequiredField(BomixError, ValueError):
    """A config or series update is missing mandated keys."""

    def __init__(self, fields: Iterable[str], what: str = "config"):
        self.fields = list(fields)
        super().__init__(f"{what} is missing required field(s): {', '.join(self.fields)}")
