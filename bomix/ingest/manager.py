"""
BOM import orchestration and series database lifecycle.

``BomManager`` is what the application layer talks to. It owns the single
active series database and imports batches of BOM workbooks into it:

1. Every file is read and classified concurrently (reading a workbook touches
   no shared state).
2. Common BOMs are imported first, then matrix BOMs, because a matrix BOM only
   adds selections to groups of an already imported common BOM.
3. Each file ends up with exactly one ``ImportResult``; a failing file never
   stops the others.

Writes are serialized on the database lock. Importing a common BOM holds it
from the duplicate check through the overwrite confirmation to the write, and a
matrix merge holds it from reading the target groups to the last update, so
two imports of the same BOM never interleave.
"""

import atexit
import logging
import os
import sqlite3
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..adapters.excel_adapter import ExcelAdapter, Workbook, read_workbook
from ..classifier import BomType, detect_bom_type
from ..config import DEFAULT_CONFIG, ConfigManager
from ..errors import (
    BomixError,
    ClassificationError,
    CommonBomNotFound,
    InvalidDatabase,
    NoDatabaseOpen,
    ReadError,
    UnsupportedFormat,
    UserCancelled,
)
from ..matrix import parse_matrix_workbook
from ..parser import parse_common_workbook
from ..records import DuplicateBomDetails, ProjectInfo
from ..store.model import BomModel
from .session_log import ImportResult, ImportStatus, LogLevel, SessionLog

logger = logging.getLogger(__name__)

# Answers True to overwrite an existing BOM, False to keep it
ConfirmOverwrite = Callable[[DuplicateBomDetails], bool]

# Receives the default directory, returns the chosen database path or None
ChooseDatabase = Callable[[str], Optional[str]]


@dataclass
class _FileJob:
    index: int
    filename: str
    workbook: Optional[Workbook] = None
    bom_type: Optional[BomType] = None
    result: Optional[ImportResult] = None


def _skipped(filename: str, message: str, bom_type: Optional[BomType] = None) -> ImportResult:
    return ImportResult(filename, ImportStatus.SKIPPED, LogLevel.WARNING, message, bom_type)


def _failed(filename: str, message: str, bom_type: Optional[BomType] = None) -> ImportResult:
    return ImportResult(filename, ImportStatus.FAILED, LogLevel.ERROR, message, bom_type)


class BomManager:
    """
    Imports BOM workbooks into the active series database.

    Args:
        config_manager: Source of ``default_database_path``,
                        ``autocompact_minutes`` and ``import_workers``;
                        defaults are used when omitted
        confirm_overwrite: Asked before a common BOM replaces an existing one
                           with the same project/phase/version. Without it
                           duplicates are never overwritten.
        choose_database: Asked by ``select_or_create_database`` for a path
        max_workers: Thread count for reading and importing files
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        confirm_overwrite: Optional[ConfirmOverwrite] = None,
        choose_database: Optional[ChooseDatabase] = None,
        max_workers: Optional[int] = None,
    ):
        self.config_manager = config_manager
        self.confirm_overwrite = confirm_overwrite
        self.choose_database = choose_database
        self.max_workers = max_workers
        self.session_log = SessionLog()
        self._adapter = ExcelAdapter()
        self._current_db: Optional[BomModel] = None
        self._lifecycle_lock = threading.RLock()

    def _config(self, key: str) -> Any:
        if self.config_manager is None:
            return DEFAULT_CONFIG[key]
        return self.config_manager.get(key, DEFAULT_CONFIG[key])

    def _workers(self) -> int:
        workers = self.max_workers or self._config("import_workers") or 1
        return max(1, int(workers))

    def _autocompact_interval(self) -> Optional[float]:
        minutes = self._config("autocompact_minutes")
        return float(minutes) * 60 if minutes else None

    # ------------------------------------------------------------------
    # Database lifecycle
    # ------------------------------------------------------------------

    def select_or_create_database(self) -> Optional[str]:
        """Ask the chooser for an existing or new database path.

        Returns:
            The chosen path, or None when the user cancelled (or no chooser is
            configured)
        """
        default_path = self._config("default_database_path") or os.getcwd()
        if self.choose_database is None:
            logger.warning("No database chooser configured")
            return None
        try:
            chosen = self.choose_database(default_path)
        except Exception as e:
            logger.error(f"Failed to select database path: {e}")
            raise
        return str(chosen) if chosen else None

    def init_database(self, db_path, series_name: str, series_note: str = "") -> BomModel:
        """Create a new series database and make it the active one.

        Any open database is closed first. On failure no database is open.
        """
        with self._lifecycle_lock:
            self.close_current_database()
            db = BomModel(db_path, autocompact_interval=self._autocompact_interval())
            try:
                db.init_series(series_name, series_note)
            except Exception as e:
                logger.error(f"Failed to initialize database {db_path}: {e}")
                db.close()
                raise
            self._activate(db)
        logger.info(f"Database initialized: {db_path}")
        return db

    def open_database(self, db_path) -> BomModel:
        """Open an existing series database and make it the active one.

        Raises:
            InvalidDatabase: If the file is missing, not a database or has no
                             series document; no database is open afterwards
        """
        path = Path(db_path)
        with self._lifecycle_lock:
            self.close_current_database()
            if not path.is_file():
                raise InvalidDatabase(f"Database file not found: {path}")
            try:
                db = BomModel(path, autocompact_interval=self._autocompact_interval())
            except sqlite3.DatabaseError as e:
                logger.error(f"Failed to open database {path}: {e}")
                raise InvalidDatabase(f"Not a series database: {path}") from e

            if db.get_series_info() is None:
                db.close()
                raise InvalidDatabase(f"Invalid database format: {path}")
            self._activate(db)
        logger.info(f"Database opened: {path}")
        return db

    def _activate(self, db: BomModel) -> None:
        self._current_db = db
        # closes the database if the process exits while it is open
        atexit.register(self.shutdown)

    def close_current_database(self) -> None:
        with self._lifecycle_lock:
            db, self._current_db = self._current_db, None
            if db is None:
                return
            atexit.unregister(self.shutdown)
            if not db.closed:
                db.close()

    def get_current_database(self) -> Optional[BomModel]:
        return self._current_db

    @property
    def is_open(self) -> bool:
        return self._current_db is not None

    def require_database(self) -> BomModel:
        db = self._current_db
        if db is None:
            raise NoDatabaseOpen()
        return db

    def shutdown(self) -> None:
        """Close the active database, logging instead of raising on failure."""
        try:
            self.close_current_database()
        except Exception as e:
            logger.error(f"Failed to close database on shutdown: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries on the active database
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, int]:
        return self.require_database().get_statistics()

    def get_all_boms(self) -> List[Dict[str, Any]]:
        return self.require_database().get_all_boms()

    def get_full_bom(self, bom_id: str) -> Optional[Dict[str, Any]]:
        return self.require_database().get_full_bom(bom_id)

    def get_groups(self, bom_id: str) -> List[Dict[str, Any]]:
        return self.require_database().get_groups_by_bom_id(bom_id)

    def delete_boms(self, bom_ids: Iterable[str]) -> int:
        return self.require_database().delete_boms(bom_ids)

    def get_series_info(self) -> Optional[Dict[str, Any]]:
        return self.require_database().get_series_info()

    def update_series_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return self.require_database().update_series_config(config)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_many(self, files: Iterable) -> List[ImportResult]:
        """
        Import a batch of BOM workbooks into the active database.

        Args:
            files: Paths, or binary file-like objects (``read()`` and
                   optionally ``name``)

        Returns:
            One ImportResult per file, in the order the files were given

        Raises:
            NoDatabaseOpen: If no database is open
        """
        db = self.require_database()
        files = list(files)
        results: List[Optional[ImportResult]] = [None] * len(files)

        with ThreadPoolExecutor(max_workers=self._workers()) as pool:
            jobs = list(pool.map(self._classify, range(len(files)), files))

            common = [job for job in jobs if job.result is None and job.bom_type is BomType.COMMON]
            matrix = [job for job in jobs if job.result is None and job.bom_type is BomType.MATRIX]

            # pool.map is consumed fully, so every common BOM is stored before
            # the first matrix BOM looks for it
            for stage in (common, matrix):
                for job, result in zip(stage, pool.map(lambda j: self._run(db, j), stage)):
                    job.result = result

        for job in jobs:
            results[job.index] = job.result

        self.session_log.extend(results)
        return results

    @staticmethod
    def _source_name(index: int, source) -> str:
        if isinstance(source, (str, os.PathLike)):
            name = Path(source).name
        else:
            name = Path(str(getattr(source, "name", "") or "")).name
        return name or f"<file {index + 1}>"

    def _load(self, source) -> Workbook:
        if isinstance(source, (str, os.PathLike)):
            return self._adapter.read(source)
        return read_workbook(source.read())

    def _classify(self, index: int, source) -> _FileJob:
        job = _FileJob(index=index, filename=self._source_name(index, source))

        is_path = isinstance(source, (str, os.PathLike))
        if (is_path and not str(source).strip()) or (not is_path and not hasattr(source, "read")):
            logger.warning(f"Invalid file path: {source!r}")
            job.result = _skipped(job.filename, f"Invalid file path: {source!r}")
            return job

        try:
            job.workbook = self._load(source)
        except ReadError as e:
            logger.error(f"Failed to read {job.filename}: {e}")
            job.result = _failed(job.filename, f"Failed to read file: {job.filename} - {e}")
            return job

        try:
            job.bom_type = detect_bom_type(job.workbook)
        except ClassificationError as e:
            job.result = _failed(job.filename, f"Failed to check file type: {job.filename} - {e}")
            return job

        if job.bom_type is BomType.UNKNOWN:
            error = UnsupportedFormat(f"Unsupported BOM type: {job.filename}")
            job.result = _skipped(job.filename, str(error), job.bom_type)
        return job

    def _run(self, db: BomModel, job: _FileJob) -> ImportResult:
        """Import one classified file and turn its outcome into a result."""
        name, bom_type = job.filename, job.bom_type
        try:
            if bom_type is BomType.COMMON:
                message = self._import_common(db, job.workbook, name)
            else:
                message = self._import_matrix(db, job.workbook, name)
        except UserCancelled:
            return _skipped(name, f"Common BOM duplicate (not imported): {name}", bom_type)
        except CommonBomNotFound as e:
            return _skipped(
                name,
                f"Failed to import matrix BOM: {name} - no common BOM "
                f"{e.project}_{e.phase}_{e.version}; import the common BOM first.",
                bom_type,
            )
        except BomixError as e:
            logger.error(f"Import of {name} failed: {e}")
            return _failed(name, f"Failed to import {name} - {e}", bom_type)
        except Exception as e:
            logger.error(f"Import of {name} failed: {e}", exc_info=True)
            return _failed(name, f"Failed to import {name} - {e}", bom_type)
        return ImportResult(name, ImportStatus.IMPORTED, LogLevel.INFO, message, bom_type)

    def _confirm(self, info: ProjectInfo, existing: Dict[str, Any]) -> None:
        details = DuplicateBomDetails(
            project=info.project,
            version=info.version,
            phase=info.phase,
            description=info.description,
            created_at=existing.get("created_at"),
            updated_at=existing.get("updated_at"),
            filename=info.filename,
        )
        if self.confirm_overwrite is None or not self.confirm_overwrite(details):
            logger.warning(f"User chose not to import {info.filename}")
            raise UserCancelled(f"BOM {info.label} already exists and was not overwritten")

    def _import_common(self, db: BomModel, workbook: Workbook, filename: str) -> str:
        parsed = parse_common_workbook(workbook, filename)
        info = parsed.info

        with db.lock:
            existing = db.find_existing_bom(info.project, info.phase, info.version)
            if existing is not None:
                self._confirm(info, existing)
            bom = db.import_bom(info.to_dict(), parsed.groups)

        logger.info(f"Imported common BOM {info.label} from {filename}")
        return f"Imported common BOM: {filename} ({len(bom['groups'])} groups)"

    def _import_matrix(self, db: BomModel, workbook: Workbook, filename: str) -> str:
        parsed = parse_matrix_workbook(workbook, filename)
        info = parsed.info

        with db.store.transaction():
            existing = db.find_existing_bom(info.project, info.phase, info.version)
            if existing is None:
                raise CommonBomNotFound(info.project, info.version, info.phase)

            groups_by_key = defaultdict(list)
            for group in db.get_groups_by_bom_id(existing["_id"]):
                groups_by_key[group.get("join_key")].append(group)

            updated = 0
            for matrix_group in parsed.groups:
                matches = groups_by_key.get(matrix_group.join_key, [])
                if not matches:
                    logger.warning(f"No matching groups found for matrix group with key: {matrix_group.join_key}")
                    continue
                for group in matches:
                    db.update_group_matrix(group["_id"], matrix_group.matrix)
                updated += len(matches)
                logger.debug(f"Updated matrix for {len(matches)} groups with key: {matrix_group.join_key}")

        logger.info(f"Imported matrix BOM {info.label} from {filename}: {updated} groups updated")
        return f"Imported matrix BOM: {filename} ({updated} groups updated)"
