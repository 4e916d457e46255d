"""
BOM series model.

One ``BomModel`` owns one series database file and exposes the typed
operations the rest of the package uses:

- Series: the single document describing the database (name, note, file, and
  which BOMs are selected for each BOM kind)
- BOM: one project/phase/version parts list; the triple is unique per store
- Group: one placed item of a BOM with its main part, alternates and the
  optional matrix selections

Before anything is written, blank strings and None values are dropped from the
document (numeric zero and False are kept), so stored documents never carry
empty fields.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..errors import (
    MissingMainPart,
    MissingRequiredField,
    SeriesAlreadyInitialized,
    SeriesNotInitialized,
    StoreClosed,
)
from ..extractor import make_join_key
from ..schema import BOM, GROUP, SELECTED_BOM_KINDS, SERIES
from .document_store import DocumentStore

logger = logging.getLogger(__name__)

BOM_FIELDS = ("project", "description", "pca_pn", "version", "phase", "date", "filename")
GROUP_FIELDS = ("process", "item", "qty", "location", "ccl")
PART_FIELDS = (
    "house_pn", "std_pn", "group_pn", "description", "mfg", "mfg_pn",
    "qty", "location", "ccl", "lead_time", "remark", "approval",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_data(data: Mapping) -> Dict[str, Any]:
    """Drop keys whose value is None or an empty string; keep 0 and False."""
    return {k: v for k, v in data.items() if v is not None and v != ""}


def _blank_keys(data: Mapping) -> List[str]:
    return [k for k, v in data.items() if v is None or v == ""]


def _get(data, key: str, default=None):
    if isinstance(data, Mapping):
        return data.get(key, default)
    return getattr(data, key, default)


def _main_part(parts: Sequence) -> Any:
    """The single part flagged main; MissingMainPart unless there is exactly one."""
    mains = [p for p in parts if _get(p, "is_main")]
    if len(mains) != 1:
        raise MissingMainPart(
            f"A group needs exactly one main source part, found {len(mains)}"
        )
    return mains[0]


def _matrix_list(matrix) -> List[str]:
    """Matrix as a list indexed by slot; accepts a sequence or an index mapping."""
    if matrix is None:
        return []
    if isinstance(matrix, Mapping):
        if not matrix:
            return []
        slots = {int(k): v for k, v in matrix.items()}
        values = [slots.get(i) for i in range(max(slots) + 1)]
    else:
        values = list(matrix)
    # an unselected slot may arrive as None, "" or an empty list
    return [v if isinstance(v, str) else "" for v in values]


def is_matrix_empty(matrix) -> bool:
    return not any(_matrix_list(matrix))


class BomModel:
    """
    Typed series/BOM/group operations over one series database file.

    Args:
        db_path: Path of the series database file
        autocompact_interval: Seconds between background compactions (None
                              disables the timer)
    """

    def __init__(self, db_path, autocompact_interval: Optional[float] = 300.0):
        self.db_path = Path(db_path)
        self.store = DocumentStore(self.db_path, autocompact_interval=autocompact_interval)
        self._series_info: Optional[Dict[str, Any]] = None

    @property
    def lock(self):
        """Re-entrant lock serializing writes against this store."""
        return self.store.lock

    @property
    def closed(self) -> bool:
        return self.store.closed

    def _ensure_open(self) -> None:
        if self.store.closed:
            raise StoreClosed(f"Database is closed: {self.db_path}")

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    def _new_series(self, name: str = "", note: str = "") -> Dict[str, Any]:
        now = _now()
        return normalize_data({
            "type": SERIES,
            "name": name,
            "note": note,
            "path": str(self.db_path),
            "filename": self.db_path.stem,
            "config": {"selected_boms": {kind: [] for kind in SELECTED_BOM_KINDS}},
            "created_at": now,
            "updated_at": now,
        })

    def init_series(self, name: str, note: str = "") -> Dict[str, Any]:
        """Create the series document of a new database.

        Raises:
            SeriesAlreadyInitialized: If the store already has a series
        """
        with self.lock:
            self._ensure_open()
            if self.store.find_one(SERIES) is not None:
                raise SeriesAlreadyInitialized(f"Series already initialized: {self.db_path}")
            self._series_info = self.store.insert(self._new_series(name, note))
        logger.info(f"Series initialized: {name} ({self.db_path})")
        return self._series_info

    def get_series_info(self) -> Optional[Dict[str, Any]]:
        """The series document, or None for a store without one."""
        self._ensure_open()
        if self._series_info is None:
            self._series_info = self.store.find_one(SERIES)
        return self._series_info

    def update_series_info(self, series_data: Mapping) -> Dict[str, Any]:
        """Update (or create) the series document with ``series_data``."""
        changes = dict(series_data)
        for key in ("_id", "type", "created_at"):
            changes.pop(key, None)
        changes.update({
            "path": str(self.db_path),
            "filename": self.db_path.stem,
            "updated_at": _now(),
        })

        with self.lock:
            self._ensure_open()
            existing = self.store.find_one(SERIES)
            if existing is None:
                doc = self._new_series()
                doc.update(normalize_data(changes))
                updated = self.store.insert(doc)
            else:
                updated = self.store.update(
                    existing["_id"], normalize_data(changes), unset=_blank_keys(changes)
                )
            self._series_info = updated
        return updated

    def update_series_config(self, config: Mapping) -> Dict[str, Any]:
        """Replace the series config.

        Raises:
            MissingRequiredField: If ``config`` has no ``selected_boms``
            SeriesNotInitialized: If the store has no series yet
        """
        if "selected_boms" not in config:
            raise MissingRequiredField(["selected_boms"], "series config")

        selected = dict(config["selected_boms"] or {})
        for kind in SELECTED_BOM_KINDS:
            selected.setdefault(kind, [])
        new_config = dict(config)
        new_config["selected_boms"] = selected

        with self.lock:
            series = self.get_series_info()
            if series is None or "_id" not in series:
                raise SeriesNotInitialized("Series not initialized")
            self._series_info = self.store.update(
                series["_id"], {"config": new_config, "updated_at": _now()}
            )
        logger.info("Series config updated")
        return self._series_info

    # ------------------------------------------------------------------
    # BOMs
    # ------------------------------------------------------------------

    def find_existing_bom(self, project: Optional[str], phase: Optional[str],
                          version: Optional[str]) -> Optional[Dict[str, Any]]:
        self._ensure_open()
        return self.store.find_bom(project, phase, version)

    def create_bom(self, bom_data: Mapping) -> Dict[str, Any]:
        """
        Create a BOM, or replace the one with the same project/phase/version.

        Replacing keeps the BOM id and creation time, overwrites its fields and
        deletes all of its groups.
        """
        with self.store.transaction():
            existing = self.find_existing_bom(
                bom_data.get("project"), bom_data.get("phase"), bom_data.get("version")
            )
            if existing:
                return self.update_bom(existing["_id"], bom_data)

            now = _now()
            bom = {"type": BOM}
            bom.update({field: bom_data.get(field) for field in BOM_FIELDS})
            bom["date"] = bom.get("date") or now
            bom["created_at"] = now
            bom["updated_at"] = now
            saved = self.store.insert(normalize_data(bom))
        logger.info(f"BOM created: {saved.get('project')}_{saved.get('phase')}_{saved.get('version')}")
        return saved

    def update_bom(self, bom_id: str, bom_data: Mapping) -> Optional[Dict[str, Any]]:
        """Overwrite a BOM's fields and delete its groups."""
        changes = {field: bom_data[field] for field in BOM_FIELDS if field in bom_data}
        changes["updated_at"] = _now()
        if "date" in changes and not changes["date"]:
            changes["date"] = changes["updated_at"]

        with self.store.transaction():
            self._ensure_open()
            updated = self.store.update(bom_id, normalize_data(changes), unset=_blank_keys(changes))
            removed = self.store.remove(GROUP, bom_id=bom_id)
        logger.info(f"BOM updated: {bom_id} ({removed} old groups removed)")
        return updated

    def get_bom_by_id(self, bom_id: str) -> Optional[Dict[str, Any]]:
        self._ensure_open()
        return self.store.find_one(BOM, _id=bom_id)

    def get_all_boms(self) -> List[Dict[str, Any]]:
        """All BOM documents, newest first."""
        self._ensure_open()
        boms = list(reversed(self.store.find(BOM)))
        return sorted(boms, key=lambda b: b.get("created_at", ""), reverse=True)

    def delete_boms(self, bom_ids: Iterable[str]) -> int:
        """Delete BOMs and all of their groups; returns the number of BOMs removed."""
        ids = list(bom_ids)
        with self.store.transaction():
            self._ensure_open()
            deleted = self.store.remove(BOM, _id=ids)
            groups = self.store.remove(GROUP, bom_id=ids)
        logger.info(f"Deleted {deleted} BOMs and {groups} groups")
        return deleted

    def get_statistics(self) -> Dict[str, int]:
        """Distinct project, phase and project/phase/version counts."""
        self._ensure_open()
        boms = self.store.find(BOM)
        return {
            "project_count": len({b.get("project") for b in boms}),
            "phase_count": len({b.get("phase") for b in boms}),
            "bom_count": len({(b.get("project"), b.get("phase"), b.get("version")) for b in boms}),
        }

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _group_document(self, bom_id: str, group_data) -> Dict[str, Any]:
        parts = list(_get(group_data, "parts") or [])
        main = _main_part(parts)
        now = _now()

        group = {"type": GROUP, "bom_id": bom_id}
        group.update({field: _get(group_data, field) for field in GROUP_FIELDS})
        group["join_key"] = make_join_key(_get(main, "mfg"), _get(main, "mfg_pn"))
        group["parts"] = [
            normalize_data({
                **{field: _get(part, field) for field in PART_FIELDS},
                "is_main": bool(_get(part, "is_main")),
            })
            for part in parts
        ]
        matrix = _get(group_data, "matrix")
        if matrix is not None and not is_matrix_empty(matrix):
            group["matrix"] = _matrix_list(matrix)
        group["created_at"] = now
        group["updated_at"] = now
        return normalize_data(group)

    def create_group(self, bom_id: str, group_data) -> Dict[str, Any]:
        """
        Store one group of a BOM.

        Args:
            bom_id: Owning BOM id
            group_data: Mapping (or GroupDraft) with process, item, qty,
                        location, ccl and parts

        Raises:
            MissingMainPart: Unless exactly one part has ``is_main`` set
            LookupError: If the BOM does not exist
        """
        doc = self._group_document(bom_id, group_data)
        with self.store.transaction():
            if self.get_bom_by_id(bom_id) is None:
                raise LookupError(f"BOM not found: {bom_id}")
            return self.store.insert(doc)

    def import_bom(self, bom_data: Mapping, groups: Sequence) -> Dict[str, Any]:
        """
        Create or replace a BOM together with all of its groups, atomically.

        Every group is validated before anything is written, so a group without
        a main part leaves the store untouched.

        Returns:
            The BOM document with its stored ``groups``
        """
        for group in groups:
            _main_part(list(_get(group, "parts") or []))

        with self.store.transaction():
            bom = self.create_bom(bom_data)
            saved = [self.store.insert(self._group_document(bom["_id"], g)) for g in groups]
        logger.info(f"Imported BOM {bom['_id']} with {len(saved)} groups")
        return {**bom, "groups": saved}

    def get_groups_by_bom_id(self, bom_id: str) -> List[Dict[str, Any]]:
        self._ensure_open()
        return self.store.find(GROUP, bom_id=bom_id)

    def find_groups_by_join_key(self, join_key: str,
                                bom_id: Optional[str] = None) -> List[Dict[str, Any]]:
        self._ensure_open()
        if bom_id is None:
            return self.store.find(GROUP, join_key=join_key)
        return self.store.find(GROUP, join_key=join_key, bom_id=bom_id)

    def update_group_matrix(self, group_id: str, matrix) -> Optional[Dict[str, Any]]:
        """Replace a group's matrix; an all-empty matrix removes the field."""
        self._ensure_open()
        changes = {"updated_at": _now()}
        if is_matrix_empty(matrix):
            return self.store.update(group_id, changes, unset=["matrix"])
        changes["matrix"] = _matrix_list(matrix)
        return self.store.update(group_id, changes)

    def get_full_bom(self, bom_id: str) -> Optional[Dict[str, Any]]:
        """A BOM document merged with its groups under ``groups``."""
        bom = self.get_bom_by_id(bom_id)
        if bom is None:
            return None
        return {**bom, "groups": self.get_groups_by_bom_id(bom_id)}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def compact(self) -> None:
        try:
            self.store.compact()
        except Exception as e:
            logger.error(f"Database compaction failed: {e}")
            raise

    def close(self) -> None:
        """Compact and close the database; later calls raise StoreClosed."""
        try:
            self.store.close()
        except Exception as e:
            logger.error(f"Error closing database: {e}")
            raise
        finally:
            self._series_info = None

    def __repr__(self) -> str:
        return f"BomModel({str(self.db_path)!r})"
