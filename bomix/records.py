"""
Parsed BOM records.

These are the immutable values produced by the spreadsheet parsers and handed
to the store layer:

- ProjectInfo: header metadata of one BOM workbook (the project/phase/version
  triple identifies the BOM)
- Part: one candidate part row
- GroupDraft: one placed item with its main part and alternates (common BOM)
- MatrixGroup: one placed item with its per-slot alternate selections
  (matrix BOM)
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .extractor import make_join_key


@dataclass(frozen=True)
class ProjectInfo:
    """Header metadata read from the SMD sheet."""
    project: str = ""
    description: str = ""
    pca_pn: str = ""
    version: str = ""
    phase: str = ""
    date: str = ""
    filename: str = ""

    @property
    def triple(self) -> Tuple[str, str, str]:
        """(project, phase, version), the BOM identity."""
        return (self.project, self.phase, self.version)

    @property
    def label(self) -> str:
        return f"{self.project}_{self.phase}_{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Part:
    """
    One part row of a group.

    Values keep the cell's JSON-friendly raw value (text, number or ISO date
    string); blank cells are None.
    """
    house_pn: Any = None
    std_pn: Any = None
    group_pn: Any = None
    description: Any = None
    mfg: Any = None
    mfg_pn: Any = None
    qty: Any = None
    location: Any = None
    ccl: Any = None
    lead_time: Any = None
    remark: Any = None
    approval: Any = None
    is_main: bool = False

    @property
    def join_key(self) -> str:
        return make_join_key(self.mfg, self.mfg_pn)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupDraft:
    """A common-BOM group before it is stored."""
    process: str
    item: Any = None
    qty: Any = None
    location: Any = None
    ccl: Any = None
    parts: Tuple[Part, ...] = field(default_factory=tuple)

    @property
    def main_part(self) -> Optional[Part]:
        return next((p for p in self.parts if p.is_main), None)

    @property
    def join_key(self) -> Optional[str]:
        main = self.main_part
        return main.join_key if main else None

    def with_part(self, part: Part) -> "GroupDraft":
        """Copy of this group with ``part`` appended."""
        return GroupDraft(
            process=self.process,
            item=self.item,
            qty=self.qty,
            location=self.location,
            ccl=self.ccl,
            parts=self.parts + (part,),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["parts"] = [p.to_dict() for p in self.parts]
        return data


@dataclass(frozen=True)
class MatrixGroup:
    """A matrix-BOM group: the representative row's join key plus slot picks.

    ``matrix[i]`` holds the join key of the alternate flagged in slot ``i``,
    or an empty string when nothing is flagged.
    """
    process: str
    join_key: str
    item: Any = None
    qty: Any = None
    location: Any = None
    matrix: Tuple[str, ...] = field(default_factory=tuple)
    parts: Tuple[Part, ...] = field(default_factory=tuple)

    def with_row(self, part: Part, flagged_slots: List[int]) -> "MatrixGroup":
        """Copy with ``part`` appended and its join key set in ``flagged_slots``."""
        matrix = list(self.matrix)
        for slot in flagged_slots:
            matrix[slot] = part.join_key
        return MatrixGroup(
            process=self.process,
            join_key=self.join_key,
            item=self.item,
            qty=self.qty,
            location=self.location,
            matrix=tuple(matrix),
            parts=self.parts + (part,),
        )

    @property
    def is_empty(self) -> bool:
        return not any(self.matrix)


@dataclass(frozen=True)
class CommonBom:
    info: ProjectInfo
    groups: Tuple[GroupDraft, ...]


@dataclass(frozen=True)
class MatrixBom:
    info: ProjectInfo
    matrix_count: int
    groups: Tuple[MatrixGroup, ...]


@dataclass(frozen=True)
class DuplicateBomDetails:
    """What the overwrite confirmation is shown about an existing BOM."""
    project: str
    version: str
    phase: str
    description: str
    created_at: Optional[str]
    updated_at: Optional[str]
    filename: str = ""
    warning: str = "Overwriting this BOM discards all of its matrix selections."

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
