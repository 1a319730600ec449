"""Data model shared by the patch pipeline.

Everything here is plain data: the request handed to :func:`patchwise.apply`,
the parsed form of a diff (hunks made of line edits), the located position of
a hunk, and the result returned to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .errors import PatchError


class Operation(str, Enum):
    """What a request does to its target file."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def coerce(cls, value: Any) -> "Operation":
        """Map loose operation names onto an :class:`Operation`.

        Unrecognised values are treated as an update.
        """

        if isinstance(value, Operation):
            return value
        text = str(value or "").strip().lower()
        aliases = {
            "create": cls.CREATE,
            "add": cls.CREATE,
            "new": cls.CREATE,
            "delete": cls.DELETE,
            "remove": cls.DELETE,
            "update": cls.UPDATE,
            "modify": cls.UPDATE,
            "edit": cls.UPDATE,
        }
        return aliases.get(text, cls.UPDATE)


@dataclass(frozen=True)
class HashlineEdit:
    """One line-addressed edit: ``src`` is a ``LINE:HASH`` reference form,
    ``dst`` the replacement text (empty to delete)."""

    src: str
    dst: str = ""


@dataclass(frozen=True)
class PatchRequest:
    """One edit request for a single file.

    An update carries either ``diff_text`` or ``line_edits``, not both.
    """

    path: str
    operation: Operation = Operation.UPDATE
    diff_text: Optional[str] = None
    rename_to: Optional[str] = None
    line_edits: Optional[Tuple[HashlineEdit, ...]] = None

    @property
    def target_path(self) -> str:
        return self.rename_to or self.path


class EditKind(str, Enum):
    KEEP = "keep"
    ADD = "add"
    REMOVE = "remove"
    ELLIPSIS = "ellipsis"


@dataclass(frozen=True)
class LineEdit:
    """A single body line of a hunk, with its diff prefix already removed."""

    kind: EditKind
    text: str = ""

    @property
    def is_old(self) -> bool:
        """True for lines that must already exist in the file."""

        return self.kind in (EditKind.KEEP, EditKind.REMOVE)

    @property
    def is_new(self) -> bool:
        return self.kind in (EditKind.KEEP, EditKind.ADD)


@dataclass(frozen=True)
class LineHint:
    """1-based line reference taken from a hunk header.

    ``old_start`` is where the hunk's old lines are expected to begin.
    ``new_start`` is where inserted lines should land, when known.
    """

    old_start: int
    old_len: Optional[int] = None
    new_start: Optional[int] = None
    new_len: Optional[int] = None

    @property
    def old_index(self) -> int:
        return self.old_start - 1

    @property
    def insert_index(self) -> int:
        return (self.new_start if self.new_start is not None else self.old_start) - 1


@dataclass
class Hunk:
    """One located-and-applied unit of change."""

    edits: List[LineEdit]
    anchors: List[str] = field(default_factory=list)
    hint: Optional[LineHint] = None
    is_eof: bool = False
    header: str = ""

    @property
    def old_lines(self) -> List[str]:
        return [e.text for e in self.edits if e.is_old]

    @property
    def new_lines(self) -> List[str]:
        return [e.text for e in self.edits if e.is_new]

    @property
    def added_lines(self) -> List[str]:
        return [e.text for e in self.edits if e.kind == EditKind.ADD]

    @property
    def removed_lines(self) -> List[str]:
        return [e.text for e in self.edits if e.kind == EditKind.REMOVE]

    @property
    def lines_added(self) -> int:
        return sum(1 for e in self.edits if e.kind == EditKind.ADD)

    @property
    def lines_removed(self) -> int:
        return sum(1 for e in self.edits if e.kind == EditKind.REMOVE)

    @property
    def has_context(self) -> bool:
        return any(e.kind == EditKind.KEEP for e in self.edits)

    @property
    def has_ellipsis(self) -> bool:
        return any(e.kind == EditKind.ELLIPSIS for e in self.edits)

    @property
    def is_insertion(self) -> bool:
        """True when the hunk only adds lines and has nothing to match."""

        return not any(e.is_old for e in self.edits)


@dataclass
class MatchCandidate:
    """A location where a hunk's old lines were found.

    ``positions`` maps the index of each matched Keep/Remove edit to the
    0-based file line it matched. Keep edits that were dropped during
    disambiguation are simply absent. Pure insertions have no positions and
    use ``insert_at`` instead.
    """

    start: int
    confidence: float = 1.0
    positions: Dict[int, int] = field(default_factory=dict)
    strategy: str = "exact"
    insert_at: Optional[int] = None
    notes: List[str] = field(default_factory=list)

    @property
    def end(self) -> int:
        """One past the last file line touched by this match."""

        if not self.positions:
            return self.start
        return max(self.positions.values()) + 1

    @property
    def is_fuzzy(self) -> bool:
        return self.confidence < 1.0


@dataclass
class ApplyResult:
    """Outcome of :func:`patchwise.apply`.

    Exactly one of ``new_bytes``, ``deleted`` or ``error`` describes the
    outcome. Errors are returned rather than raised; call :meth:`unwrap` to
    turn a failed result back into an exception.
    """

    request: PatchRequest
    new_bytes: Optional[bytes] = None
    deleted: bool = False
    error: Optional["PatchError"] = None
    hunks_applied: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    fuzzy: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def target_path(self) -> str:
        return self.request.target_path

    def unwrap(self) -> Optional[bytes]:
        """Return the new file bytes, raising the stored error on failure."""

        if self.error is not None:
            raise self.error
        return self.new_bytes
