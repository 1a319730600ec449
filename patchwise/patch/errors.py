"""Error taxonomy for patch parsing and application.

Every failure carries a short ``error`` message, the affected ``path`` when
known, and an actionable ``hint`` for whoever produced the diff. ``kind`` is a
stable machine-readable tag used in tool responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class PatchError(Exception):
    """Base class for everything the patch engine reports."""

    kind: str = "patch_error"

    def __init__(self, error: str, path: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.path = path
        self.hint = hint

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": "error", "kind": self.kind, "error": self.error}
        if self.path is not None:
            result["path"] = self.path
        if self.hint is not None:
            result["hint"] = self.hint
        return result


class InvalidAnchorError(PatchError):
    """A header reference could not be parsed or points outside the file."""

    kind = "invalid_anchor"


class StaleContentError(PatchError):
    """The region the hunk targets no longer holds the lines the hunk expects."""

    kind = "stale_content"

    def __init__(
        self,
        error: str,
        path: Optional[str] = None,
        hint: Optional[str] = None,
        *,
        expected: Sequence[str] = (),
        actual: Sequence[str] = (),
        changed_lines: Sequence[int] = (),
    ):
        super().__init__(error, path, hint)
        self.expected: List[str] = list(expected)
        self.actual: List[str] = list(actual)
        self.changed_lines: List[int] = list(changed_lines)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["expected"] = self.expected
        result["actual"] = self.actual
        result["changed_lines"] = self.changed_lines
        return result


class AmbiguousMatchError(PatchError):
    """The hunk fits more than one place and nothing tells them apart."""

    kind = "ambiguous_match"

    def __init__(
        self,
        error: str,
        path: Optional[str] = None,
        hint: Optional[str] = None,
        *,
        count: int = 0,
        candidate_lines: Sequence[int] = (),
    ):
        super().__init__(error, path, hint)
        self.count = count
        self.candidate_lines: List[int] = list(candidate_lines)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["count"] = self.count
        result["candidate_lines"] = self.candidate_lines
        return result


class NoMatchError(PatchError):
    """Nothing in the file resembles the hunk's old lines."""

    kind = "no_match"


class InvalidEnvelopeError(PatchError):
    """The diff text itself is malformed or targets more than one file."""

    kind = "invalid_envelope"


class NoOpChangeError(PatchError):
    """The edit would leave the file byte-for-byte unchanged."""

    kind = "no_op_change"


class InvalidRenameError(PatchError):
    """The rename target is missing, equal to the source, or not allowed."""

    kind = "invalid_rename"


class FileStateError(PatchError):
    """The file on disk is not in a state the operation can work with."""

    kind = "file_state"
