"""Pure patch engine: parse a model-written diff and apply it to file bytes."""

from .config import DEFAULT_CONFIG, PatchConfig
from .engine import apply, patch_text
from .errors import (
    AmbiguousMatchError,
    FileStateError,
    InvalidAnchorError,
    InvalidEnvelopeError,
    InvalidRenameError,
    NoMatchError,
    NoOpChangeError,
    PatchError,
    StaleContentError,
)
from .hashline import apply_hashline_edits, compute_line_hash, format_hash_lines, parse_line_ref, parse_src
from .image import FileImage
from .models import (
    ApplyResult,
    EditKind,
    HashlineEdit,
    Hunk,
    LineEdit,
    LineHint,
    MatchCandidate,
    Operation,
    PatchRequest,
)
from .parser import parse_hunks

__all__ = [
    "apply",
    "patch_text",
    "parse_hunks",
    "apply_hashline_edits",
    "compute_line_hash",
    "format_hash_lines",
    "parse_line_ref",
    "parse_src",
    "HashlineEdit",
    "PatchConfig",
    "DEFAULT_CONFIG",
    "FileImage",
    "ApplyResult",
    "EditKind",
    "Hunk",
    "LineEdit",
    "LineHint",
    "MatchCandidate",
    "Operation",
    "PatchRequest",
    "PatchError",
    "AmbiguousMatchError",
    "FileStateError",
    "InvalidAnchorError",
    "InvalidEnvelopeError",
    "InvalidRenameError",
    "NoMatchError",
    "NoOpChangeError",
    "StaleContentError",
]
