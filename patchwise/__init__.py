"""
patchwise

Apply model-written, unified-diff style edits to text files, tolerating the
drift that hand-written diffs carry: wrong line numbers, whitespace and
indentation differences, missing headers, and `@@` lines that name a
function instead of a range.

Main exports:
    - apply: Pure entry point, ``PatchRequest`` + current bytes -> ``ApplyResult``
    - patch_text: Convenience wrapper for str in, str out updates
    - PatchConfig: Matching thresholds and size limits
    - ApplyPatchTool: Workspace-bound ``edit`` tool for agents

Example (pure engine):
    >>> from patchwise import PatchRequest, apply
    >>> result = apply(
    ...     PatchRequest(path="app.py", diff_text="@@ def main\\n-    return 1\\n+    return 2\\n"),
    ...     b"def main():\\n    return 1\\n",
    ... )
    >>> result.new_bytes
    b'def main():\\n    return 2\\n'

Example (tool):
    >>> from patchwise import ApplyPatchTool
    >>> edit = ApplyPatchTool(base_path="./workspace").get_tool()
    >>> edit(path="notes.md", op="create", diff="+# Notes\\n")
"""

from .logging import (
    LogConfig,
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    patch_context,
)
from .patch import (
    DEFAULT_CONFIG,
    AmbiguousMatchError,
    ApplyResult,
    FileImage,
    FileStateError,
    HashlineEdit,
    Hunk,
    InvalidAnchorError,
    InvalidEnvelopeError,
    InvalidRenameError,
    NoMatchError,
    NoOpChangeError,
    Operation,
    PatchConfig,
    PatchError,
    PatchRequest,
    StaleContentError,
    apply,
    format_hash_lines,
    parse_hunks,
    patch_text,
)
from .tools import ApplyPatchTool, EditParams

__version__ = "0.1.0"

__all__ = [
    # Engine
    "apply",
    "patch_text",
    "parse_hunks",
    "PatchRequest",
    "ApplyResult",
    "Operation",
    "Hunk",
    "HashlineEdit",
    "format_hash_lines",
    "FileImage",
    "PatchConfig",
    "DEFAULT_CONFIG",
    # Errors
    "PatchError",
    "AmbiguousMatchError",
    "FileStateError",
    "InvalidAnchorError",
    "InvalidEnvelopeError",
    "InvalidRenameError",
    "NoMatchError",
    "NoOpChangeError",
    "StaleContentError",
    # Tool
    "ApplyPatchTool",
    "EditParams",
    # Logging
    "LogConfig",
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "patch_context",
]
