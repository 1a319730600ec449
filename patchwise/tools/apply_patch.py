"""patchwise/tools/apply_patch.py

### Tool contract (high level)

- Signature
  - ``def edit(path: str, op: str = "update", diff: str | None = None,
    rename: str | None = None, dry_run: bool = False,
    edits: list[dict] | None = None) -> str``
  - ``def read_file(path: str, start_line: int = 1, limit: int | None = None) -> str``

- Purpose
  - Create, update, delete or rename one file per call inside a workspace.
  - The diff is interpreted by :func:`patchwise.apply`; this module only adds
    the filesystem around it.
  - Instead of a diff, an update may send ``edits``: ``{"src": "LINE:HASH", "dst": "..."}``
    objects addressing lines shown by ``read_file``.

- Safety constraints
  - Paths are relative POSIX paths and must resolve inside ``base_path``.
  - ``..``, ``~``, ``:`` and NUL bytes are rejected in paths.
  - Maximum patch size and maximum resulting file size come from
    :class:`~patchwise.patch.config.PatchConfig`.
  - Writes go through a temporary file and ``os.replace``; the file mode is kept.

- Output format
  - Returns a JSON string, ``{"status": "ok", ...}`` or ``{"status": "error", "kind": ...}``.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from posixpath import normpath as _posix_normpath
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..logging import get_logger
from ..patch import apply
from ..patch.config import DEFAULT_CONFIG, PatchConfig
from ..patch.errors import FileStateError, InvalidEnvelopeError, InvalidRenameError, PatchError
from ..patch.hashline import format_hash_lines
from ..patch.image import FileImage
from ..patch.models import ApplyResult, HashlineEdit, Operation, PatchRequest

logger = get_logger(__name__)


class LineEditParams(BaseModel):
    """One ``{src, dst}`` line-addressed edit."""

    model_config = ConfigDict(extra="forbid")

    src: str
    dst: str = ""


class EditParams(BaseModel):
    """Validated input of the ``edit`` tool."""

    model_config = ConfigDict(extra="forbid")

    path: str
    op: Operation = Operation.UPDATE
    diff: Optional[str] = None
    rename: Optional[str] = None
    dry_run: bool = False
    edits: Optional[List[LineEditParams]] = None

    def line_edits(self) -> Optional[Tuple[HashlineEdit, ...]]:
        if self.edits is None:
            return None
        return tuple(HashlineEdit(src=e.src, dst=e.dst) for e in self.edits)

    @field_validator("op", mode="before")
    @classmethod
    def _coerce_op(cls, value: Any) -> Operation:
        return Operation.coerce(value)

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("path must not be blank")
        return value

    @field_validator("rename")
    @classmethod
    def _blank_rename(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()


def _is_within(child: Path, parent: Path) -> bool:
    """Check if a child path is within a parent directory."""

    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except (OSError, ValueError):
        return False


def _normalize_path(raw_path: str) -> str:
    """Normalize an incoming path to a POSIX-style relative path string."""

    cleaned = raw_path.strip().replace("\\", "/")
    return _posix_normpath(cleaned) if cleaned else ""


def _validate_rel_path(path: str, raw: str) -> None:
    """Validate that a normalized path is safe and relative."""

    if not path or path == ".":
        raise FileStateError("Invalid path", path=raw or None, hint="Path must be a non-empty relative file path")

    if path.startswith("/") or path.startswith(".."):
        raise FileStateError(
            "Invalid path: must be relative and cannot start with '..'",
            path=raw,
            hint="Use paths relative to the workspace root",
        )
    if path.startswith("~"):
        raise FileStateError("Invalid path", path=raw, hint="'~' is not allowed in paths")
    if ":" in path:
        raise FileStateError("Invalid path", path=raw, hint="':' is not allowed in paths")
    if "\x00" in path:
        raise FileStateError("Invalid path", path=raw, hint="NUL bytes are not allowed in paths")
    if raw.rstrip().endswith("/"):
        raise FileStateError("Invalid path", path=raw, hint="Path must refer to a file, not end with '/'")


def _atomic_write_bytes(path: Path, data: bytes, *, mode: Optional[int] = None) -> None:
    """Atomically replace ``path`` with ``data``.

    Writes to a temporary file in the same directory and then uses ``os.replace``.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.patchwise.", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        if mode is not None:
            os.chmod(tmp_path, mode)

        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _atomic_create_bytes(path: Path, data: bytes, *, mode: int = 0o644) -> None:
    """Create ``path`` with ``data`` without overwriting an existing file.

    Raises:
        FileExistsError: ``path`` appeared since it was checked.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.patchwise.", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)

        try:
            os.link(tmp_path, path)
        except FileExistsError:
            raise
        except OSError:
            # No hardlinks on this filesystem; exclusive create never overwrites.
            fd2 = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
            with os.fdopen(fd2, "wb") as f2:
                f2.write(data)
                f2.flush()
                os.fsync(f2.fileno())
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _make_error_response(kind: str, error: str, path: Optional[str] = None, hint: Optional[str] = None) -> str:
    result: Dict[str, Any] = {"status": "error", "kind": kind, "error": error}
    if path is not None:
        result["path"] = path
    if hint is not None:
        result["hint"] = hint
    return json.dumps(result)


def _make_success_response(
    result: ApplyResult,
    op: Operation,
    path: str,
    dry_run: bool,
    moved_from: Optional[str] = None,
) -> str:
    payload: Dict[str, Any] = {
        "status": "ok",
        "op": op.value,
        "path": path,
        "hunks_applied": result.hunks_applied,
        "lines_added": result.lines_added,
        "lines_removed": result.lines_removed,
        "dry_run": dry_run,
        "fuzzy": result.fuzzy,
    }
    if result.warnings:
        payload["warnings"] = list(result.warnings)
    if moved_from is not None:
        payload["moved_from"] = moved_from
    return json.dumps(payload)


EDIT_TOOL_SCHEMA: Dict[str, Any] = {
    "name": "edit",
    "description": (
        "Create, update, delete or rename one file using a unified-diff style patch. "
        "Hunks locate their context and '-' lines in the current file, tolerating "
        "whitespace and indentation drift, but a match must be unambiguous."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to the workspace root."},
            "op": {
                "type": "string",
                "enum": ["create", "update", "delete"],
                "description": "What to do with the file. Defaults to update.",
            },
            "diff": {
                "type": "string",
                "description": (
                    "For update: hunks of ' ', '-' and '+' lines, optionally headed by "
                    "'@@ anchor' lines. For create: the file content, optionally '+' prefixed."
                ),
            },
            "rename": {"type": "string", "description": "New path for the file (update only)."},
            "dry_run": {"type": "boolean", "description": "Validate without writing."},
            "edits": {
                "type": "array",
                "description": (
                    "Update by line reference instead of a diff. src is 'LINE:HASH', "
                    "'A:HASH..B:HASH', 'LINE:HASH..' (insert after) or '..LINE:HASH' "
                    "(insert before), copied from read_file; dst is the new text, empty to delete."
                ),
                "items": {
                    "type": "object",
                    "properties": {"src": {"type": "string"}, "dst": {"type": "string"}},
                    "required": ["src"],
                },
            },
        },
        "required": ["path"],
    },
}

READ_TOOL_SCHEMA: Dict[str, Any] = {
    "name": "read_file",
    "description": (
        "Read a text file with every line prefixed by 'LINE:HASH| '. "
        "Use the LINE:HASH references in edit's 'edits' input."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to the workspace root."},
            "start_line": {"type": "integer", "description": "1-based first line. Defaults to 1."},
            "limit": {"type": "integer", "description": "Number of lines to return. Defaults to all."},
        },
        "required": ["path"],
    },
}


def _format_read_header(start_line: int, end_line: int, total_lines: int, rel: str) -> str:
    return f"[lines {start_line}-{end_line} of {total_lines} in {rel}]"


class ApplyPatchTool:
    """Filesystem-backed ``edit`` tool.

    This class wires :func:`patchwise.apply` to a workspace directory:
    - base path / sandbox root
    - size limits and matching thresholds from :class:`PatchConfig`

    The function returned by get_tool() is intended to be registered as an agent tool.
    """

    DOCSTRING = """Apply changes to a file using a unified-diff style patch.

Use this tool to create, modify, delete, or rename files. Matching is allowed to be
whitespace-fuzzy but must be **unambiguous**.

Patch Format (update):
```
@@ def function_name
 context line (space prefix)
-line to remove
+line to add
```

Line edits (update, instead of diff), using references from read_file:
```
[{"src": "12:3fa0", "dst": "    return 2"},
 {"src": "20:9c1e..24:07ab", "dst": ""}]
```

Args:
    path: File path relative to the workspace root.
    op: "create", "update" or "delete".
    diff: Hunks for update, file content for create.
    rename: New path for the file (update only).
    dry_run: If True, validate without writing.
    edits: Line-addressed edits for update, as {"src", "dst"} objects.

Returns:
    JSON with result:
    - Success: {"status": "ok", "op": "update", "path": "...", ...}
    - Error:   {"status": "error", "kind": "...", "error": "...", "hint": "..."}
"""

    def __init__(self, base_path: str | Path, config: Optional[PatchConfig] = None):
        self.base_path = Path(base_path).resolve()
        self.config = config or DEFAULT_CONFIG

    def _resolve(self, raw: str) -> tuple[str, Path]:
        rel = _normalize_path(raw)
        _validate_rel_path(rel, raw)
        full = (self.base_path / rel).resolve()
        if not _is_within(full, self.base_path):
            raise FileStateError(
                "Path escapes base directory",
                path=rel,
                hint="Path cannot use '..' to escape the workspace",
            )
        return rel, full

    def _read_current(self, op: Operation, rel: str, full: Path) -> Optional[bytes]:
        if op == Operation.CREATE:
            if full.exists():
                raise FileStateError(
                    "Cannot create file: already exists",
                    path=rel,
                    hint="Use op='update' to modify existing files",
                )
            return None

        if not full.exists():
            verb = "delete" if op == Operation.DELETE else "update"
            raise FileStateError(
                f"Cannot {verb} file: does not exist",
                path=rel,
                hint="Use op='create' to create new files" if verb == "update" else "File may have already been deleted",
            )
        if not full.is_file():
            raise FileStateError("Path is not a regular file", path=rel)
        try:
            return full.read_bytes()
        except OSError as e:
            raise FileStateError(f"Cannot read file: {e}", path=rel) from e

    def run(self, params: EditParams) -> str:
        """Execute one validated edit and return the JSON response."""

        payload = (params.diff or "") + "".join(e.src + e.dst for e in params.edits or ())
        if len(payload.encode("utf-8")) > self.config.max_patch_bytes:
            return json.dumps(
                InvalidEnvelopeError(
                    f"Patch exceeds maximum size ({self.config.max_patch_bytes // 1024 // 1024} MB)",
                    path=params.path,
                    hint="Split into smaller patches",
                ).to_dict()
            )

        try:
            rel, full = self._resolve(params.path)
            moved_to: Optional[Path] = None
            rename_rel: Optional[str] = None
            if params.rename is not None:
                rename_rel, moved_to = self._resolve(params.rename)
            current = self._read_current(params.op, rel, full)
        except PatchError as e:
            return json.dumps(e.to_dict())

        request = PatchRequest(
            path=rel,
            operation=params.op,
            diff_text=params.diff,
            rename_to=rename_rel,
            line_edits=params.line_edits(),
        )
        result = apply(request, current, self.config)
        if not result.ok:
            return json.dumps(result.error.to_dict())

        if result.new_bytes is not None and len(result.new_bytes) > self.config.max_file_bytes:
            return json.dumps(
                FileStateError(
                    f"Result exceeds maximum file size ({self.config.max_file_bytes // 1024 // 1024} MB)",
                    path=rel,
                ).to_dict()
            )

        if moved_to is not None and moved_to.exists() and moved_to != full:
            return json.dumps(
                InvalidRenameError(
                    "Cannot move: target file already exists",
                    path=rename_rel,
                    hint="Delete the target file first or choose a different name",
                ).to_dict()
            )

        if params.dry_run:
            target = rename_rel if moved_to is not None else rel
            return _make_success_response(
                result, params.op, target, True, moved_from=rel if moved_to is not None else None
            )

        try:
            return self._commit(params.op, result, rel, full, rename_rel, moved_to)
        except OSError as e:
            logger.error("Write failed", path=rel, error=str(e))
            return _make_error_response("file_state", f"Failed to write file: {e}", path=rel)

    def _commit(
        self,
        op: Operation,
        result: ApplyResult,
        rel: str,
        full: Path,
        rename_rel: Optional[str],
        moved_to: Optional[Path],
    ) -> str:
        if result.deleted:
            full.unlink()
            return _make_success_response(result, op, rel, False)

        if op == Operation.CREATE:
            try:
                _atomic_create_bytes(full, result.new_bytes or b"")
            except FileExistsError:
                return json.dumps(
                    FileStateError(
                        "Cannot create file: already exists",
                        path=rel,
                        hint="Use op='update' to modify existing files",
                    ).to_dict()
                )
            return _make_success_response(result, op, rel, False)

        mode = full.stat().st_mode & 0o777
        if moved_to is None:
            _atomic_write_bytes(full, result.new_bytes or b"", mode=mode)
            return _make_success_response(result, op, rel, False)

        _atomic_write_bytes(moved_to, result.new_bytes or b"", mode=mode)
        if moved_to != full:
            try:
                full.unlink()
            except OSError:
                moved_to.unlink()
                raise
        return _make_success_response(result, op, rename_rel or rel, False, moved_from=rel)

    def get_tool(self) -> Callable:
        instance = self

        def edit(
            path: str,
            op: str = "update",
            diff: Optional[str] = None,
            rename: Optional[str] = None,
            dry_run: bool = False,
            edits: Optional[List[Dict[str, Any]]] = None,
        ) -> str:
            try:
                params = EditParams(path=path, op=op, diff=diff, rename=rename, dry_run=dry_run, edits=edits)
            except ValidationError as e:
                problems: List[str] = [
                    f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
                ]
                return _make_error_response(
                    "invalid_params",
                    "Invalid tool input: " + "; ".join(problems),
                    path=path if isinstance(path, str) else None,
                    hint="Check the tool's input schema",
                )
            return instance.run(params)

        edit.__doc__ = self.DOCSTRING
        edit.__tool_schema__ = EDIT_TOOL_SCHEMA
        return edit

    def read(self, path: str, start_line: int = 1, limit: Optional[int] = None) -> str:
        """Return a slice of the file with ``LINE:HASH| `` prefixes.

        Args:
            path: File path relative to the workspace root.
            start_line: 1-based first line; values below 1 are treated as 1.
            limit: Maximum number of lines; None reads to the end.

        Returns:
            A ``[lines X-Y of TOTAL in PATH]`` header followed by the lines, or a
            JSON error.
        """

        try:
            rel, full = self._resolve(path)
            if not full.is_file():
                raise FileStateError(
                    "Cannot read file: does not exist" if not full.exists() else "Path is not a regular file",
                    path=rel,
                )
            data = full.read_bytes()
        except PatchError as e:
            return json.dumps(e.to_dict())
        except OSError as e:
            return _make_error_response("file_state", f"Cannot read file: {e}", path=path)

        if b"\x00" in data:
            return _make_error_response("invalid_envelope", "Cannot read file: appears to be binary", path=rel)
        try:
            image = FileImage.from_bytes(data)
        except UnicodeDecodeError:
            return _make_error_response("invalid_envelope", "Cannot read file: not valid UTF-8 text", path=rel)

        total = len(image.lines)
        start = max(start_line, 1)
        if total == 0 or limit == 0:
            return _format_read_header(0, 0, total, rel) + "\n"
        if start > total:
            return _make_error_response(
                "invalid_anchor",
                f"start_line {start} is past the end of the file ({total} lines)",
                path=rel,
            )
        end = total if limit is None else min(total, start + max(limit, 1) - 1)
        header = _format_read_header(start, end, total, rel)
        return header + "\n" + format_hash_lines(image.lines[start - 1 : end], start)

    def get_read_tool(self) -> Callable:
        instance = self

        def read_file(path: str, start_line: int = 1, limit: Optional[int] = None) -> str:
            return instance.read(path, start_line=start_line, limit=limit)

        read_file.__doc__ = READ_TOOL_SCHEMA["description"]
        read_file.__tool_schema__ = READ_TOOL_SCHEMA
        return read_file
