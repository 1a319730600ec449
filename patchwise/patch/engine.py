"""Patch orchestrator.

``apply(request, current_bytes)`` is the single entry point: it is pure
(bytes in, bytes out), never touches the filesystem, and reports failures as
a structured :class:`~patchwise.patch.models.ApplyResult` instead of
raising. Either every hunk applies or nothing does.
"""

from __future__ import annotations

from posixpath import normpath as _posix_normpath
from typing import Optional

from ..logging import get_logger, patch_context
from .applier import apply_hunks
from .config import DEFAULT_CONFIG, PatchConfig
from .dialect import check_single_file, marker_paths, normalize_create_content, normalize_diff
from .errors import (
    FileStateError,
    InvalidEnvelopeError,
    InvalidRenameError,
    NoOpChangeError,
    PatchError,
)
from .hashline import apply_hashline_edits
from .image import FileImage
from .models import ApplyResult, Operation, PatchRequest
from .parser import parse_hunks

logger = get_logger(__name__)


def _normalize_path(raw_path: str) -> str:
    """Normalize an incoming path to a POSIX-style relative path string."""

    cleaned = raw_path.strip().replace("\\", "/")
    return _posix_normpath(cleaned) if cleaned else ""


def _check_rename(request: PatchRequest, op: Operation) -> None:
    if request.rename_to is None:
        return
    if op != Operation.UPDATE:
        raise InvalidRenameError(
            f"Rename is not supported for op '{op.value}'",
            path=request.path,
            hint="Only updates can rename a file; create the new path directly instead",
        )
    target = _normalize_path(request.rename_to)
    if not target or target == ".":
        raise InvalidRenameError("Rename target is empty", path=request.path, hint="Give the new file path")
    if target == _normalize_path(request.path):
        raise InvalidRenameError(
            "Rename target is the same as the source path",
            path=request.path,
            hint="Omit rename to edit the file in place",
        )


def _load_image(current: bytes, path: str) -> FileImage:
    if b"\x00" in current:
        raise InvalidEnvelopeError(
            "Cannot read file: appears to be binary (contains NUL bytes)",
            path=path,
            hint="Only UTF-8 text files can be patched",
        )
    try:
        return FileImage.from_bytes(current)
    except UnicodeDecodeError:
        raise InvalidEnvelopeError(
            "Cannot read file: not valid UTF-8 text",
            path=path,
            hint="Only UTF-8 text files can be patched",
        ) from None


def _apply_line_edits(request: PatchRequest, current: bytes, image: FileImage) -> ApplyResult:
    edits = request.line_edits or ()
    if not edits:
        if request.rename_to is not None:
            return ApplyResult(request=request, new_bytes=current)
        raise InvalidEnvelopeError(
            "No line edits given",
            path=request.path,
            hint="Provide at least one {src, dst} edit",
        )

    outcome = apply_hashline_edits(image.lines, edits, path=request.path)
    logger.debug("Line edits applied", edits=len(edits), first_changed_line=outcome.first_changed_line)

    new_bytes = image.with_lines(outcome.lines).to_bytes()
    if new_bytes == current and request.rename_to is None:
        raise NoOpChangeError(
            "Line edits make no changes",
            path=request.path,
            hint="The referenced lines already have this content",
        )
    return ApplyResult(
        request=request,
        new_bytes=new_bytes,
        hunks_applied=len(edits),
        lines_added=outcome.lines_added,
        lines_removed=outcome.lines_removed,
    )


def _apply(request: PatchRequest, current: Optional[bytes], config: PatchConfig) -> ApplyResult:
    op = Operation.coerce(request.operation)
    path = request.path
    _check_rename(request, op)

    diff = request.diff_text or ""
    if request.line_edits is not None:
        if op != Operation.UPDATE:
            raise InvalidEnvelopeError(
                f"Line edits cannot be used with op '{op.value}'",
                path=path,
                hint="Line edits only modify an existing file; use op='update'",
            )
        if diff.strip():
            raise InvalidEnvelopeError(
                "Request has both a diff and line edits",
                path=path,
                hint="Send either a diff or line edits, not both",
            )
    if "\x00" in diff:
        raise InvalidEnvelopeError(
            "Patch contains null bytes (binary content not allowed)",
            path=path,
            hint="Ensure the diff contains only text content",
        )

    if op == Operation.DELETE:
        removed = 0
        if current is not None and b"\x00" not in current:
            try:
                removed = len(FileImage.from_bytes(current).lines)
            except UnicodeDecodeError:
                removed = 0
        return ApplyResult(request=request, deleted=True, lines_removed=removed)

    if op == Operation.CREATE:
        check_single_file(diff, path)
        content = normalize_create_content(diff)
        return ApplyResult(
            request=request,
            new_bytes=content.encode("utf-8"),
            lines_added=content.count("\n"),
        )

    if current is None:
        raise FileStateError(
            "Cannot update file: does not exist",
            path=path,
            hint="Use op='create' to create new files",
        )
    image = _load_image(current, path)
    if request.line_edits is not None:
        return _apply_line_edits(request, current, image)
    check_single_file(diff, path)
    hunks = parse_hunks(normalize_diff(diff))

    if not hunks:
        if request.rename_to is not None:
            return ApplyResult(request=request, new_bytes=current)
        raise InvalidEnvelopeError(
            "Patch contains no hunks",
            path=path,
            hint="Provide at least one hunk of ' ', '-' and '+' prefixed lines",
        )

    new_image, matches = apply_hunks(image, hunks, config, path=path)
    for number, match in enumerate(matches, 1):
        logger.debug(
            "Hunk located",
            hunk=number,
            strategy=match.strategy,
            line=match.start + 1,
            confidence=round(match.confidence, 3),
        )

    new_bytes = new_image.to_bytes()
    if new_bytes == current and request.rename_to is None:
        raise NoOpChangeError(
            "Patch makes no changes",
            path=path,
            hint="The file already has this content; there is nothing to apply",
        )

    return ApplyResult(
        request=request,
        new_bytes=new_bytes,
        hunks_applied=len(hunks),
        lines_added=sum(h.lines_added for h in hunks),
        lines_removed=sum(h.lines_removed for h in hunks),
        fuzzy=any(m.is_fuzzy for m in matches),
        warnings=[note for m in matches for note in m.notes],
    )


def apply(
    request: PatchRequest,
    current: Optional[bytes] = None,
    config: Optional[PatchConfig] = None,
) -> ApplyResult:
    """Apply ``request`` to ``current`` file bytes.

    Args:
        request: What to do and the diff to do it with.
        current: The file's bytes, or None when it does not exist.
        config: Matching thresholds; defaults to :data:`DEFAULT_CONFIG`.

    Returns:
        An :class:`ApplyResult`. On failure ``result.error`` holds the
        :class:`PatchError` and no bytes are produced.
    """

    config = config or DEFAULT_CONFIG
    op = Operation.coerce(request.operation)
    with patch_context(path=request.path, op=op.value):
        try:
            result = _apply(request, current, config)
        except PatchError as e:
            if e.path is None:
                e.path = request.path
            logger.warning("Patch rejected", kind=e.kind, error=e.error)
            return ApplyResult(request=request, error=e)

        logger.info(
            "Patch applied",
            target=result.target_path,
            hunks=result.hunks_applied,
            lines_added=result.lines_added,
            lines_removed=result.lines_removed,
            fuzzy=result.fuzzy,
            deleted=result.deleted,
        )
        return result


def patch_text(
    content: str,
    diff: str,
    config: Optional[PatchConfig] = None,
    *,
    path: Optional[str] = None,
) -> str:
    """Apply an update ``diff`` to ``content`` and return the new text.

    ``path`` defaults to the file named by the diff's own marker, if any.

    Raises:
        PatchError: The diff could not be applied.
    """

    if path is None:
        named = marker_paths(diff)
        path = named[0] if named else "<text>"
    request = PatchRequest(path=path, operation=Operation.UPDATE, diff_text=diff)
    result = apply(request, content.encode("utf-8"), config)
    new_bytes = result.unwrap()
    return new_bytes.decode("utf-8") if new_bytes is not None else content
