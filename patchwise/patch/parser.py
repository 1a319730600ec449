"""Hunk parser.

Turns normalised diff text into :class:`~patchwise.patch.models.Hunk`
records. A hunk starts at an ``@@`` line (or at the first body line when the
diff has no headers at all). The header may carry a unified line range, a
loose line hint such as ``line 12`` or ``top of file``, and/or anchor text;
consecutive ``@@`` lines nest anchors.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .dialect import strip_line_number_prefixes
from .errors import InvalidAnchorError, InvalidEnvelopeError
from .models import EditKind, Hunk, LineEdit, LineHint

RE_UNIFIED_HEADER = re.compile(r"^@@\s*-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s*@@(?:\s*(.*))?$")
RE_RANGE_LIKE = re.compile(r"^@@\s*-\d")
RE_LINE_HINT = re.compile(r"^lines?\s+(\d+)(?:\s*-\s*(\d+))?(?:\s*@@)?$", re.IGNORECASE)
RE_TOP_OF_FILE = re.compile(r"^(?:top|start|beginning)\s+of\s+file(?:\s*@@)?$", re.IGNORECASE)
RE_EOF_MARKER = re.compile(r"^\*\*\*\s*End\s+of\s+File\s*$", re.IGNORECASE)
RE_BARE_HEADER = re.compile(r"^@@(?:\s*@@)?\s*$")
RE_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

ELLIPSIS_TOKENS = ("...", "…")


def _clean_anchor(text: str) -> str:
    anchor = text.strip()
    if anchor.endswith("@@"):
        anchor = anchor[:-2].rstrip()
    if RE_CONTROL_CHARS.search(anchor):
        raise InvalidEnvelopeError(
            "Hunk header contains control characters",
            hint="Anchors must be plain text copied from the file",
        )
    return anchor


def parse_header(line: str) -> Tuple[List[str], Optional[LineHint]]:
    """Parse one ``@@`` line into ``(anchors, hint)``.

    Raises:
        InvalidAnchorError: The header looks like a line reference but is
            malformed or out of range.
    """

    m = RE_UNIFIED_HEADER.match(line.rstrip())
    if m:
        old_start, new_start = int(m.group(1)), int(m.group(3))
        old_len = int(m.group(2)) if m.group(2) is not None else None
        new_len = int(m.group(4)) if m.group(4) is not None else None
        if (old_start < 1 and old_len != 0) or (new_start < 1 and new_len != 0):
            raise InvalidAnchorError(
                f"Invalid line range in hunk header: {line.strip()}",
                hint="Line numbers in '@@ -a,b +c,d @@' are 1-based",
            )
        hint = LineHint(old_start=old_start, old_len=old_len, new_start=new_start, new_len=new_len)
        anchor = _clean_anchor(m.group(5) or "")
        return ([anchor] if anchor else []), hint

    if RE_RANGE_LIKE.match(line):
        raise InvalidAnchorError(
            f"Malformed line range in hunk header: {line.strip()}",
            hint="Use '@@ -12,3 +12,4 @@' or drop the line numbers",
        )

    rest = line[2:].strip()
    # "@@ @@ line 3" and "@@ @@" forms.
    if rest.startswith("@@"):
        rest = rest[2:].strip()
    if not rest:
        return [], None

    m = RE_LINE_HINT.match(rest)
    if m:
        start = int(m.group(1))
        end = int(m.group(2)) if m.group(2) is not None else None
        if start < 1 or (end is not None and end < start):
            raise InvalidAnchorError(
                f"Invalid line reference in hunk header: {rest}",
                hint="Use '@@ line N' or '@@ lines N-M' with 1-based N <= M",
            )
        length = end - start + 1 if end is not None else None
        return [], LineHint(old_start=start, old_len=length)

    if RE_TOP_OF_FILE.match(rest):
        return [], LineHint(old_start=1, old_len=None, new_start=1)

    anchor = _clean_anchor(rest)
    return ([anchor] if anchor else []), None


def _classify(line: str) -> LineEdit:
    if line.strip() in ELLIPSIS_TOKENS and not line.startswith(("+", "-")):
        return LineEdit(EditKind.ELLIPSIS)
    if line == "":
        return LineEdit(EditKind.KEEP, "")
    prefix = line[0]
    if prefix == " ":
        return LineEdit(EditKind.KEEP, line[1:])
    if prefix == "+":
        return LineEdit(EditKind.ADD, line[1:])
    if prefix == "-":
        return LineEdit(EditKind.REMOVE, line[1:])
    # Generators often drop the space prefix on unchanged lines.
    return LineEdit(EditKind.KEEP, line)


def _next_non_blank(lines: List[str], i: int) -> int:
    while i < len(lines) and lines[i] == "":
        i += 1
    return i


def _parse_hunk(lines: List[str], i: int) -> Tuple[Hunk, int]:
    anchors: List[str] = []
    hint: Optional[LineHint] = None
    header = ""

    while i < len(lines) and lines[i].startswith("@@"):
        if not header:
            header = lines[i]
        found_anchors, found_hint = parse_header(lines[i])
        anchors.extend(found_anchors)
        hint = hint or found_hint
        i += 1

    edits: List[LineEdit] = []
    is_eof = False
    while i < len(lines):
        line = lines[i]
        if line == "" and edits:
            j = _next_non_blank(lines, i)
            if j < len(lines) and lines[j].startswith("@@"):
                i = j
                break
        if line.startswith("@@"):
            break
        if RE_EOF_MARKER.match(line.strip()) and not line.startswith((" ", "+", "-")):
            is_eof = True
            i += 1
            break
        edits.append(_classify(line))
        i += 1

    if not edits:
        raise InvalidEnvelopeError(
            f"Hunk has no body lines: {header.strip() or '(no header)'}",
            hint="Follow each @@ header with ' ', '-' or '+' prefixed lines",
        )

    hunk = Hunk(
        edits=strip_line_number_prefixes(edits),
        anchors=anchors,
        hint=hint,
        is_eof=is_eof,
        header=header,
    )
    return hunk, i


def parse_hunks(diff_text: str) -> List[Hunk]:
    """Split normalised diff text into hunks, in diff order."""

    lines = diff_text.split("\n")
    hunks: List[Hunk] = []
    i = 0
    while i < len(lines):
        if lines[i] == "":
            i += 1
            continue
        if hunks and RE_BARE_HEADER.match(lines[i]) and _next_non_blank(lines, i + 1) >= len(lines):
            # A closing "@@" after the last hunk.
            break
        hunk, i = _parse_hunk(lines, i)
        hunks.append(hunk)
    return hunks
