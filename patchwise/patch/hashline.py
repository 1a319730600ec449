"""Line-addressed edits checked by content hashes.

Instead of a diff, the caller names lines by ``LINE:HASH`` references taken
from a hash-annotated view of the file (see :func:`format_hash_lines`). The
hash is derived from the line's text and its 1-based number, so a reference
doubles as a staleness check: if the file changed since it was read, the
edit is refused before anything is modified.

Displayed format::

    12:3fa0| def main():

Reference forms accepted in ``HashlineEdit.src``:

- ``"5:3fa0"``           replace line 5
- ``"5:3fa0..9:01bc"``   replace (or delete) lines 5 to 9 inclusive
- ``"5:3fa0.."``         insert after line 5
- ``"..5:3fa0"``         insert before line 5

``dst`` holds the replacement text, one line per ``\\n``; an empty ``dst``
deletes the referenced lines.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvalidAnchorError, InvalidEnvelopeError, StaleContentError
from .models import HashlineEdit

HASH_LEN = 4
MISMATCH_CONTEXT = 2

RE_LINE_REF = re.compile(r"^(\d+):([0-9a-fA-F]{1,16})$")
RE_HASHLINE_PREFIX = re.compile(r"^\d+:[0-9a-fA-F]{1,16}\| ")
RE_DIFF_PLUS = re.compile(r"^\+(?!\+)")
RE_WS = re.compile(r"\s+")

REF_SYNTAX_HINT = 'Use "LINE:HASH" exactly as shown by the hash-annotated read, e.g. "5:3fa0"'


@dataclass(frozen=True)
class LineRef:
    line: int
    hash: str


@dataclass(frozen=True)
class SrcSpec:
    """Parsed ``src`` of a :class:`HashlineEdit`.

    ``kind`` is one of ``single``, ``range``, ``insert_after`` or
    ``insert_before``. ``end`` is only set for ranges.
    """

    kind: str
    start: LineRef
    end: Optional[LineRef] = None


@dataclass(frozen=True)
class HashMismatch:
    line: int
    expected: str
    actual: str


@dataclass
class HashlineOutcome:
    lines: List[str]
    first_changed_line: Optional[int]
    lines_added: int
    lines_removed: int


# ---------------------------------------------------------------------------
# Hashing and display
# ---------------------------------------------------------------------------

def compute_line_hash(line_number: int, line: str) -> str:
    """Return the short hex hash of ``line`` at 1-based ``line_number``.

    The number is part of the hashed input, so identical text on two lines
    hashes differently. A trailing ``\\r`` is ignored.
    """

    if line.endswith("\r"):
        line = line[:-1]
    digest = hashlib.sha256(f"{line_number}\x00{line}".encode("utf-8")).hexdigest()
    return digest[:HASH_LEN]


def format_hash_lines(lines: Sequence[str], start_line: int = 1) -> str:
    """Render ``lines`` as ``LINE:HASH| text`` rows.

    Args:
        lines: File lines without line terminators.
        start_line: 1-based number of ``lines[0]``.

    Returns:
        The rows joined with ``\\n``.
    """

    return "\n".join(
        f"{number}:{compute_line_hash(number, line)}| {line}"
        for number, line in enumerate(lines, start_line)
    )


# ---------------------------------------------------------------------------
# Reference parsing
# ---------------------------------------------------------------------------

def parse_line_ref(ref: str) -> LineRef:
    """Parse ``"5:3fa0"`` into a :class:`LineRef`.

    A copied display suffix (``"5:3fa0| text"``) is tolerated.

    Raises:
        InvalidAnchorError: The reference is not ``NUMBER:HEX`` or the
            number is below 1.
    """

    cleaned = ref.split("|", 1)[0].strip()
    m = RE_LINE_REF.match(cleaned)
    if not m:
        raise InvalidAnchorError(f"Invalid line reference {ref!r}", hint=REF_SYNTAX_HINT)
    number = int(m.group(1))
    if number < 1:
        raise InvalidAnchorError(f"Line number must be >= 1, got {number} in {ref!r}", hint=REF_SYNTAX_HINT)
    return LineRef(number, m.group(2).lower())


def parse_src(src: str) -> SrcSpec:
    """Parse the ``src`` field of one edit.

    Raises:
        InvalidEnvelopeError: ``src`` contains a newline or a comma (several
            references packed into one token).
        InvalidAnchorError: The reference syntax is malformed.
    """

    if "\n" in src:
        raise InvalidEnvelopeError(
            f"Line reference must not contain newlines: {src!r}",
            hint="Give exactly one reference or range per edit",
        )
    if "," in src:
        raise InvalidEnvelopeError(
            f"Line reference must not contain commas: {src!r}",
            hint="Split the references into separate edits",
        )

    src = src.strip()
    if src.startswith(".."):
        if ".." in src[2:]:
            raise InvalidAnchorError(
                f"Invalid reference {src!r}: insert-before form is exactly '..LINE:HASH'",
                hint=REF_SYNTAX_HINT,
            )
        return SrcSpec("insert_before", parse_line_ref(src[2:]))

    lhs, sep, rhs = src.partition("..")
    if not sep:
        return SrcSpec("single", parse_line_ref(src))
    if not rhs.strip():
        return SrcSpec("insert_after", parse_line_ref(lhs))
    return SrcSpec("range", parse_line_ref(lhs), parse_line_ref(rhs))


# ---------------------------------------------------------------------------
# Replacement cleanup
# ---------------------------------------------------------------------------

def _same_ignoring_ws(a: str, b: str) -> bool:
    return a == b or RE_WS.sub("", a) == RE_WS.sub("", b)


def _split_dst(dst: str) -> List[str]:
    return [] if dst == "" else dst.split("\n")


def strip_copied_prefixes(lines: List[str]) -> List[str]:
    """Remove ``LINE:HASH| `` or ``+`` prefixes copied into replacement text.

    Only done when at least half of the non-empty lines carry the prefix, so a
    single line that genuinely starts with ``+`` survives.
    """

    non_empty = [line for line in lines if line]
    if not non_empty:
        return lines
    hashed = sum(1 for line in non_empty if RE_HASHLINE_PREFIX.match(line))
    if hashed and hashed * 2 >= len(non_empty):
        return [RE_HASHLINE_PREFIX.sub("", line, count=1) for line in lines]
    plussed = sum(1 for line in non_empty if RE_DIFF_PLUS.match(line))
    if plussed and plussed * 2 >= len(non_empty):
        return [RE_DIFF_PLUS.sub("", line, count=1) for line in lines]
    return lines


def _keep_whitespace(old: Sequence[str], new: List[str]) -> List[str]:
    # Lines that differ from an old line only in whitespace keep the old text.
    if len(old) == len(new):
        return [o if o != n and _same_ignoring_ws(o, n) else n for o, n in zip(old, new)]
    by_shape: Dict[str, List[str]] = {}
    for line in old:
        by_shape.setdefault(RE_WS.sub("", line), []).append(line)
    out = []
    for line in new:
        twin = next((o for o in by_shape.get(RE_WS.sub("", line), []) if o != line), None)
        out.append(twin if twin is not None else line)
    return out


def _strip_boundary_echo(file_lines: Sequence[str], first: int, last: int, dst: List[str]) -> List[str]:
    # Only when the replacement grew: a one-line edit never turns into a delete.
    if len(dst) <= 1 or len(dst) <= last - first + 1:
        return dst
    out = dst
    if first >= 2 and _same_ignoring_ws(out[0], file_lines[first - 2]):
        out = out[1:]
    if last < len(file_lines) and out and _same_ignoring_ws(out[-1], file_lines[last]):
        out = out[:-1]
    return out


# ---------------------------------------------------------------------------
# Validation and application
# ---------------------------------------------------------------------------

def format_mismatches(mismatches: Sequence[HashMismatch], file_lines: Sequence[str]) -> str:
    """Show each stale line with its current ``LINE:HASH`` and two lines around it.

    Stale lines are marked with ``>>>`` so every reference can be fixed from
    one error.
    """

    stale = {m.line for m in mismatches}
    shown = sorted(
        {
            n
            for m in mismatches
            for n in range(max(1, m.line - MISMATCH_CONTEXT), min(len(file_lines), m.line + MISMATCH_CONTEXT) + 1)
        }
    )
    count = len(mismatches)
    out = [f"{count} line{'s have' if count > 1 else ' has'} changed since last read. Re-read the file.", ""]
    previous = None
    for n in shown:
        if previous is not None and n > previous + 1:
            out.append("    ...")
        previous = n
        marker = ">>> " if n in stale else "    "
        out.append(f"{marker}{n}:{compute_line_hash(n, file_lines[n - 1])}| {file_lines[n - 1]}")
    return "\n".join(out)


def _refs(spec: SrcSpec) -> List[LineRef]:
    return [spec.start] if spec.end is None else [spec.start, spec.end]


def apply_hashline_edits(
    file_lines: Sequence[str],
    edits: Sequence[HashlineEdit],
    *,
    path: Optional[str] = None,
) -> HashlineOutcome:
    """Apply line-addressed edits to ``file_lines``.

    Every reference is validated before anything changes, and all stale
    hashes are reported together. Edits are then spliced bottom-up so line
    numbers stay valid; at the same line an insert-after goes first, then the
    replacement, then an insert-before.

    Args:
        file_lines: Current file lines without terminators.
        edits: The edits, in caller order.
        path: Used in error reports.

    Returns:
        The new lines, the first changed 1-based line, and added/removed counts.

    Raises:
        InvalidEnvelopeError: A ``src`` holds forbidden characters or an
            insert has nothing to insert.
        InvalidAnchorError: A reference is malformed, out of range, or a
            range runs backwards.
        StaleContentError: One or more hashes no longer match the file.
    """

    lines = list(file_lines)
    parsed: List[Tuple[SrcSpec, List[str]]] = []
    for edit in edits:
        try:
            spec = parse_src(edit.src)
        except (InvalidAnchorError, InvalidEnvelopeError) as e:
            e.path = path
            raise
        parsed.append((spec, strip_copied_prefixes(_split_dst(edit.dst))))

    mismatches: List[HashMismatch] = []
    for spec, dst in parsed:
        if spec.kind == "range" and spec.start.line > spec.end.line:
            raise InvalidAnchorError(
                f"Range start line {spec.start.line} is after end line {spec.end.line}",
                path=path,
                hint="Write ranges as 'FIRST:HASH..LAST:HASH'",
            )
        if spec.kind in ("insert_after", "insert_before") and not dst:
            raise InvalidEnvelopeError(
                "Insert edit has no lines to insert",
                path=path,
                hint="Put the new lines in dst, or use a plain reference to delete",
            )
        for ref in _refs(spec):
            if ref.line > len(lines):
                raise InvalidAnchorError(
                    f"Line {ref.line} does not exist (file has {len(lines)} lines)",
                    path=path,
                    hint="Re-read the file to get current line references",
                )
            actual = compute_line_hash(ref.line, lines[ref.line - 1])
            if actual != ref.hash:
                mismatches.append(HashMismatch(ref.line, ref.hash, actual))

    if mismatches:
        raise StaleContentError(
            f"{len(mismatches)} line reference(s) are stale",
            path=path,
            hint=format_mismatches(mismatches, lines),
            expected=[f"{m.line}:{m.expected}" for m in mismatches],
            actual=[f"{m.line}:{m.actual}" for m in mismatches],
            changed_lines=[m.line for m in mismatches],
        )

    precedence = {"insert_after": 0, "single": 1, "range": 1, "insert_before": 2}
    order = sorted(
        range(len(parsed)),
        key=lambda i: (-(parsed[i][0].end or parsed[i][0].start).line, precedence[parsed[i][0].kind], i),
    )

    first_changed: Optional[int] = None
    added = removed = 0
    for i in order:
        spec, dst = parsed[i]
        if spec.kind == "insert_after":
            anchor = lines[spec.start.line - 1]
            new = dst[1:] if len(dst) > 1 and _same_ignoring_ws(dst[0], anchor) else dst
            at, count = spec.start.line, 0
        elif spec.kind == "insert_before":
            anchor = lines[spec.start.line - 1]
            new = dst[:-1] if len(dst) > 1 and _same_ignoring_ws(dst[-1], anchor) else dst
            at, count = spec.start.line - 1, 0
        else:
            last = (spec.end or spec.start).line
            count = last - spec.start.line + 1
            at = spec.start.line - 1
            new = _keep_whitespace(lines[at : at + count], _strip_boundary_echo(lines, spec.start.line, last, dst))
        lines[at : at + count] = new
        added += len(new)
        removed += count
        first_changed = at + 1 if first_changed is None else min(first_changed, at + 1)

    return HashlineOutcome(lines, first_changed, added, removed)
