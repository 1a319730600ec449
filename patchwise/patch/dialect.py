"""Diff dialect normalisation.

Model-written diffs arrive in many shapes: wrapped in ``*** Begin Patch``
envelopes, carrying git metadata, prefixed with file markers, or copied out
of a line-numbered file view. The functions here reduce all of that to a
plain sequence of hunks for the parser, and reject diffs that try to touch
more than one file.
"""

from __future__ import annotations

import re
from posixpath import normpath as _posix_normpath
from typing import List, Optional, Set

from .errors import InvalidEnvelopeError
from .models import EditKind, LineEdit

RE_BEGIN_PATCH = re.compile(r"^\*\*\*\s*Begin\s+Patch\s*$", re.IGNORECASE)
RE_END_PATCH = re.compile(r"^\*\*\*\s*End\s+Patch\s*$", re.IGNORECASE)
RE_BARE_STARS = re.compile(r"^\*\*\*\s*$")
RE_FILE_MARKER = re.compile(r"^\*\*\*\s*(Update|Add|Delete)\s+File:\s*(.*?)\s*$", re.IGNORECASE)
RE_MOVE_TO = re.compile(r"^\*\*\*\s*Move\s+to:\s*(.*?)\s*$", re.IGNORECASE)
RE_GIT_HEADER = re.compile(r"^diff\s+--git\s+(\S+)\s+(\S+)")
RE_GIT_METADATA = re.compile(
    r"^(index\s+[0-9a-fA-F]+\.\.[0-9a-fA-F]+"
    r"|new file mode\b|deleted file mode\b|old mode\b|new mode\b"
    r"|similarity index\b|dissimilarity index\b|rename from\b|rename to\b"
    r"|copy from\b|copy to\b|Binary files\b)"
)
RE_NO_NEWLINE = re.compile(r"^\\ No newline at end of file")
RE_LINE_NUMBER = re.compile(r"^\s*(\d{1,6})(?:\t|:\s?|\s?\|\s?|\s)(.*)$")

LINE_NUMBER_MIN_SHARE = 0.6

_CONTENT_PREFIXES = (" ", "+", "-")


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def _is_content_line(line: str) -> bool:
    return line.startswith(_CONTENT_PREFIXES)


def _clean_marker_path(raw: str) -> str:
    path = raw.strip().strip("\"'").replace("\\", "/")
    if path.startswith(("a/", "b/")):
        path = path[2:]
    path = _posix_normpath(path) if path else path
    return path[2:] if path.startswith("./") else path


def same_file(a: str, b: str) -> bool:
    """Loose path equality used when a diff names its own target."""

    a, b = _clean_marker_path(a), _clean_marker_path(b)
    if a == b:
        return True
    return a.endswith("/" + b) or b.endswith("/" + a)


def marker_paths(diff_text: str) -> List[str]:
    """Return the distinct file paths named by file markers in ``diff_text``.

    Content lines (space, ``+`` or ``-`` prefixed) are never treated as
    markers, so a context line that happens to read ``diff --git`` is safe.
    """

    seen: Set[str] = set()
    paths: List[str] = []
    for line in _split_lines(diff_text):
        if _is_content_line(line):
            continue
        path: Optional[str] = None
        m = RE_FILE_MARKER.match(line)
        if m:
            path = m.group(2)
        else:
            m = RE_GIT_HEADER.match(line)
            if m:
                path = m.group(2)
        if not path:
            continue
        cleaned = _clean_marker_path(path)
        if cleaned not in seen:
            seen.add(cleaned)
            paths.append(cleaned)
    return paths


def check_single_file(diff_text: str, path: Optional[str] = None) -> None:
    """Reject a diff that addresses more than one file, or a file other than ``path``."""

    paths = marker_paths(diff_text)
    if len(paths) > 1:
        raise InvalidEnvelopeError(
            "Multi-file patches are not supported",
            path=path,
            hint=f"The diff names {len(paths)} files ({', '.join(paths[:3])}); send one request per file",
        )
    if paths and path and not same_file(paths[0], path):
        raise InvalidEnvelopeError(
            f"Diff targets '{paths[0]}' but the request is for '{path}'",
            path=path,
            hint="Send the diff with the request for the file it edits",
        )


def _trim_edges(lines: List[str]) -> List[str]:
    """Drop blank lines and envelope markers from both ends."""

    start, end = 0, len(lines)
    while start < end:
        line = lines[start]
        if not line.strip() or RE_BEGIN_PATCH.match(line.strip()) or RE_BARE_STARS.match(line):
            start += 1
            continue
        break
    while end > start:
        line = lines[end - 1]
        # A lone space is a blank context line, not padding.
        if line.startswith(" "):
            break
        if not line.strip() or RE_END_PATCH.match(line.strip()) or RE_BARE_STARS.match(line):
            end -= 1
            continue
        break
    return lines[start:end]


def normalize_diff(diff_text: str) -> str:
    """Strip envelopes, file markers and git metadata from an update diff."""

    lines = _trim_edges(_split_lines(diff_text))
    out: List[str] = []
    seen_hunk = False
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("@@"):
            seen_hunk = True
        elif not _is_content_line(line) and (
            RE_FILE_MARKER.match(line)
            or RE_MOVE_TO.match(line)
            or RE_GIT_HEADER.match(line)
            or RE_GIT_METADATA.match(line)
            or RE_NO_NEWLINE.match(line)
            or RE_BEGIN_PATCH.match(line.strip())
            or RE_END_PATCH.match(line.strip())
        ):
            i += 1
            continue
        elif (
            not seen_hunk
            and line.startswith("--- ")
            and i + 1 < len(lines)
            and lines[i + 1].startswith("+++ ")
        ):
            # Unified file header pair.
            i += 2
            continue
        out.append(line)
        i += 1
    return "\n".join(out)


def normalize_create_content(diff_text: str) -> str:
    """Turn the body of a create request into file text.

    When every non-empty line carries the ``+`` add prefix it is removed
    (together with one following space when every line has one); otherwise
    the text is taken verbatim. The result always ends with a newline
    unless it is empty.
    """

    lines = _split_lines(diff_text)
    if lines and lines[-1] == "":
        lines.pop()
    while lines and (RE_BEGIN_PATCH.match(lines[0].strip()) or RE_FILE_MARKER.match(lines[0])):
        lines.pop(0)
    while lines and RE_END_PATCH.match(lines[-1].strip()):
        lines.pop()

    non_empty = [line for line in lines if line]
    if non_empty and all(line.startswith("+") for line in non_empty):
        with_text = [line for line in non_empty if line != "+"]
        width = 2 if with_text and all(line.startswith("+ ") for line in with_text) else 1
        lines = [line[width:] if line.startswith("+") else line for line in lines]

    content = "\n".join(lines)
    if content and not content.endswith("\n"):
        content += "\n"
    return content


def strip_line_number_prefixes(edits: List[LineEdit]) -> List[LineEdit]:
    """Remove ``N<sep>`` prefixes copied from a line-numbered file view.

    Applied only when most non-blank lines carry a prefix and the numbers
    run (mostly) in sequence, so literal numeric content is left alone.
    """

    candidates = [i for i, e in enumerate(edits) if e.kind != EditKind.ELLIPSIS and e.text.strip()]
    if len(candidates) < 2:
        return edits

    matches = {}
    for i in candidates:
        m = RE_LINE_NUMBER.match(edits[i].text)
        if m:
            matches[i] = m
    if len(matches) < 2 or len(matches) < LINE_NUMBER_MIN_SHARE * len(candidates):
        return edits

    numbers = [int(matches[i].group(1)) for i in sorted(matches)]
    steps = sum(1 for a, b in zip(numbers, numbers[1:]) if 0 <= b - a <= 1)
    if steps < LINE_NUMBER_MIN_SHARE * (len(numbers) - 1):
        return edits

    return [
        LineEdit(edit.kind, matches[i].group(2)) if i in matches else edit
        for i, edit in enumerate(edits)
    ]
