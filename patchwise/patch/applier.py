"""Hunk applier.

Hunks are first located against the untouched file, then spliced in from the
bottom of the file upwards so earlier positions stay valid. Keep lines are
always copied from the file rather than from the diff, so a leniently
matched context line is never rewritten.

Neighbouring hunks may share context lines (a model often repeats the line
between two edits in both hunks). Only lines that both hunks keep may be
shared; a line one hunk removes cannot also be covered by another.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, PatchConfig
from .errors import StaleContentError
from .image import FileImage
from .indent import IndentProfile, indent_profile, reconcile_indentation
from .locator import locate_hunk
from .models import EditKind, Hunk, MatchCandidate

Located = Tuple[int, Hunk, MatchCandidate]


def render_hunk(
    lines: Sequence[str],
    hunk: Hunk,
    match: MatchCandidate,
    file_profile: Optional[IndentProfile] = None,
    floor: Optional[int] = None,
) -> Tuple[int, int, List[str]]:
    """Compute the replacement for one located hunk.

    Args:
        lines: The original file lines the hunk was located in.
        hunk: The parsed hunk.
        match: Where ``hunk`` was located in ``lines``.
        file_profile: Indentation profile of ``lines``; computed when omitted.
        floor: First line this splice may touch. Keep lines above it belong
            to an earlier hunk's splice and are not emitted again.

    Returns:
        ``(start, end, replacement)``: ``lines[start:end]`` is to be replaced
        with ``replacement``.
    """

    if file_profile is None:
        file_profile = indent_profile(lines)
    edits = hunk.edits
    positions = match.positions

    pairs = [
        (edit.text, lines[positions[i]], edit.kind == EditKind.REMOVE)
        for i, edit in enumerate(edits)
        if i in positions
    ]
    add_indices = [i for i, edit in enumerate(edits) if edit.kind == EditKind.ADD]
    adjusted: Dict[int, str] = dict(
        zip(add_indices, reconcile_indentation(pairs, [edits[i].text for i in add_indices], file_profile))
    )

    if not positions:
        at = match.insert_at if match.insert_at is not None else match.start
        return at, at, [adjusted[i] for i in add_indices]

    start = match.start if floor is None else max(match.start, floor)
    cursor = start
    out: List[str] = []
    for i, edit in enumerate(edits):
        if edit.kind == EditKind.ADD:
            out.append(adjusted[i])
        elif edit.kind == EditKind.ELLIPSIS:
            following = next((positions[j] for j in range(i + 1, len(edits)) if j in positions), None)
            if following is not None and following > cursor:
                out.extend(lines[cursor:following])
                cursor = following
        else:
            pos = positions.get(i)
            if pos is None or pos < cursor:
                # Dropped context, a collapsed duplicate, or a line shared
                # with the previous hunk.
                continue
            out.extend(lines[cursor:pos])
            if edit.kind == EditKind.KEEP:
                out.append(lines[pos])
            cursor = pos + 1
    return start, cursor, out


def _shared_line_conflict(earlier: Located, later: Located) -> Optional[int]:
    """Return a line both hunks claim, or None when they only share kept context."""

    _, hunk_a, a = earlier
    _, hunk_b, b = later
    lo, hi = b.start, a.end

    for hunk, match in (earlier[1:], later[1:]):
        for idx, pos in match.positions.items():
            if lo <= pos < hi and hunk.edits[idx].kind == EditKind.REMOVE:
                return pos

    if b.end <= hi:
        # The later hunk lies entirely inside the earlier one.
        return b.start

    # After its first shared line the earlier hunk may only keep lines, or
    # add lines past its last matched line.
    first_shared = min(idx for idx, pos in a.positions.items() if pos >= lo)
    last_matched = max(a.positions)
    for idx in range(first_shared, len(hunk_a.edits)):
        if hunk_a.edits[idx].kind == EditKind.ADD and idx < last_matched:
            return lo

    # Before its first unshared line the later hunk may only keep lines.
    first_own = min(idx for idx, pos in b.positions.items() if pos >= hi)
    for idx in range(first_own):
        if hunk_b.edits[idx].kind in (EditKind.ADD, EditKind.REMOVE):
            return hi - 1
    return None


def plan_floors(located: Sequence[Located], lines: Sequence[str], path: Optional[str] = None) -> Dict[int, int]:
    """Check that located hunks do not claim the same lines.

    Args:
        located: ``(number, hunk, match)`` for every hunk, in diff order.
        lines: The original file lines.
        path: Used in error reports.

    Returns:
        For each hunk that shares leading context with an earlier one, the
        first line its splice may touch (see :func:`render_hunk`).

    Raises:
        StaleContentError: Two hunks change the same line, or one inserts
            inside the other; once the first applies, the second's lines
            are no longer there.
    """

    ordered = sorted(located, key=lambda item: (item[2].start, item[2].end, item[0]))
    floors: Dict[int, int] = {}
    for k, later in enumerate(ordered):
        n_b, hunk_b, b = later
        for earlier in ordered[:k]:
            n_a, _, a = earlier
            if a.end <= b.start:
                continue
            line = _shared_line_conflict(earlier, later)
            if line is not None:
                raise StaleContentError(
                    f"Hunks {n_a} and {n_b} both change line {line + 1}",
                    path=path,
                    hint="Merge the two hunks into one, or make them touch different lines",
                    expected=hunk_b.old_lines,
                    actual=list(lines[b.start : b.end]),
                    changed_lines=[line + 1],
                )
            floors[n_b] = max(floors.get(n_b, b.start), a.end)
    return floors


def apply_hunks(
    image: FileImage,
    hunks: Sequence[Hunk],
    config: Optional[PatchConfig] = None,
    *,
    path: Optional[str] = None,
) -> Tuple[FileImage, List[MatchCandidate]]:
    """Locate every hunk against ``image`` and return the patched image.

    Nothing is modified unless every hunk locates; the first failure is
    raised as a :class:`~patchwise.patch.errors.PatchError`.

    Args:
        image: The current file.
        hunks: Parsed hunks in diff order.
        config: Matching thresholds.
        path: Used in error reports.

    Returns:
        The patched image and the match of each hunk, in diff order.
    """

    config = config or DEFAULT_CONFIG
    lines = image.lines
    located: List[Located] = []
    for number, hunk in enumerate(hunks, 1):
        match = locate_hunk(lines, hunk, config, path=path, number=number)
        located.append((number, hunk, match))

    floors = plan_floors(located, lines, path)

    profile = indent_profile(lines)
    splices = [
        (number, render_hunk(lines, hunk, match, profile, floors.get(number)))
        for number, hunk, match in located
    ]

    # Bottom-up; at equal positions later hunks go first so diff order is kept.
    new_lines = list(lines)
    for _, (start, end, replacement) in sorted(splices, key=lambda s: (s[1][0], s[1][1], s[0]), reverse=True):
        new_lines[start:end] = replacement
    return image.with_lines(new_lines), [match for _, _, match in located]
