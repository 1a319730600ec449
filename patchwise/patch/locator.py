"""Context locator.

Finds where a hunk applies. The hunk's *old view* (its Keep and Remove lines)
is searched for in the file with progressively more lenient comparisons,
stopping at the first level that finds anything:

  1) exact
  2) ignore trailing whitespace
  3) ignore surrounding whitespace
  4) normalised (unicode punctuation, collapsed whitespace)
  5) prefix (each hunk line starts a file line)
  6) fuzzy per-line similarity
  7) character-level similarity over the whole window

Levels 3-7 need ``allow_fuzzy``. ``@@`` anchors narrow the search region,
line hints and ``*** End of File`` break ties, and when the full old view
cannot be placed the locator retries with narrower views (changed lines only,
duplicate context collapsed, edge context trimmed). Anything still ambiguous
is an error: the locator never guesses between equally good places.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, PatchConfig
from .errors import AmbiguousMatchError, InvalidAnchorError, NoMatchError, PatchError, StaleContentError
from .models import EditKind, Hunk, MatchCandidate
from .normalize import normalize_for_fuzzy, similarity, similarity_at_least, strip_all_ws

# Below this mean similarity a failed hunk is reported as unrelated, not stale.
STALE_SIMILARITY = 0.5
FALLBACK_CONFIDENCE = 0.9
TERM_CONFIDENCE = 0.9
# Similarity-based levels never report a byte-exact match.
SIMILARITY_CONFIDENCE_CAP = 0.96
MAX_TRIMMED_CONTEXT = 3

_EPS = 1e-9

ViewEntry = Tuple[int, str]  # (edit index, line text)
Segment = List[ViewEntry]

_EQUALITY_LEVELS: List[Tuple[str, float, Callable[[str], str], bool]] = [
    ("exact", 1.0, lambda s: s, False),
    ("rstrip", 0.99, str.rstrip, False),
    ("strip", 0.98, str.strip, True),
    ("normalized", 0.97, normalize_for_fuzzy, True),
]


@dataclass
class SequenceMatch:
    """Equally good placements of a line sequence, found at one matching level."""

    strategy: str
    starts: List[int]
    confidences: List[float]

    @property
    def is_unique(self) -> bool:
        return len(self.starts) == 1


@dataclass
class AnchorMatch:
    lines: List[int]
    confidence: float
    strategy: str


@dataclass
class AnchorResolution:
    """Where a hunk's ``@@`` anchors point.

    ``position`` is set when the anchors resolve to one line. ``candidates``
    holds the possible lines when they do not. ``missing`` names the anchor
    that could not be found at all.
    """

    position: Optional[int] = None
    candidates: List[int] = field(default_factory=list)
    confidence: float = 1.0
    missing: Optional[str] = None


# ---------------------------------------------------------------------------
# Diagnostics formatting
# ---------------------------------------------------------------------------

def _format_context_mismatch(
    expected: Sequence[str],
    file_lines: Sequence[str],
    search_start: int,
    max_lines: int = 5,
) -> str:
    expected_preview = "\n".join(f"  {s}" for s in expected[:max_lines])
    if len(expected) > max_lines:
        expected_preview += f"\n  ... ({len(expected) - max_lines} more lines)"

    nearby_start = max(0, search_start)
    nearby_end = min(len(file_lines), search_start + max_lines + 3)
    nearby_preview = "\n".join(f"  {i + 1}: {file_lines[i]}" for i in range(nearby_start, nearby_end))

    return (
        f"Expected context:\n{expected_preview}\n\n"
        f"File content near line {search_start + 1}:\n{nearby_preview}"
    )


def _format_ambiguous_locations(
    file_lines: Sequence[str],
    positions: Sequence[int],
    *,
    max_candidates: int = 5,
) -> str:
    parts: List[str] = []
    for pos in list(positions)[:max_candidates]:
        first_line = file_lines[pos] if 0 <= pos < len(file_lines) else ""
        parts.append(f"  - line {pos + 1}: {first_line[:200]}")

    remaining = len(positions) - max_candidates
    if remaining > 0:
        parts.append(f"  ... and {remaining} more matches")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Sequence matching
# ---------------------------------------------------------------------------

def _equal_positions(keyed_lines: Sequence[str], keyed_pattern: Sequence[str], start: int) -> List[int]:
    n = len(keyed_pattern)
    first = keyed_pattern[0]
    positions: List[int] = []
    for i in range(start, len(keyed_lines) - n + 1):
        if keyed_lines[i] != first:
            continue
        for j in range(1, n):
            if keyed_lines[i + j] != keyed_pattern[j]:
                break
        else:
            positions.append(i)
    return positions


def _prefix_positions(norm_lines: Sequence[str], norm_pattern: Sequence[str], start: int) -> List[Tuple[int, float]]:
    m = len(norm_pattern)
    scored: List[Tuple[int, float]] = []
    for s in range(start, len(norm_lines) - m + 1):
        total = 0.0
        for j, expected in enumerate(norm_pattern):
            actual = norm_lines[s + j]
            if actual == expected:
                total += 1.0
            elif expected and actual.startswith(expected):
                total += len(expected) / len(actual)
            else:
                break
        else:
            scored.append((s, total / m))
    return scored


def _fuzzy_positions(
    norm_lines: Sequence[str],
    norm_pattern: Sequence[str],
    start: int,
    threshold: float,
) -> List[Tuple[int, float]]:
    m = len(norm_pattern)
    required = threshold * m
    scored: List[Tuple[int, float]] = []
    for s in range(start, len(norm_lines) - m + 1):
        total = 0.0
        for j, expected in enumerate(norm_pattern):
            remaining = m - j - 1
            floor = required - total - remaining
            if floor > 0:
                total += similarity_at_least(norm_lines[s + j], expected, floor)
            else:
                total += similarity(norm_lines[s + j], expected)
            if total + remaining < required - _EPS:
                break
        else:
            scored.append((s, total / m))
    return scored


def _character_positions(
    bare_lines: Sequence[str],
    bare_pattern: Sequence[str],
    start: int,
    threshold: float,
) -> List[Tuple[int, float]]:
    m = len(bare_pattern)
    target = "\n".join(bare_pattern)
    scored: List[Tuple[int, float]] = []
    for s in range(start, len(bare_lines) - m + 1):
        ratio = similarity_at_least("\n".join(bare_lines[s : s + m]), target, threshold)
        if ratio >= threshold - _EPS:
            scored.append((s, ratio))
    return scored


def _best_scored(strategy: str, scored: List[Tuple[int, float]]) -> SequenceMatch:
    best = max(score for _, score in scored)
    winners = [(s, score) for s, score in scored if score >= best - _EPS]
    return SequenceMatch(
        strategy,
        [s for s, _ in winners],
        [min(score, SIMILARITY_CONFIDENCE_CAP) for _, score in winners],
    )


def seek_sequence(
    lines: Sequence[str],
    pattern: Sequence[str],
    start: int = 0,
    config: Optional[PatchConfig] = None,
) -> Optional[SequenceMatch]:
    """Find ``pattern`` in ``lines`` at or after ``start``.

    Args:
        lines: File lines without terminators.
        pattern: The lines to look for, in order.
        start: First file line a placement may begin at.
        config: Matching thresholds; levels past trailing whitespace need
            ``allow_fuzzy``.

    Returns:
        Every placement found by the first matching level (so more than one
        start means the pattern is ambiguous at that level), or None. Only
        the exact level reports confidence 1.0.
    """

    config = config or DEFAULT_CONFIG
    pattern = list(pattern)
    start = max(start, 0)
    if not pattern:
        return SequenceMatch("exact", [start], [1.0])
    if start + len(pattern) > len(lines):
        return None

    for name, confidence, key, fuzzy_only in _EQUALITY_LEVELS:
        if fuzzy_only and not config.allow_fuzzy:
            continue
        positions = _equal_positions([key(x) for x in lines], [key(p) for p in pattern], start)
        if positions:
            return SequenceMatch(name, positions, [confidence] * len(positions))

    if not config.allow_fuzzy:
        return None

    norm_lines = [normalize_for_fuzzy(x) for x in lines]
    norm_pattern = [normalize_for_fuzzy(p) for p in pattern]

    # Several prefix hits make the hunk ambiguous even when similarity
    # would single one of them out.
    prefixed = _prefix_positions(norm_lines, norm_pattern, start)
    if len(prefixed) > 1 or (prefixed and prefixed[0][1] >= config.fuzzy_threshold):
        return SequenceMatch(
            "prefix", [s for s, _ in prefixed], [min(c, SIMILARITY_CONFIDENCE_CAP) for _, c in prefixed]
        )

    scored = _fuzzy_positions(norm_lines, norm_pattern, start, config.fuzzy_threshold)
    if scored:
        return _best_scored("fuzzy", scored)

    scored = _character_positions(
        [strip_all_ws(x) for x in lines],
        [strip_all_ws(p) for p in pattern],
        start,
        config.fuzzy_threshold,
    )
    if scored:
        return _best_scored("character", scored)
    return None


# ---------------------------------------------------------------------------
# Anchor matching
# ---------------------------------------------------------------------------

def find_context_line(
    lines: Sequence[str],
    anchor: str,
    start: int = 0,
    config: Optional[PatchConfig] = None,
) -> Optional[AnchorMatch]:
    """Find the file line(s) an ``@@`` anchor refers to, at or after ``start``.

    Tries exact equality, equality after trimming, prefix, substring
    (bounded by ``substring_min_length`` / ``substring_min_ratio``, or any
    length when only one line contains it) and, with ``allow_fuzzy``,
    normalised and similarity matching. The first level with hits wins.

    Returns:
        The matching lines with the level's confidence and name, or None.
    """

    config = config or DEFAULT_CONFIG
    target = anchor.strip()
    if not target:
        return None
    variants = [target]
    if target.endswith("()") and len(target) > 2:
        # "retry()" should find "retry(reason) {".
        variants.append(target[:-1])

    indices = range(max(start, 0), len(lines))
    stripped = {i: lines[i].strip() for i in indices}

    hits = [i for i in indices if lines[i] == anchor]
    if hits:
        return AnchorMatch(hits, 1.0, "exact")

    hits = [i for i in indices if stripped[i] == target]
    if hits:
        return AnchorMatch(hits, 0.99, "trimmed")

    hits = [i for i in indices if any(stripped[i].startswith(v) for v in variants)]
    if hits:
        return AnchorMatch(hits, 0.95, "prefix")

    def substring_hits(require_ratio: bool) -> List[int]:
        found = []
        for i in indices:
            line = stripped[i]
            for v in variants:
                if len(v) < config.substring_min_length or v not in line:
                    continue
                if require_ratio and len(v) < config.substring_min_ratio * len(line):
                    continue
                found.append(i)
                break
        return found

    hits = substring_hits(require_ratio=True)
    if hits:
        return AnchorMatch(hits, 0.92, "substring")
    hits = substring_hits(require_ratio=False)
    if len(hits) == 1:
        return AnchorMatch(hits, 0.9, "substring")

    if not config.allow_fuzzy:
        return None

    norm_target = normalize_for_fuzzy(target)
    norm = {i: normalize_for_fuzzy(lines[i]) for i in indices}
    hits = [i for i in indices if norm[i] == norm_target or norm[i].startswith(norm_target)]
    if hits:
        return AnchorMatch(hits, 0.97, "normalized")

    scored = []
    for i in indices:
        ratio = similarity_at_least(norm[i], norm_target, config.anchor_fuzzy_threshold)
        if ratio >= config.anchor_fuzzy_threshold:
            scored.append((i, ratio))
    if scored:
        best = max(r for _, r in scored)
        return AnchorMatch([i for i, r in scored if r >= best - _EPS], best, "fuzzy")
    return None


def _locate_terms(lines: Sequence[str], anchor: str, start: int, config: PatchConfig) -> Optional[int]:
    """Resolve ``"class Foo method"`` as successive narrowing phrases.

    The longest leading run of words that matches is taken first, then the
    rest is searched after it. Returns the line of the last phrase.
    """

    tokens = anchor.split()
    if len(tokens) < 2:
        return None
    strict = replace(config, allow_fuzzy=False)
    pos = start
    last: Optional[int] = None
    i = 0
    while i < len(tokens):
        for j in range(len(tokens), i, -1):
            if i == 0 and j == len(tokens):
                continue
            found = find_context_line(lines, " ".join(tokens[i:j]), pos, strict)
            if found is not None:
                last = found.lines[0]
                break
        else:
            return None
        pos = last + 1
        i = j
    return last


def _locate_anchor(lines: Sequence[str], anchor: str, start: int, config: PatchConfig) -> Tuple[List[int], float]:
    found = find_context_line(lines, anchor, start, config)
    if found is not None:
        return found.lines, found.confidence
    pos = _locate_terms(lines, anchor, start, config)
    if pos is not None:
        return [pos], TERM_CONFIDENCE
    return [], 0.0


def _nearest(positions: Sequence[int], target: int) -> List[int]:
    best = min(abs(p - target) for p in positions)
    return [p for p in positions if abs(p - target) == best]


def resolve_anchors(
    lines: Sequence[str],
    anchors: Sequence[str],
    hint_index: Optional[int] = None,
    config: Optional[PatchConfig] = None,
) -> AnchorResolution:
    """Resolve nested anchors; each is searched after the previous one.

    Args:
        lines: File lines without terminators.
        anchors: Anchor texts, outermost first.
        hint_index: 0-based line hint used to choose between several
            resolutions.
        config: Matching thresholds.

    Returns:
        An :class:`AnchorResolution` with either one ``position``, several
        ``candidates``, or the ``missing`` anchor.
    """

    config = config or DEFAULT_CONFIG
    if not anchors:
        return AnchorResolution()

    first_hits, first_conf = _locate_anchor(lines, anchors[0], 0, config)
    if not first_hits:
        return AnchorResolution(missing=anchors[0])

    finals: Dict[int, float] = {}
    missing: Optional[str] = None
    for hit in first_hits:
        pos, conf = hit, first_conf
        for anchor in anchors[1:]:
            nested, nested_conf = _locate_anchor(lines, anchor, pos + 1, config)
            if not nested:
                missing = anchor
                break
            pos, conf = nested[0], min(conf, nested_conf)
        else:
            finals.setdefault(pos, conf)

    if not finals:
        return AnchorResolution(missing=missing)

    positions = sorted(finals)
    if len(positions) > 1 and hint_index is not None:
        positions = _nearest(positions, hint_index)
    if len(positions) == 1:
        return AnchorResolution(position=positions[0], confidence=finals[positions[0]])
    return AnchorResolution(candidates=positions, confidence=min(finals.values()))


# ---------------------------------------------------------------------------
# Old-view search
# ---------------------------------------------------------------------------

@dataclass
class _SearchContext:
    anchor: Optional[AnchorResolution]
    hint_index: Optional[int]
    is_eof: bool
    config: PatchConfig


def old_view(hunk: Hunk) -> List[Segment]:
    """Split the hunk's Keep/Remove lines into segments at ellipsis wildcards."""

    segments: List[Segment] = [[]]
    for idx, edit in enumerate(hunk.edits):
        if edit.kind == EditKind.ELLIPSIS:
            if segments[-1]:
                segments.append([])
        elif edit.is_old:
            segments[-1].append((idx, edit.text))
    return [s for s in segments if s]


def _find_view(lines: Sequence[str], segments: List[Segment], start: int, config: PatchConfig) -> List[MatchCandidate]:
    # Placements of the first segment; later segments follow the first hit
    # after the previous one.
    head = seek_sequence(lines, [t for _, t in segments[0]], start, config)
    if head is None:
        return []

    found: List[MatchCandidate] = []
    for begin, confidence in zip(head.starts, head.confidences):
        positions = {idx: begin + k for k, (idx, _) in enumerate(segments[0])}
        cursor = begin + len(segments[0])
        for segment in segments[1:]:
            nxt = seek_sequence(lines, [t for _, t in segment], cursor, config)
            if nxt is None:
                break
            at = nxt.starts[0]
            positions.update({idx: at + k for k, (idx, _) in enumerate(segment)})
            cursor = at + len(segment)
            confidence = min(confidence, nxt.confidences[0])
        else:
            found.append(MatchCandidate(start=begin, confidence=confidence, positions=positions, strategy=head.strategy))
    return found


def _break_tie(candidates: List[MatchCandidate], ctx: _SearchContext) -> Optional[MatchCandidate]:
    """Choose between equally good placements using the hunk's other clues.

    Args:
        candidates: Two or more placements, in file order.
        ctx: Anchors, line hint and end-of-file flag of the hunk.

    Returns:
        The placement singled out by an ambiguous anchor, the line hint or
        the end-of-file marker (tried in that order), or None.
    """

    anchor = ctx.anchor
    if anchor is not None and anchor.candidates:
        picks: Dict[int, MatchCandidate] = {}
        for hit in anchor.candidates:
            following = [c for c in candidates if c.start >= hit]
            if following:
                picks.setdefault(following[0].start, following[0])
        if len(picks) == 1:
            return next(iter(picks.values()))

    if ctx.hint_index is not None:
        nearest = _nearest([c.start for c in candidates], ctx.hint_index)
        if len(nearest) == 1:
            return next(c for c in candidates if c.start == nearest[0])

    if ctx.is_eof:
        return candidates[-1]
    return None


def _select(
    lines: Sequence[str],
    segments: List[Segment],
    ctx: _SearchContext,
) -> Tuple[Optional[MatchCandidate], List[MatchCandidate]]:
    """Pick one placement for the hunk's full old view.

    A resolved anchor takes the first placement after it. Otherwise a
    unique placement wins, and several are handed to :func:`_break_tie`.

    Returns:
        ``(match, candidates)``; ``match`` is None when nothing or more than
        one undecidable placement was found.
    """

    anchor = ctx.anchor
    if anchor is not None and anchor.position is not None:
        after = _find_view(lines, segments, anchor.position, ctx.config)
        if after:
            return after[0], after

    candidates = _find_view(lines, segments, 0, ctx.config)
    if len(candidates) <= 1:
        return (candidates[0] if candidates else None), candidates
    return _break_tie(candidates, ctx), candidates


def _dropped_context(segments: List[Segment], view: List[Segment]) -> Tuple[List[str], List[str]]:
    # Old-view lines the narrower view left out, split around the view.
    kept = {idx for segment in view for idx, _ in segment}
    flat = segments[0]
    first, last = min(kept), max(kept)
    before = [text for idx, text in flat if idx < first]
    after = [text for idx, text in flat if idx > last]
    return before, after


def _context_fit(
    lines: Sequence[str],
    before: Sequence[str],
    after: Sequence[str],
    candidate: MatchCandidate,
    floor: int,
) -> Tuple[int, int]:
    """Score how well the left-out lines sit around ``candidate``.

    Each left-out line is looked for in order, walking away from the
    candidate (upwards no further than ``floor``).

    Returns:
        ``(found, gap)``: how many left-out lines were found, and how many
        unrelated file lines lie between them and the candidate.
    """

    found = gap = 0
    pos = candidate.start - 1
    for text in reversed(before):
        key = normalize_for_fuzzy(text)
        for j in range(pos, floor - 1, -1):
            if normalize_for_fuzzy(lines[j]) == key:
                found += 1
                gap += pos - j
                pos = j - 1
                break

    pos = candidate.end
    for text in after:
        key = normalize_for_fuzzy(text)
        for j in range(pos, len(lines)):
            if normalize_for_fuzzy(lines[j]) == key:
                found += 1
                gap += j - pos
                pos = j + 1
                break
    return found, gap


def _select_fallback(
    lines: Sequence[str],
    segments: List[Segment],
    view: List[Segment],
    ctx: _SearchContext,
) -> Tuple[Optional[MatchCandidate], List[MatchCandidate]]:
    """Pick one placement for a narrowed view of the hunk.

    A narrowed view matches more places than the full hunk did, so
    several placements are ranked by the context lines the view dropped:
    the placement with more of them nearby, then the closer ones, wins.

    Returns:
        ``(match, leaders)``; ``leaders`` are the best-ranked placements
        when they could not be told apart.
    """

    anchor = ctx.anchor
    floor = 0
    candidates: List[MatchCandidate] = []
    if anchor is not None and anchor.position is not None:
        floor = anchor.position
        candidates = _find_view(lines, view, floor, ctx.config)
    if not candidates:
        floor = 0
        candidates = _find_view(lines, view, 0, ctx.config)
    if len(candidates) <= 1:
        return (candidates[0] if candidates else None), candidates

    before, after = _dropped_context(segments, view)
    scored = [(_context_fit(lines, before, after, c, floor), c) for c in candidates]
    best = max((score for score, _ in scored), key=lambda s: (s[0], -s[1]))
    leaders = [c for score, c in scored if score == best]
    if len(leaders) == 1:
        return leaders[0], leaders
    return _break_tie(leaders, ctx), leaders


def _changed_lines_view(hunk: Hunk, segments: List[Segment]) -> Optional[List[Segment]]:
    if len(segments) != 1 or not hunk.has_context:
        return None
    flat = segments[0]
    removes = [k for k, (idx, _) in enumerate(flat) if hunk.edits[idx].kind == EditKind.REMOVE]
    if not removes or removes != list(range(removes[0], removes[-1] + 1)):
        return None
    return [[flat[k] for k in removes]]


def _collapsed_view(hunk: Hunk, segments: List[Segment]) -> Optional[List[Segment]]:
    if len(segments) != 1:
        return None
    flat = segments[0]
    reduced: Segment = []
    k = 0
    while k < len(flat):
        for size in range(min(len(reduced), len(flat) - k), 0, -1):
            block = flat[k : k + size]
            if all(hunk.edits[idx].kind == EditKind.KEEP for idx, _ in block) and [
                t for _, t in block
            ] == [t for _, t in reduced[-size:]]:
                k += size
                break
        else:
            reduced.append(flat[k])
            k += 1
    if len(reduced) == len(flat):
        return None
    return [reduced]


def _trimmed_views(hunk: Hunk, segments: List[Segment]) -> Iterator[List[Segment]]:
    if len(segments) != 1:
        return
    flat = segments[0]
    kinds = [hunk.edits[idx].kind for idx, _ in flat]
    lead = 0
    while lead < len(kinds) and kinds[lead] == EditKind.KEEP:
        lead += 1
    trail = 0
    while trail < len(kinds) - lead and kinds[-1 - trail] == EditKind.KEEP:
        trail += 1
    lead, trail = min(lead, MAX_TRIMMED_CONTEXT), min(trail, MAX_TRIMMED_CONTEXT)

    for total in range(1, lead + trail + 1):
        for front in range(0, min(total, lead) + 1):
            back = total - front
            if back > trail:
                continue
            view = flat[front : len(flat) - back]
            if view:
                yield [view]


def _fallback_views(hunk: Hunk, segments: List[Segment]) -> Iterator[Tuple[str, List[Segment]]]:
    changed = _changed_lines_view(hunk, segments)
    if changed is not None:
        yield "changed lines", changed
    collapsed = _collapsed_view(hunk, segments)
    if collapsed is not None:
        yield "collapsed context", collapsed
    for view in _trimmed_views(hunk, segments):
        yield "trimmed context", view


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _closest_window(lines: Sequence[str], pattern: Sequence[str], start: int) -> Optional[Tuple[int, float]]:
    m = len(pattern)
    norm_pattern = [normalize_for_fuzzy(p) for p in pattern]
    best: Optional[Tuple[int, float]] = None
    for s in range(max(start, 0), len(lines) - m + 1):
        score = sum(similarity(normalize_for_fuzzy(lines[s + j]), norm_pattern[j]) for j in range(m)) / m
        if best is None or score > best[1] + _EPS:
            best = (s, score)
    return best


def _diagnose(
    lines: Sequence[str],
    segments: List[Segment],
    ctx: _SearchContext,
    path: Optional[str],
    number: int,
) -> PatchError:
    pattern = [t for _, t in segments[0]]
    start = 0
    if ctx.anchor is not None and ctx.anchor.position is not None:
        start = ctx.anchor.position
    elif ctx.hint_index is not None and 0 <= ctx.hint_index < len(lines):
        start = ctx.hint_index

    best = _closest_window(lines, pattern, 0)
    if best is not None and best[1] >= STALE_SIMILARITY:
        at, _ = best
        actual = list(lines[at : at + len(pattern)])
        changed = [
            at + j + 1
            for j, (expected, found) in enumerate(zip(pattern, actual))
            if normalize_for_fuzzy(expected) != normalize_for_fuzzy(found)
        ]
        return StaleContentError(
            f"Hunk {number}: content at line {at + 1} does not match the hunk "
            f"({len(changed)} of {len(pattern)} lines differ)",
            path=path,
            hint="The file may have changed since it was read. Re-read it and regenerate the hunk.\n\n"
            + _format_context_mismatch(pattern, lines, at),
            expected=pattern,
            actual=actual,
            changed_lines=changed,
        )

    return NoMatchError(
        f"Hunk {number}: could not find the lines to change",
        path=path,
        hint=_format_context_mismatch(pattern, lines, start),
    )


def _locate_insertion(
    lines: Sequence[str],
    hunk: Hunk,
    anchor: Optional[AnchorResolution],
    path: Optional[str],
    number: int,
) -> MatchCandidate:
    n = len(lines)
    if anchor is not None:
        if anchor.position is not None:
            at = anchor.position + 1
            return MatchCandidate(start=at, insert_at=at, confidence=anchor.confidence, strategy="anchor")
        if anchor.candidates:
            raise AmbiguousMatchError(
                f"Hunk {number}: ambiguous anchor, found {len(anchor.candidates)} occurrences",
                path=path,
                hint="Use a more specific @@ anchor:\n" + _format_ambiguous_locations(lines, anchor.candidates),
                count=len(anchor.candidates),
                candidate_lines=[c + 1 for c in anchor.candidates],
            )
        raise NoMatchError(
            f"Hunk {number}: anchor not found: {anchor.missing!r}",
            path=path,
            hint="Copy the @@ anchor text exactly from a line of the file",
        )

    if hunk.is_eof:
        return MatchCandidate(start=n, insert_at=n, strategy="end of file")

    if hunk.hint is not None:
        at = hunk.hint.insert_index
        if not 0 <= at <= n:
            raise InvalidAnchorError(
                f"Hunk {number}: line {at + 1} is outside the file ({n} lines)",
                path=path,
                hint="Use a line number within the file or '*** End of File' to append",
            )
        return MatchCandidate(start=at, insert_at=at, strategy="line hint")

    raise InvalidAnchorError(
        f"Hunk {number}: nothing locates the inserted lines",
        path=path,
        hint="Add a context line, an @@ anchor, a line number, or '*** End of File' to append",
    )


def locate_hunk(
    lines: Sequence[str],
    hunk: Hunk,
    config: Optional[PatchConfig] = None,
    *,
    path: Optional[str] = None,
    number: int = 1,
) -> MatchCandidate:
    """Return the single place ``hunk`` applies to in ``lines``.

    The full old view is tried first, then the narrower fallback views.

    Args:
        lines: Original file lines without terminators.
        hunk: The parsed hunk.
        config: Matching thresholds.
        path: Used in error reports.
        number: 1-based hunk number, used in notes and errors.

    Returns:
        The match, with notes for anything a reviewer should know about.

    Raises:
        AmbiguousMatchError: More than one equally good place.
        StaleContentError: The closest region differs from the hunk.
        NoMatchError: Nothing resembling the hunk exists.
        InvalidAnchorError: A pure insertion has no usable location.
    """

    config = config or DEFAULT_CONFIG
    hint_index = hunk.hint.old_index if hunk.hint is not None else None
    anchor = resolve_anchors(lines, hunk.anchors, hint_index, config) if hunk.anchors else None

    if hunk.is_insertion:
        return _locate_insertion(lines, hunk, anchor, path, number)

    ctx = _SearchContext(anchor=anchor, hint_index=hint_index, is_eof=hunk.is_eof, config=config)
    segments = old_view(hunk)
    match, candidates = _select(lines, segments, ctx)

    if match is None:
        for label, view in _fallback_views(hunk, segments):
            match, leaders = _select_fallback(lines, segments, view, ctx)
            if match is not None:
                match.strategy = f"{label}/{match.strategy}"
                match.confidence = min(match.confidence, FALLBACK_CONFIDENCE)
                match.notes.append(f"Hunk {number}: located by {label} only")
                break
            if len(leaders) > 1 and len(candidates) <= 1:
                candidates = leaders

    if match is None:
        if len(candidates) > 1:
            starts = [c.start for c in candidates]
            raise AmbiguousMatchError(
                f"Hunk {number}: ambiguous match, found {len(candidates)} occurrences",
                path=path,
                hint="Add more context lines or an @@ anchor to pick one:\n"
                + _format_ambiguous_locations(lines, starts),
                count=len(candidates),
                candidate_lines=[s + 1 for s in starts],
            )
        raise _diagnose(lines, segments, ctx, path, number)

    if anchor is not None:
        if anchor.missing is not None:
            match.notes.append(f"Hunk {number}: anchor {anchor.missing!r} not found; located by content")
        elif anchor.position is not None and match.start < anchor.position:
            match.notes.append(f"Hunk {number}: matched above its anchor at line {anchor.position + 1}")
    if match.is_fuzzy:
        match.notes.append(
            f"Hunk {number}: {match.strategy} match at line {match.start + 1} (confidence {match.confidence:.2f})"
        )
    return match
