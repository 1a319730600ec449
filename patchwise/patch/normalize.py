"""Line normalisation and similarity helpers used by the matchers."""

from __future__ import annotations

import re
from difflib import SequenceMatcher

_WS_RE = re.compile(r"[ \t]+")

# Typographic punctuation that models like to emit in place of ASCII.
_UNICODE_PUNCT = {
    **{cp: "-" for cp in range(0x2010, 0x2016)},  # hyphens and dashes
    0x2212: "-",  # minus sign
    0x2018: "'",
    0x2019: "'",
    0x201A: "'",
    0x201B: "'",
    0x2032: "'",
    0x201C: '"',
    0x201D: '"',
    0x201E: '"',
    0x201F: '"',
    0x2033: '"',
    0x00A0: " ",  # no-break space
    0x2002: " ",
    0x2003: " ",
    0x2004: " ",
    0x2005: " ",
    0x2006: " ",
    0x2007: " ",
    0x2008: " ",
    0x2009: " ",
    0x200A: " ",
    0x202F: " ",
    0x205F: " ",
    0x3000: " ",
    0x2026: "...",  # horizontal ellipsis
}


def normalize_unicode(line: str) -> str:
    """Replace typographic dashes, quotes and spaces with ASCII equivalents."""

    return line.translate(_UNICODE_PUNCT)


def collapse_ws(line: str) -> str:
    """Collapse runs of spaces and tabs into one space and trim."""

    return _WS_RE.sub(" ", line).strip()


def normalize_for_fuzzy(line: str) -> str:
    return collapse_ws(normalize_unicode(line))


def strip_all_ws(line: str) -> str:
    """Drop every whitespace character, for character-level comparison."""

    return "".join(normalize_unicode(line).split())


def similarity(a: str, b: str) -> float:
    """Return a 0..1 similarity ratio between two strings."""

    if a == b:
        return 1.0
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    return matcher.ratio()


def similarity_at_least(a: str, b: str, floor: float) -> float:
    """Like :func:`similarity` but returns 0.0 early when ``floor`` is out of reach."""

    if a == b:
        return 1.0
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    if matcher.real_quick_ratio() < floor or matcher.quick_ratio() < floor:
        return 0.0
    return matcher.ratio()
