"""Indentation reconciliation between a diff and the file it targets.

Models frequently reproduce a block at the wrong depth, or with tabs where the
file uses spaces. When a hunk is matched leniently, the Add lines are shifted
by the same amount the matched lines were off by, and their leading
whitespace is rewritten into the file's indentation character.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import gcd
from typing import Iterable, List, Optional, Sequence, Tuple

DEFAULT_INDENT_UNIT = 4


def leading_ws(line: str) -> str:
    return line[: len(line) - len(line.lstrip(" \t"))]


def indent_width(line: str) -> int:
    return len(leading_ws(line))


@dataclass(frozen=True)
class IndentProfile:
    """Indentation style observed over a set of lines.

    ``char`` is ``" "`` or ``"\\t"`` (the majority when ``mixed``) or None when
    no line is indented. ``unit`` is the GCD of indentation widths.
    """

    char: Optional[str] = None
    unit: int = 0
    mixed: bool = False


def indent_profile(lines: Iterable[str]) -> IndentProfile:
    """Summarise how ``lines`` are indented.

    Blank and unindented lines are ignored. A line counts towards tabs when
    its leading whitespace holds a tab, and towards spaces when it holds a
    space, so one line can count for both.

    Args:
        lines: Lines without terminators.

    Returns:
        The majority indent character, the GCD of indent widths, and
        whether both characters were seen.
    """

    spaces = tabs = 0
    unit = 0
    for line in lines:
        if not line.strip():
            continue
        ws = leading_ws(line)
        if not ws:
            continue
        n_tabs = ws.count("\t")
        if n_tabs:
            tabs += 1
        if n_tabs != len(ws):
            spaces += 1
        unit = gcd(unit, len(ws))
    if not spaces and not tabs:
        return IndentProfile()
    char = "\t" if tabs > spaces else " "
    return IndentProfile(char=char, unit=unit, mixed=bool(spaces and tabs))


def indent_delta(diff_line: str, file_line: str) -> Optional[int]:
    """Return how much deeper ``file_line`` is indented than ``diff_line``.

    Blank lines carry no indentation information and yield None.
    """

    if not diff_line.strip() or not file_line.strip():
        return None
    return indent_width(file_line) - indent_width(diff_line)


def shift_indent(line: str, delta: int, char: str = " ") -> str:
    """Indent ``line`` by ``delta`` characters, or dedent when negative.

    Dedenting never removes more than the existing leading whitespace.
    Blank lines are returned unchanged.
    """

    if not line.strip() or delta == 0:
        return line
    if delta > 0:
        return char * delta + line
    ws = leading_ws(line)
    return ws[min(-delta, len(ws)) :] + line[len(ws) :]


def convert_indent(line: str, to_char: str, unit: int) -> str:
    """Rewrite the leading whitespace of ``line`` using ``to_char`` only.

    Args:
        line: The line to convert.
        to_char: ``" "`` or ``"\\t"``.
        unit: Spaces per tab; :data:`DEFAULT_INDENT_UNIT` when 0.

    Returns:
        The line with converted indentation. Spaces left over after whole
        tabs stay as spaces.
    """

    ws = leading_ws(line)
    if not ws:
        return line
    unit = unit or DEFAULT_INDENT_UNIT
    if to_char == " ":
        new_ws = ws.replace("\t", " " * unit)
    else:
        n_spaces = ws.count(" ")
        new_ws = "\t" * (ws.count("\t") + n_spaces // unit) + " " * (n_spaces % unit)
    return new_ws + line[len(ws) :]


def _space_unit_for(pairs: Sequence[Tuple[str, str]], fallback: int) -> int:
    """Infer how many file spaces one diff tab stands for."""

    ratios = set()
    for diff_line, file_line in pairs:
        dw, fw = indent_width(diff_line), indent_width(file_line)
        if dw and fw and fw % dw == 0:
            ratios.add(fw // dw)
    if len(ratios) == 1:
        return ratios.pop()
    return fallback or DEFAULT_INDENT_UNIT


def _tab_width_for(profile: IndentProfile) -> int:
    """Spaces per tab when converting a space-indented diff to tabs."""

    if profile.char == " " and profile.unit >= 2:
        return profile.unit
    return DEFAULT_INDENT_UNIT


def is_reindent(removed: Sequence[str], added: Sequence[str]) -> bool:
    """True when the hunk only changes the indentation of its lines."""

    if not removed or len(removed) != len(added):
        return False
    return [r.strip() for r in removed] == [a.strip() for a in added]


def reconcile_indentation(
    pairs: Sequence[Tuple[str, str, bool]],
    added: Sequence[str],
    file_profile: IndentProfile,
) -> List[str]:
    """Adjust Add lines to the indentation of the lines the hunk matched.

    Args:
        pairs: ``(diff_text, file_text, is_remove)`` for every matched
            Keep/Remove line, in hunk order.
        added: Add line texts as written in the diff.
        file_profile: Indentation profile of the whole file, used when the
            matched lines themselves are not indented.

    Returns:
        The Add lines, re-indented.
    """

    added = list(added)
    if not added:
        return added
    if all(d == f for d, f, _ in pairs):
        target = file_profile.char
        if target is None or indent_profile(added).char in (None, target):
            return added

    removed = [d for d, _, is_remove in pairs if is_remove]
    if is_reindent(removed, added):
        return added

    actual = indent_profile(f for _, f, _ in pairs)
    target = actual.char or file_profile.char
    unit = actual.unit or file_profile.unit

    diff_side = [d for d, _, _ in pairs] + added
    diff_profile = indent_profile(diff_side)
    pair_texts = [(d, f) for d, f, _ in pairs]
    removes = [is_remove for _, _, is_remove in pairs]

    if target and diff_profile.char and diff_profile.char != target and not diff_profile.mixed:
        if target == " ":
            unit = _space_unit_for(pair_texts, unit)
        else:
            unit = _tab_width_for(diff_profile)
        pair_texts = [(convert_indent(d, target, unit), f) for d, f in pair_texts]
        added = [convert_indent(a, target, unit) for a in added]

    deltas = []
    remove_deltas = []
    for (d, f), is_remove in zip(pair_texts, removes):
        delta = indent_delta(d, f)
        if delta is None:
            continue
        deltas.append(delta)
        if is_remove:
            remove_deltas.append(delta)

    delta = 0
    if deltas and len(set(deltas)) == 1:
        delta = deltas[0]
    elif remove_deltas and len(set(remove_deltas)) == 1:
        delta = remove_deltas[0]

    char = target or " "
    added = [shift_indent(a, delta, char) for a in added]

    if target == " ":
        added = [convert_indent(a, " ", unit) if "\t" in leading_ws(a) else a for a in added]
    elif target == "\t":
        # Only whole runs of spaces are converted; "\t * " style alignment stays.
        space_unit = _tab_width_for(diff_profile)
        added = [
            convert_indent(a, "\t", space_unit)
            if "\t" not in leading_ws(a) and indent_width(a) >= space_unit
            else a
            for a in added
        ]
    return added
