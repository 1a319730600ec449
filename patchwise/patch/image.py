"""In-memory line image of a text file.

A :class:`FileImage` splits decoded text into lines without their
terminators and remembers everything needed to serialise it back
byte-for-byte: the line-ending style, a leading UTF-8 BOM, and whether the
last line was terminated.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List

UTF8_BOM: bytes = b"\xef\xbb\xbf"

LF = "\n"
CRLF = "\r\n"


def detect_line_ending(text: str) -> str:
    """Return CRLF when every newline in ``text`` is CRLF, else LF.

    Files with mixed endings are treated as LF; their stray carriage returns
    stay on the line content, which keeps re-serialisation exact.
    """

    newlines = text.count("\n")
    if newlines and text.count("\r\n") == newlines:
        return CRLF
    return LF


@dataclass
class FileImage:
    lines: List[str] = field(default_factory=list)
    eol: str = LF
    has_bom: bool = False
    trailing_newline: bool = True

    @classmethod
    def from_text(cls, text: str, *, has_bom: bool = False) -> "FileImage":
        eol = detect_line_ending(text)
        if eol == CRLF:
            text = text.replace(CRLF, LF)
        if not text:
            return cls(lines=[], eol=eol, has_bom=has_bom, trailing_newline=True)
        trailing = text.endswith(LF)
        if trailing:
            text = text[:-1]
        return cls(lines=text.split(LF), eol=eol, has_bom=has_bom, trailing_newline=trailing)

    @classmethod
    def from_bytes(cls, data: bytes) -> "FileImage":
        """Decode UTF-8 bytes, remembering a leading BOM.

        Raises:
            UnicodeDecodeError: ``data`` is not valid UTF-8.
        """

        has_bom = data.startswith(UTF8_BOM)
        if has_bom:
            data = data[len(UTF8_BOM) :]
        return cls.from_text(data.decode("utf-8"), has_bom=has_bom)

    def to_text(self) -> str:
        if not self.lines:
            return ""
        text = LF.join(self.lines)
        if self.trailing_newline:
            text += LF
        if self.eol != LF:
            text = text.replace(LF, self.eol)
        return text

    def to_bytes(self) -> bytes:
        data = self.to_text().encode("utf-8")
        if self.has_bom:
            data = UTF8_BOM + data
        return data

    def with_lines(self, lines: List[str]) -> "FileImage":
        """Return a copy holding ``lines`` with the same serialisation settings."""

        return replace(self, lines=list(lines))

    def __len__(self) -> int:
        return len(self.lines)
