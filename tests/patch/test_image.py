"""Tests for FileImage byte-exact serialisation."""
import pytest

from patchwise.patch.image import CRLF, LF, UTF8_BOM, FileImage, detect_line_ending


class TestDetectLineEnding:
    def test_lf(self) -> None:
        assert detect_line_ending("a\nb\n") == LF

    def test_crlf(self) -> None:
        assert detect_line_ending("a\r\nb\r\n") == CRLF

    def test_mixed_is_lf(self) -> None:
        assert detect_line_ending("a\r\nb\n") == LF

    def test_no_newline(self) -> None:
        assert detect_line_ending("abc") == LF


class TestFileImage:
    def test_lf_round_trip(self) -> None:
        image = FileImage.from_bytes(b"a\nb\n")
        assert image.lines == ["a", "b"]
        assert image.eol == LF
        assert image.trailing_newline is True
        assert image.to_bytes() == b"a\nb\n"

    def test_crlf_round_trip(self) -> None:
        image = FileImage.from_bytes(b"a\r\nb\r\n")
        assert image.lines == ["a", "b"]
        assert image.eol == CRLF
        assert image.to_bytes() == b"a\r\nb\r\n"

    def test_bom_is_kept(self) -> None:
        data = UTF8_BOM + b"x = 1\n"
        image = FileImage.from_bytes(data)
        assert image.has_bom is True
        assert image.lines == ["x = 1"]
        assert image.to_bytes() == data

    def test_missing_trailing_newline(self) -> None:
        image = FileImage.from_bytes(b"a\nb")
        assert image.trailing_newline is False
        assert image.to_bytes() == b"a\nb"

    def test_empty(self) -> None:
        image = FileImage.from_bytes(b"")
        assert image.lines == []
        assert len(image) == 0
        assert image.to_bytes() == b""

    def test_mixed_endings_keep_carriage_returns(self) -> None:
        image = FileImage.from_bytes(b"a\r\nb\n")
        assert image.lines == ["a\r", "b"]
        assert image.to_bytes() == b"a\r\nb\n"

    def test_invalid_utf8_raises(self) -> None:
        with pytest.raises(UnicodeDecodeError):
            FileImage.from_bytes(b"\xff\xfe\x00")

    def test_with_lines_keeps_format(self) -> None:
        image = FileImage.from_bytes(UTF8_BOM + b"a\r\nb")
        updated = image.with_lines(["a", "B", "c"])
        assert updated.to_bytes() == UTF8_BOM + b"a\r\nB\r\nc"
        assert image.lines == ["a", "b"]
