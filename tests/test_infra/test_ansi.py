"""Tests for escape-sequence stripping helpers."""

from agentdeck.infra.ansi import first_line_preview, normalize_output, strip_ansi


class TestStripAnsi:
    def test_colors(self):
        assert strip_ansi("\x1b[1;32m1.2.3\x1b[0m") == "1.2.3"

    def test_8bit_csi(self):
        assert strip_ansi("\x9b31mred\x9b0m") == "red"

    def test_cursor_and_private_modes(self):
        assert strip_ansi("\x1b[?25lhello\x1b[?25h\x1b[2K") == "hello"

    def test_osc_title(self):
        assert strip_ansi("\x1b]0;my title\x07done") == "done"

    def test_plain_text_untouched(self):
        assert strip_ansi("claude 1.0.0 (Claude Code)") == "claude 1.0.0 (Claude Code)"


class TestNormalize:
    def test_crlf(self):
        assert normalize_output("a\r\nb\rc") == "a\nb\nc"

    def test_preview_skips_blank_lines(self):
        assert first_line_preview("\n\n  v1.2.3  \nmore") == "v1.2.3"

    def test_preview_truncates(self):
        preview = first_line_preview("x" * 250)
        assert preview == "x" * 200 + "..."

    def test_preview_empty(self):
        assert first_line_preview("") == ""
