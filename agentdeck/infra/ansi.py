"""Terminal escape-sequence stripping shared by every output parser."""

from __future__ import annotations

import re

# CSI / charset / DEC sequences introduced by 7-bit ESC or the 8-bit CSI byte.
ANSI_PATTERN = re.compile(
    r"[\x1b\x9b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]"
)

# Operating system commands (window titles, hyperlinks), BEL or ST terminated.
OSC_PATTERN = re.compile(r"(?:\x1b\]|\x9d)[^\x07\x1b\x9c]*(?:\x07|\x1b\\|\x9c)")


def strip_ansi(text: str) -> str:
    """Remove escape sequences so version/JSON parsing sees plain text."""
    return ANSI_PATTERN.sub("", OSC_PATTERN.sub("", text))


def normalize_output(text: str) -> str:
    """Strip escapes and normalize PTY line endings to ``\\n``."""
    return strip_ansi(text).replace("\r\n", "\n").replace("\r", "\n")


def first_line_preview(output: str, limit: int = 200) -> str:
    """First non-empty line, truncated for log previews."""
    for line in output.splitlines():
        line = line.strip()
        if line:
            return f"{line[:limit]}..." if len(line) > limit else line
    return ""
