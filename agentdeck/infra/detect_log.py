"""Append-only diagnostics log for CLI detection.

Detection failures are overwhelmingly PATH/environment mismatches, so every
failed attempt is recorded with the shell and PATH that were actually used.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from agentdeck.infra.events import ObserverHub, Subscription

logger = logging.getLogger(__name__)

LogLevel = Literal["debug", "warn"]

_CHANNEL = "cli-detect"


@dataclass(frozen=True)
class DetectLogRecord:
    level: LogLevel
    message: str
    details: dict[str, Any] | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_line(self) -> str:
        detail_text = f" {json.dumps(self.details, default=str)}" if self.details else ""
        return f"[{self.timestamp}] [{self.level}] {self.message}{detail_text}\n"

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class DetectionLog:
    """Line-oriented log file, created lazily, optionally mirrored to observers.

    Debug records are only produced when the debug flag is on; warn records
    always reach the file. Live mirroring also requires the debug flag.
    """

    def __init__(self, path: Path, debug_enabled: bool = False) -> None:
        self.path = path
        self.debug_enabled = debug_enabled
        self._observers: ObserverHub[str] = ObserverHub()
        self._file_error_reported = False

    def subscribe(self, callback: Callable[[DetectLogRecord], None]) -> Subscription:
        return self._observers.subscribe(_CHANNEL, callback)

    def debug(self, message: str, details: dict[str, Any] | None = None) -> None:
        if not self.debug_enabled:
            return
        self._write("debug", message, details)
        logger.debug("[cli-detect] %s %s", message, details or "")

    def warn(self, message: str, details: dict[str, Any] | None = None) -> None:
        self._write("warn", message, details)
        logger.warning("[cli-detect] %s %s", message, details or "")

    def _write(self, level: LogLevel, message: str, details: dict[str, Any] | None) -> None:
        record = DetectLogRecord(level=level, message=message, details=details)
        if self.debug_enabled:
            self._observers.emit(_CHANNEL, record)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(record.to_line())
        except OSError as e:
            if not self._file_error_reported:
                self._file_error_reported = True
                logger.warning("Failed to write %s: %s", self.path, e)
