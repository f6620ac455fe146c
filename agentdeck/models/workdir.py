"""Git working directory model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentdeck.infra.git import GitCommandContext


@dataclass(frozen=True)
class GitWorkdirContext:
    """A verified working directory and the Git handle cached for it."""

    resolved_path: str  # canonical absolute path
    authorized: bool  # False when admitted only by the .git check
    git: GitCommandContext
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        return Path(self.resolved_path).name
