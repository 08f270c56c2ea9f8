"""Time helpers."""

from __future__ import annotations

import subprocess
import time
from datetime import datetime, timezone
from typing import Optional


def current_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    git = git_short_hash()
    return f"{ts}-{git}" if git else ts


def git_short_hash() -> str:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    return result.stdout.decode().strip()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deadline:
    """Monotonic run budget; ``None`` seconds means unbounded."""

    def __init__(self, seconds: Optional[float] = None) -> None:
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0
