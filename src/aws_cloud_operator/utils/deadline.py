"""Per-pass deadlines for reconciliation."""

from __future__ import annotations

import os
import time

from ..errors import DeadlineExceededError

DEFAULT_RECONCILE_TIMEOUT_SECONDS = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "120"))


class Deadline:
    """Bounds the total time one reconciliation pass may spend calling AWS."""

    def __init__(self, seconds: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS) -> None:
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(self.expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        """Raise if the deadline passed before ``operation`` could start."""
        if self.expired():
            raise DeadlineExceededError(
                f"reconciliation deadline of {self.seconds:g}s exceeded before {operation}"
            )
