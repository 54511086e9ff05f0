#!/usr/bin/env python3
"""Cancel token shared by every remote call of a publishing run.

A token combines an explicit cancel flag (``threading.Event``) with an
optional absolute deadline on the monotonic clock. Sleeps wait on the event so
a cancel from another thread wakes them immediately.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from release_sync.utils.errors import OperationCancelled


class CancelToken:
    def __init__(self, deadline_s: Optional[float] = None) -> None:
        """Create a token.

        Args:
            deadline_s: Seconds from now after which the token counts as
                cancelled. ``None`` means no deadline.
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + deadline_s if deadline_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, what: str = "operation") -> None:
        if self.cancelled:
            raise OperationCancelled(f"{what} cancelled")

    def timeout(self, default_s: float) -> float:
        """Per-request timeout bounded by the remaining deadline."""
        left = self.remaining()
        if left is None:
            return default_s
        return max(0.001, min(default_s, left))

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds`` unless cancelled first.

        Raises:
            OperationCancelled: If the token is cancelled or the deadline
                passes before the sleep completes.
        """
        self.raise_if_cancelled("sleep")
        left = self.remaining()
        if left is not None and left < seconds:
            self._event.wait(left)
            raise OperationCancelled("deadline exceeded while waiting")
        if self._event.wait(seconds):
            raise OperationCancelled("sleep cancelled")
