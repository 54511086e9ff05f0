#!/usr/bin/env python3
"""Pre-flight throttle on the GitHub core API quota.

Before a remote call the guard reads the current quota. Above the threshold it
returns at once; otherwise it sleeps until the reported reset and checks
again. A reset time already in the past (GitHub sometimes reports one right
after a window rolled over) is replaced by a fixed fallback delay so the guard
never spins.

Waiting is a loop, unbounded unless ``max_waits`` is set. A failing quota
query is logged and ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from release_sync.utils.cancellation import CancelToken
from release_sync.utils.errors import OperationCancelled
from release_sync.utils.metrics import incr
from release_sync.utils.publish_models import QuotaState


logger = logging.getLogger(__name__)

QuotaFetcher = Callable[[CancelToken], QuotaState]
Sleeper = Callable[[CancelToken, float], None]


def _token_sleep(cancel: CancelToken, seconds: float) -> None:
    cancel.sleep(seconds)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaGuard:
    def __init__(
        self,
        fetch_quota: QuotaFetcher,
        *,
        threshold: int = 100,
        fallback_sleep_s: float = 15.0,
        max_waits: int = 0,
        backoff_factor: float = 1.0,
        sleep: Optional[Sleeper] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create a guard.

        Args:
            fetch_quota: Reads the live quota; must not itself be guarded.
            threshold: Remaining calls above which no wait happens.
            fallback_sleep_s: Delay used when the reset time is not in the future.
            max_waits: Give up waiting after this many sleeps (0 = never).
            backoff_factor: Multiplier applied to the fallback delay after each use.
            sleep: Sleep implementation, interruptible through the cancel token.
            clock: Returns the current UTC time.
        """
        self.fetch_quota = fetch_quota
        self.threshold = threshold
        self.fallback_sleep_s = fallback_sleep_s
        self.max_waits = max_waits
        self.backoff_factor = backoff_factor
        self._sleep = sleep or _token_sleep
        self._clock = clock or _utcnow

    def wait(self, cancel: Optional[CancelToken] = None) -> float:
        """Block until the quota allows another call.

        Returns:
            Total seconds slept.

        Raises:
            OperationCancelled: If the token fires during a check or a sleep.
        """
        cancel = cancel or CancelToken()
        slept = 0.0
        waits = 0
        fallback = self.fallback_sleep_s
        while True:
            cancel.raise_if_cancelled("quota check")
            try:
                quota = self.fetch_quota(cancel)
            except OperationCancelled:
                raise
            except Exception as e:  # noqa: BLE001
                logger.warning(f"could not check rate limits, hoping for the best... error={e}")
                incr("quota.check_failed")
                return slept

            if quota.remaining > self.threshold:
                return slept

            if self.max_waits and waits >= self.max_waits:
                logger.warning(
                    f"still close to rate limiting after {waits} waits, continuing anyway: remaining={quota.remaining}"
                )
                return slept

            delay = (quota.reset_at - self._clock()).total_seconds()
            if delay <= 0:
                delay = fallback
                fallback = fallback * self.backoff_factor

            logger.warning(
                f"token too close to rate limiting, will sleep for {delay:.1f}s before continuing... "
                f"remaining={quota.remaining} reset_at={quota.reset_at.isoformat()}"
            )
            incr("quota.wait", value=round(delay, 3), remaining=quota.remaining)
            self._sleep(cancel, delay)
            slept += delay
            waits += 1
