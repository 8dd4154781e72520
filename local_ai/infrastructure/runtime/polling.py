"""
Poll policy - Fixed-interval readiness polling for the runtime server.
The clock is injectable so tests never sleep.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ...domain.interfaces.runtime_api import Sleeper


@dataclass
class PollPolicy:
    """Configuration for readiness polling: no backoff, bounded attempts."""
    max_attempts: int = 30
    interval: float = 1.0
    sleep: Sleeper = field(default=time.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")

    @classmethod
    def from_settings(cls, runtime_settings, sleep: Optional[Sleeper] = None) -> PollPolicy:
        return cls(
            max_attempts=runtime_settings.startup_attempts,
            interval=runtime_settings.startup_interval_s,
            sleep=sleep or time.sleep,
        )


@dataclass
class PollOutcome:
    """Result of a polling run."""
    succeeded: bool
    attempts: int
    stopped_early: bool = False

    def __bool__(self) -> bool:
        return self.succeeded


def poll_until(
    check: Callable[[], bool],
    policy: PollPolicy,
    should_stop: Optional[Callable[[], bool]] = None,
    logger: Optional[logging.Logger] = None
) -> PollOutcome:
    """Sleep one interval, then check; repeat up to ``max_attempts`` times.

    ``should_stop`` lets the caller give up early (e.g. the process died).
    """
    logger = logger or logging.getLogger(__name__)
    for attempt in range(1, policy.max_attempts + 1):
        policy.sleep(policy.interval)
        if check():
            logger.debug(f"Poll succeeded on attempt {attempt}")
            return PollOutcome(succeeded=True, attempts=attempt)
        if should_stop is not None and should_stop():
            logger.debug(f"Poll stopped early after attempt {attempt}")
            return PollOutcome(succeeded=False, attempts=attempt, stopped_early=True)
    return PollOutcome(succeeded=False, attempts=policy.max_attempts)
