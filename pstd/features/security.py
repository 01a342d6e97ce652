"""
Submission rate limiting for the paste server.

This module provides the sliding-window rate limiter applied to paste
submissions. Each client host keeps the timestamps of its most recent
attempts; once the window is full and spans less than the configured time,
further submissions are refused with the number of seconds to wait.
"""

"""
Copyright 2025 Chris Bunting
File: security.py | Purpose: Rate limiting for paste submissions
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-01 - Chris Bunting: Initial implementation
"""

import math
import time
import logging
from collections import deque
from typing import Callable, Deque, Dict, List

logger = logging.getLogger("pstd.ratelimit")


class RateLimiter:
    """Sliding-window rate limiter keyed by client host.

    Every call to ``check`` is recorded, including calls that end up being
    refused. A client that keeps submitting while limited therefore keeps
    its window full and stays limited; this is intended.

    Attributes:
        samples: Number of attempts kept per client (0 disables limiting)
        window: Time span in seconds the samples must exceed (0 disables)
        clock: Callable returning the current time in seconds
    """

    def __init__(self, samples: int, window: float, clock: Callable[[], float] = time.monotonic):
        """Initialize rate limiter.

        Args:
            samples: Attempts kept per client
            window: Minimum span in seconds covered by ``samples`` attempts
            clock: Time source, overridable for tests

        Raises:
            ValueError: If either value is negative
        """
        if samples < 0:
            raise ValueError("Sample count must not be negative")
        if window < 0:
            raise ValueError("Time span must not be negative")

        self.samples = samples
        self.window = window
        self.clock = clock
        self._history: Dict[str, Deque[float]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.samples and self.window)

    def check(self, client: str) -> int:
        """Register a submission attempt and return the required wait.

        Args:
            client: Client identity (remote host)

        Returns:
            0 if the client may submit now, otherwise the whole number of
            seconds until it may submit again
        """
        if not self.enabled:
            return 0

        now = self.clock()
        history = self._history.get(client)
        if history is None:
            history = self._history[client] = deque(maxlen=self.samples)

        # deque(maxlen=...) evicts the oldest entry on append
        history.append(now)

        if len(history) < self.samples:
            return 0
        if history[-1] - history[0] >= self.window:
            return 0

        # Once the next attempt evicts history[0], history[1] becomes the oldest
        reference = history[1] if self.samples > 1 else history[0]
        wait = self.window - (now - reference)
        logger.debug("Client %s limited for %.2fs", client, wait)
        return max(1, math.ceil(wait))

    def history(self, client: str) -> List[float]:
        """Return a copy of the recorded attempt times for ``client``."""
        return list(self._history.get(client, ()))

    def snapshot(self) -> Dict[str, List[float]]:
        """Return all rate records, for diagnostics."""
        return {client: list(times) for client, times in self._history.items()}

    def __len__(self) -> int:
        return len(self._history)
