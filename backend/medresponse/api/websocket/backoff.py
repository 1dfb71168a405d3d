"""
Client reconnect schedule.

Browser clients retry a dropped relay connection with exponential backoff and
give up after a fixed number of attempts. The schedule is computed here and
sent in the ``connected`` greeting so every client follows the same policy.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconnectPolicy:
    base_delay: float = 3.0
    max_attempts: int = 5
    max_delay: float = 60.0

    def delays(self) -> list[float]:
        """Seconds to wait before attempt 1..max_attempts.

        The first retry waits half the base delay, each later one doubles,
        and no wait exceeds ``max_delay``.
        """
        return [
            min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
            for attempt in range(self.max_attempts)
        ]

    def as_dict(self) -> dict:
        return {
            "max_attempts": self.max_attempts,
            "delays_ms": [int(d * 1000) for d in self.delays()],
        }
