"""
Reconnect and heartbeat bookkeeping for the notification channel.

Delays grow geometrically (ratio 1.5) with +/-20% jitter so that many
operators reconnecting after a server restart do not retry in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ReconnectPolicy:
    """
    Backoff-with-jitter reconnect policy.

    Attributes:
        base_delay: Delay for the first retry (seconds)
        max_delay: Delay ceiling (seconds)
        max_attempts: Attempt count at which delays saturate at max_delay
        multiplier: Geometric growth ratio
        jitter_min: Lower bound of the jitter factor
        jitter_max: Upper bound of the jitter factor
        attempt_count: Retries made since the last successful open
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 10
    multiplier: float = 1.5
    jitter_min: float = 0.8
    jitter_max: float = 1.2
    attempt_count: int = 0
    saturated: bool = False
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def raw_delay(self, attempt: int, jitter: float = 1.0) -> float:
        """Delay for ``attempt`` with a fixed jitter factor, clamped to max_delay."""
        return min(self.base_delay * (self.multiplier**attempt) * jitter, self.max_delay)

    def next_delay(self) -> float:
        """
        Compute the delay before the next retry.

        Once attempt_count reaches max_attempts the policy saturates: the
        counter drops to half of max_attempts and every delay is max_delay
        until reset() is called.
        """
        if self.attempt_count >= self.max_attempts:
            self.attempt_count = self.max_attempts // 2
            self.saturated = True

        if self.saturated:
            return self.max_delay

        jitter = self.rng.uniform(self.jitter_min, self.jitter_max)
        return self.raw_delay(self.attempt_count, jitter)

    def record_attempt(self) -> int:
        """Count a retry that is about to be made."""
        self.attempt_count = min(self.attempt_count + 1, self.max_attempts)
        return self.attempt_count

    def reset(self) -> None:
        """Start over from the base delay."""
        self.attempt_count = 0
        self.saturated = False


@dataclass
class HeartbeatState:
    """Liveness bookkeeping for the open connection."""

    last_message_at: Optional[float] = None
    pending_health_check: bool = False
    last_ping_at: Optional[float] = None

    def touch(self, now: float) -> None:
        """Record an inbound frame of any kind."""
        self.last_message_at = now
        self.pending_health_check = False

    def ping_sent(self, now: float) -> None:
        self.last_ping_at = now
        self.pending_health_check = True

    def reset(self, now: Optional[float] = None) -> None:
        self.last_message_at = now
        self.last_ping_at = None
        self.pending_health_check = False
