"""
Simple in-memory metrics for the broadcast hub: accepted, dropped, and failed
frames, plus session churn.
"""
import logging
from typing import Dict

logger = logging.getLogger("chatrelay.hub.metrics")

COUNTERS = (
    "accepted",
    "broadcast",
    "dropped_queue_full",
    "dropped_empty",
    "store_failures",
    "write_failures",
    "pings_sent",
    "ping_failures",
    "sessions_opened",
    "sessions_closed",
)


class HubMetrics:
    """In-memory counters. Only touched from the event loop thread."""

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {name: 0 for name in COUNTERS}

    def incr(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown hub counter: {name}")
        self._counts[name] += amount

    def get(self, name: str) -> int:
        return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counts)

    def log_summary(self) -> None:
        logger.info("Hub metrics: %s", self.snapshot())
