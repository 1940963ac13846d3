"""
Observability: in-memory hub counters.
"""
from chatrelay.core.observability.metrics import HubMetrics

__all__ = ["HubMetrics"]
