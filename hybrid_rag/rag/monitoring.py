from __future__ import annotations

"""Running aggregate statistics for query processing."""

import threading
from dataclasses import dataclass, field

from hybrid_rag.rag.types import MetricsSnapshot


@dataclass
class MetricsTracker:
    """Incrementally averaged latency, cache hit rate and error rate."""
    _snapshot: MetricsSnapshot = field(default_factory=MetricsSnapshot, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def record_query(self, response_time_ms: float, cache_hit: bool, error: bool = False) -> None:
        """Fold one completed query into the running means."""
        with self._lock:
            current = self._snapshot
            n = current.total_queries + 1

            def _update(mean: float, value: float) -> float:
                return mean + (value - mean) / n

            self._snapshot = MetricsSnapshot(
                total_queries=n,
                average_response_time=_update(current.average_response_time, response_time_ms),
                cache_hit_rate=_update(current.cache_hit_rate, 1.0 if cache_hit else 0.0),
                error_rate=_update(current.error_rate, 1.0 if error else 0.0),
            )

    def get_metrics(self) -> MetricsSnapshot:
        with self._lock:
            return self._snapshot

    def reset(self) -> None:
        with self._lock:
            self._snapshot = MetricsSnapshot()
