"""Lightweight metrics collection for the MCP server.

Samples are kept in a bounded in-memory ring and exposed through
``get_metrics()`` for the diagnostics resource domain.

Example:
    collector = MetricsCollector()

    with collector.track("tool.duration", tags={"tool": "createVM"}):
        ...

    samples = collector.get_metrics(name="tool.duration")
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Metric:
    """A single timestamped metric sample.

    Attributes:
        name: Metric name (dotted, e.g. ``tool.duration``)
        value: Sample value
        unit: Unit label (``ms``, ``count``, ``bytes``, ...)
        timestamp: When the sample was recorded
        tags: Free-form dimensions
    """

    name: str
    value: float
    unit: str
    timestamp: datetime
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
            "tags": dict(self.tags),
        }


class MetricsCollector:
    """Collects metric samples.

    Thread-safe. When disabled, recording calls are no-ops and
    ``get_metrics()`` returns an empty list.
    """

    def __init__(
        self,
        max_samples: int = 5000,
        enabled: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.enabled = enabled
        self._samples: deque[Metric] = deque(maxlen=max_samples)
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(
        self, name: str, value: float, unit: str = "count", tags: dict[str, str] | None = None
    ) -> None:
        """Record one sample."""
        if not self.enabled:
            return
        sample = Metric(name=name, value=float(value), unit=unit, timestamp=self._clock(), tags=tags or {})
        with self._lock:
            self._samples.append(sample)

    @contextmanager
    def track(self, name: str, tags: dict[str, str] | None = None) -> Iterator[dict[str, str]]:
        """Time a block and record its duration in milliseconds.

        Yields the tag dict so the block can add tags (e.g. ``outcome``)
        before the sample is recorded.
        """
        sample_tags = dict(tags or {})
        start = time.perf_counter()
        try:
            yield sample_tags
        except BaseException:
            sample_tags.setdefault("outcome", "error")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            sample_tags.setdefault("outcome", "success")
            self.record(name, duration_ms, "ms", sample_tags)

    def get_metrics(self, name: str | None = None, limit: int | None = None) -> list[Metric]:
        """Return recorded samples, oldest first.

        Args:
            name: Only samples with this name
            limit: Only the most recent ``limit`` samples
        """
        with self._lock:
            samples = list(self._samples)
        if name is not None:
            samples = [s for s in samples if s.name == name]
        if limit is not None:
            samples = samples[-limit:] if limit > 0 else []
        return samples

    def summary(self) -> dict[str, dict[str, float]]:
        """Aggregate count/avg/max per metric name."""
        grouped: dict[str, list[float]] = {}
        for sample in self.get_metrics():
            grouped.setdefault(sample.name, []).append(sample.value)
        return {
            name: {
                "count": len(values),
                "avg": sum(values) / len(values),
                "max": max(values),
            }
            for name, values in grouped.items()
        }

