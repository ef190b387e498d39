"""
Latency/usage telemetry for embedding and search calls.

Telemetry is an injected collaborator: the core records metrics through a
``TelemetrySink`` handed to it at construction and never reaches for a
process-wide instance. Sinks are advisory; a sink that raises is logged and
ignored so that telemetry cannot change the outcome of an operation.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

LOG = logging.getLogger("rag.telemetry")


@dataclass
class TelemetryMetrics:
    """One recorded call."""

    source: str
    latency_ms: float = 0.0
    cache_hit: bool = False
    retrieval_count: int = 0
    timestamp: float = field(default_factory=time.time)
    additional_info: Dict[str, Any] = field(default_factory=dict)


class TelemetrySink(ABC):
    """Receives metrics emitted around embedding and search calls."""

    @abstractmethod
    def record(self, metrics: TelemetryMetrics) -> None:
        """Store or forward one metrics record."""


class NullTelemetrySink(TelemetrySink):
    """Discards everything. Default when no sink is injected."""

    def record(self, metrics: TelemetryMetrics) -> None:
        pass


class InMemoryTelemetrySink(TelemetrySink):
    """Keeps records in memory and summarizes them per source."""

    def __init__(self) -> None:
        self._records: List[TelemetryMetrics] = []

    def record(self, metrics: TelemetryMetrics) -> None:
        self._records.append(metrics)

    @property
    def records(self) -> List[TelemetryMetrics]:
        return list(self._records)

    def summary(self) -> Dict[str, Dict[str, Any]]:
        """
        Aggregate records by source.

        Returns ``{source: {calls, errors, mean_latency_ms, max_latency_ms,
        total_retrievals}}``.
        """
        out: Dict[str, Dict[str, Any]] = {}
        for m in self._records:
            entry = out.setdefault(
                m.source,
                {"calls": 0, "errors": 0, "mean_latency_ms": 0.0, "max_latency_ms": 0.0, "total_retrievals": 0},
            )
            entry["calls"] += 1
            if "error" in m.additional_info:
                entry["errors"] += 1
            # running mean
            entry["mean_latency_ms"] += (m.latency_ms - entry["mean_latency_ms"]) / entry["calls"]
            entry["max_latency_ms"] = max(entry["max_latency_ms"], m.latency_ms)
            entry["total_retrievals"] += m.retrieval_count
        return out

    def flush(self) -> List[TelemetryMetrics]:
        """Return all records and clear the buffer."""
        records, self._records = self._records, []
        return records


def emit(sink: Optional[TelemetrySink], metrics: TelemetryMetrics) -> None:
    """Hand ``metrics`` to ``sink``; sink failures are logged, never raised."""
    if sink is None:
        return
    try:
        sink.record(metrics)
    except Exception as exc:
        LOG.warning("Telemetry sink %r failed for %s: %s", sink, metrics.source, exc)


@asynccontextmanager
async def track(
    sink: Optional[TelemetrySink],
    source: str,
    retrieval_count: int = 0,
    **additional_info: Any,
) -> AsyncIterator[TelemetryMetrics]:
    """
    Time the enclosed block and record it to ``sink``.

    The yielded record may be updated inside the block (for example to set
    ``retrieval_count`` once results are known). If the block raises, the
    error message is recorded under ``additional_info["error"]`` and the
    exception propagates unchanged.
    """
    metrics = TelemetryMetrics(source=source, retrieval_count=retrieval_count, additional_info=dict(additional_info))
    start = time.perf_counter()
    try:
        yield metrics
    except BaseException as exc:
        metrics.additional_info["error"] = str(exc) or type(exc).__name__
        raise
    finally:
        metrics.latency_ms = (time.perf_counter() - start) * 1000
        metrics.timestamp = time.time()
        emit(sink, metrics)
