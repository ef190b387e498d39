"""Tests for telemetry sinks and the ``track`` context manager."""

from __future__ import annotations

import asyncio
import logging

import pytest

from autodoc_rag.telemetry import (
    InMemoryTelemetrySink,
    NullTelemetrySink,
    TelemetryMetrics,
    TelemetrySink,
    emit,
    track,
)


class ExplodingSink(TelemetrySink):
    def record(self, metrics: TelemetryMetrics) -> None:
        raise RuntimeError("sink down")


class TestTrack:
    @pytest.mark.asyncio
    async def test_records_latency_and_info(self):
        sink = InMemoryTelemetrySink()
        async with track(sink, "unit.op", retrieval_count=2, query="q") as metrics:
            await asyncio.sleep(0.01)
            metrics.cache_hit = True

        [record] = sink.records
        assert record.source == "unit.op"
        assert record.latency_ms >= 5.0
        assert record.retrieval_count == 2
        assert record.cache_hit is True
        assert record.additional_info == {"query": "q"}
        assert record.timestamp > 0

    @pytest.mark.asyncio
    async def test_error_recorded_and_reraised(self):
        sink = InMemoryTelemetrySink()
        with pytest.raises(KeyError):
            async with track(sink, "unit.fail"):
                raise KeyError("missing")
        assert "missing" in sink.records[0].additional_info["error"]

    @pytest.mark.asyncio
    async def test_empty_error_message_uses_type_name(self):
        sink = InMemoryTelemetrySink()
        with pytest.raises(RuntimeError):
            async with track(sink, "unit.fail"):
                raise RuntimeError()
        assert sink.records[0].additional_info["error"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_change_outcome(self, caplog):
        with caplog.at_level(logging.WARNING, logger="rag.telemetry"):
            async with track(ExplodingSink(), "unit.op") as metrics:
                metrics.retrieval_count = 1
        assert "sink down" in caplog.text

    @pytest.mark.asyncio
    async def test_none_sink(self):
        async with track(None, "unit.op") as metrics:
            pass
        assert metrics.latency_ms >= 0.0


class TestSinks:
    def test_null_sink_discards(self):
        NullTelemetrySink().record(TelemetryMetrics(source="x"))

    def test_emit_swallows_errors(self):
        emit(ExplodingSink(), TelemetryMetrics(source="x"))

    def test_summary(self):
        sink = InMemoryTelemetrySink()
        sink.record(TelemetryMetrics(source="search", latency_ms=10.0, retrieval_count=3))
        sink.record(TelemetryMetrics(source="search", latency_ms=30.0, retrieval_count=1))
        sink.record(TelemetryMetrics(source="embed", latency_ms=5.0, additional_info={"error": "boom"}))

        summary = sink.summary()
        assert summary["search"] == {
            "calls": 2,
            "errors": 0,
            "mean_latency_ms": pytest.approx(20.0),
            "max_latency_ms": 30.0,
            "total_retrievals": 4,
        }
        assert summary["embed"]["errors"] == 1

    def test_flush_clears(self):
        sink = InMemoryTelemetrySink()
        sink.record(TelemetryMetrics(source="a"))
        flushed = sink.flush()
        assert [m.source for m in flushed] == ["a"]
        assert sink.records == []
        assert sink.summary() == {}

    def test_records_is_a_copy(self):
        sink = InMemoryTelemetrySink()
        sink.record(TelemetryMetrics(source="a"))
        sink.records.clear()
        assert len(sink.records) == 1
