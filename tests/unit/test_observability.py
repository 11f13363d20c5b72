"""Unit tests for in-process latency and counter helpers."""

from __future__ import annotations

from auditkeeper.observability import counters_snapshot
from auditkeeper.observability import increment_counter
from auditkeeper.observability import latency_metrics_snapshot
from auditkeeper.observability import record_latency
from auditkeeper.observability import reset_metrics


class TestObservabilityLatency:
    def test_records_latency_aggregates(self):
        record_latency(operation="audit.flush", duration_ms=10.0, ok=True)
        record_latency(operation="audit.flush", duration_ms=30.0, ok=False)

        metrics = latency_metrics_snapshot()["audit.flush"]
        assert metrics["count"] == 2
        assert metrics["error_count"] == 1
        assert metrics["total_ms"] == 40.0
        assert metrics["avg_ms"] == 20.0
        assert metrics["min_ms"] == 10.0
        assert metrics["max_ms"] == 30.0
        assert metrics["last_ms"] == 30.0

    def test_negative_durations_are_clamped(self):
        record_latency(operation="audit.query", duration_ms=-4.0)
        assert latency_metrics_snapshot()["audit.query"]["min_ms"] == 0.0


class TestObservabilityCounters:
    def test_increments_accumulate(self):
        increment_counter("audit.entries_dropped", 3)
        increment_counter("audit.entries_dropped")
        assert counters_snapshot() == {"audit.entries_dropped": 4}

    def test_zero_increment_does_not_create_counter(self):
        increment_counter("audit.entries_flushed", 0)
        assert counters_snapshot() == {}

    def test_reset_clears_everything(self):
        record_latency(operation="audit.statistics", duration_ms=12.0)
        increment_counter("audit.entries_flushed", 2)
        reset_metrics()
        assert latency_metrics_snapshot() == {}
        assert counters_snapshot() == {}
