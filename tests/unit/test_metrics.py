"""
Unit tests for committer metrics.
"""

from factories import upsert

from batch_committer import BatchCommitter
from batch_committer.metrics import (
    COMMITTER_BATCHES_TOTAL,
    COMMITTER_REQUESTS_TOTAL,
    metrics_registry,
)
from batch_committer.sinks import MemorySink


def _value(metric, **labels) -> float:
    samples = list(metric.collect())[0].samples
    return sum(
        s.value
        for s in samples
        if s.name.endswith("_total") and all(s.labels.get(k) == v for k, v in labels.items())
    )


def test_registry_exposes_metrics():
    assert metrics_registry.requests_total is COMMITTER_REQUESTS_TOTAL
    assert metrics_registry.batches_total is COMMITTER_BATCHES_TOTAL


def test_requests_and_batches_counted(make_settings, context):
    queued = _value(COMMITTER_REQUESTS_TOTAL, operation="upsert", status="success")
    batches = _value(COMMITTER_BATCHES_TOTAL, status="success")

    with BatchCommitter(MemorySink(), make_settings(max_batch_size=2), context=context) as c:
        for i in range(3):
            c.upsert(upsert(f"doc-{i}"))

    assert _value(COMMITTER_REQUESTS_TOTAL, operation="upsert", status="success") == queued + 3
    assert _value(COMMITTER_BATCHES_TOTAL, status="success") == batches + 2
