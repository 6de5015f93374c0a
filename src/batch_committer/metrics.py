"""
Prometheus metrics for committers.

Metrics live in the default global REGISTRY; import this module (or the
package) at app startup to expose them.
"""

from prometheus_client import Counter, Histogram

COMMITTER_REQUESTS_TOTAL = Counter(
    "committer_requests_total",
    "Total number of requests queued by committers",
    ["operation", "status"],
)

COMMITTER_BATCHES_TOTAL = Counter(
    "committer_batches_total",
    "Total number of batches handed to sinks",
    ["status"],
)

SINK_WRITES_TOTAL = Counter(
    "committer_sink_writes_total",
    "Total number of requests written by reference sinks",
    ["sink", "status"],
)

COMMITTER_BATCH_SIZE = Histogram(
    "committer_batch_size",
    "Number of requests per committed batch",
    buckets=[1, 5, 10, 20, 50, 100, 250, 500, 1000],
)

COMMITTER_BATCH_LATENCY_MS = Histogram(
    "committer_batch_latency_ms",
    "Time spent by the sink consuming one batch, in milliseconds",
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000],
)


class MetricsRegistry:
    """Centralized access to the committer metrics."""

    requests_total = COMMITTER_REQUESTS_TOTAL
    batches_total = COMMITTER_BATCHES_TOTAL
    batch_size = COMMITTER_BATCH_SIZE
    batch_latency_ms = COMMITTER_BATCH_LATENCY_MS
    sink_writes_total = SINK_WRITES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
