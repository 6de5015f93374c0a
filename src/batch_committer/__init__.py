"""
Batch Committer

Durable, ordered, batched delivery of document upsert/delete requests to a
downstream sink:
- Durable queue (file-system or in-memory) surviving process restarts
- Size-bounded, single-flight batch dispatch
- Lifecycle events for monitoring and recovery tooling
- Prometheus metrics
- Reference sinks (memory, log, NDJSON, CSV)

Usage:
    from batch_committer import BatchCommitter, CommitterSettings, UpsertRequest

    with BatchCommitter(my_sink, CommitterSettings(max_batch_size=100)) as committer:
        committer.upsert(UpsertRequest("doc-1", {"title": "Hello"}, stream))
"""

from .committer import BatchCommitter, CommitterState
from .config import CommitterSettings, QueueImplementation, get_settings
from .context import CommitterContext
from .dispatcher import BatchConfig, BatchConsumer, BatchDispatcher
from .errors import (
    CommitterException,
    CommitterStateError,
    InitializationError,
    QueueError,
    QueueReadError,
    QueueWriteError,
    SinkError,
)
from .events import CommitterEvent, CommitterEventName, EventBus, EventListener, event_bus
from .filters import PropertyMatcher, Restrictions, apply_field_mappings
from .models import CommitterRequest, DeleteRequest, QueueEntry, RequestRecord, UpsertRequest
from .queue import DurableQueue, FSQueue, MemoryQueue, create_queue

__version__ = "1.0.0"
__all__ = [
    # lifecycle
    "BatchCommitter",
    "CommitterState",
    "CommitterContext",
    # config
    "CommitterSettings",
    "QueueImplementation",
    "get_settings",
    # requests
    "CommitterRequest",
    "UpsertRequest",
    "DeleteRequest",
    "QueueEntry",
    "RequestRecord",
    # queues
    "DurableQueue",
    "FSQueue",
    "MemoryQueue",
    "create_queue",
    # dispatch
    "BatchDispatcher",
    "BatchConfig",
    "BatchConsumer",
    # events
    "CommitterEvent",
    "CommitterEventName",
    "EventBus",
    "EventListener",
    "event_bus",
    # filters
    "PropertyMatcher",
    "Restrictions",
    "apply_field_mappings",
    # errors
    "CommitterException",
    "CommitterStateError",
    "InitializationError",
    "QueueError",
    "QueueReadError",
    "QueueWriteError",
    "SinkError",
]
