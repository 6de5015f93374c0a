"""
Fixtures for sink unit tests.
"""

import pytest
from factories import delete, upsert

from batch_committer.sinks import BaseSink


@pytest.fixture()
def mixed_batch():
    """Two upserts around a delete, as a dispatcher would hand them over."""
    return [
        upsert("http://example.com/1", "first body", title="One", tags=["a", "b"]),
        delete("http://example.com/2", reason="gone"),
        upsert("http://example.com/3", "third body", title="Three"),
    ]


@pytest.fixture()
def failing_sink():
    """Sink whose writes always raise (for failure path tests)."""

    class Failing(BaseSink):
        name = "failing"

        def write(self, request):
            raise RuntimeError("storage unavailable")

    return Failing()
