"""
Custom exceptions for the batch committer.

Every failure surfaced to a caller is a ``CommitterException`` subtype so
pipelines can catch one umbrella type.
"""


class CommitterException(Exception):
    """Base error for anything that went wrong while committing."""

    pass


class InitializationError(CommitterException):
    """The committer or its queue could not be initialized."""

    pass


class CommitterStateError(CommitterException):
    """An operation was invoked in a lifecycle state that does not allow it."""

    pass


class QueueError(CommitterException):
    """Base error for queue storage failures."""

    pass


class QueueWriteError(QueueError):
    """A request could not be durably recorded."""

    pass


class QueueReadError(QueueError):
    """A queued request could not be read back (missing or corrupt storage)."""

    pass


class SinkError(CommitterException):
    """The downstream sink rejected or failed to store a batch."""

    pass
