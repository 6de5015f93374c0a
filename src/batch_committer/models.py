"""
Request value objects handled by the committer.

Requests are immutable and hashable. Metadata is a read-only ordered
mapping of field name to a tuple of string values; single string values
are normalized to one-element tuples on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import BinaryIO, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

MetadataInput = Mapping[str, Union[str, Sequence[str]]]
Metadata = Mapping[str, Tuple[str, ...]]


def normalize_metadata(metadata: Optional[MetadataInput]) -> Metadata:
    """Copy metadata into a read-only ordered ``{field: (values,)}`` mapping."""
    out: Dict[str, Tuple[str, ...]] = {}
    if metadata:
        for key, value in metadata.items():
            if value is None:
                out[key] = ()
            elif isinstance(value, str):
                out[key] = (value,)
            else:
                out[key] = tuple(str(v) for v in value)
    return MappingProxyType(out)


def _metadata_key(metadata: Metadata) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    return tuple(metadata.items())


@dataclass(frozen=True)
class DeleteRequest:
    """Request to remove the record identified by ``reference``."""

    reference: str
    metadata: Metadata = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_reference(self.reference)
        object.__setattr__(self, "metadata", normalize_metadata(self.metadata))

    def __hash__(self) -> int:
        return hash((self.operation, self.reference, _metadata_key(self.metadata)))

    @property
    def operation(self) -> Literal["delete"]:
        return "delete"

    def with_metadata(self, metadata: MetadataInput) -> "DeleteRequest":
        return replace(self, metadata=normalize_metadata(metadata))

    def __str__(self) -> str:
        return f"DeleteRequest(reference={self.reference!r}, fields={list(self.metadata)})"


@dataclass(frozen=True)
class UpsertRequest:
    """Request to insert or update the record identified by ``reference``.

    ``content`` is an opaque binary stream and is not part of equality.
    Consumers should treat it as single-pass.
    """

    reference: str
    metadata: Metadata = field(default_factory=dict)
    content: Optional[BinaryIO] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _validate_reference(self.reference)
        object.__setattr__(self, "metadata", normalize_metadata(self.metadata))

    def __hash__(self) -> int:
        return hash((self.operation, self.reference, _metadata_key(self.metadata)))

    @property
    def operation(self) -> Literal["upsert"]:
        return "upsert"

    def with_metadata(self, metadata: MetadataInput) -> "UpsertRequest":
        return replace(self, metadata=normalize_metadata(metadata))

    def read_content(self) -> Optional[bytes]:
        """Read the remaining content bytes, or ``None`` when there is no content."""
        if self.content is None:
            return None
        return self.content.read()

    def content_as_text(self, encoding: str = "utf-8") -> Optional[str]:
        data = self.read_content()
        return data.decode(encoding) if data is not None else None

    def __str__(self) -> str:
        return f"UpsertRequest(reference={self.reference!r}, fields={list(self.metadata)})"


CommitterRequest = Union[UpsertRequest, DeleteRequest]


@dataclass(frozen=True)
class QueueEntry:
    """A queued request and its queue-assigned monotonic position."""

    position: int
    request: CommitterRequest

    @property
    def reference(self) -> str:
        return self.request.reference


class RequestRecord(BaseModel):
    """Serializable view of a request, used for NDJSON output and dumps."""

    operation: Literal["upsert", "delete"]
    reference: str
    metadata: Dict[str, List[str]] = {}
    content: Optional[str] = None

    @classmethod
    def from_request(cls, request: CommitterRequest, include_content: bool = True) -> "RequestRecord":
        content = None
        if include_content and isinstance(request, UpsertRequest):
            content = request.content_as_text()
        return cls(
            operation=request.operation,
            reference=request.reference,
            metadata={k: list(v) for k, v in request.metadata.items()},
            content=content,
        )

    def to_envelope(self) -> dict:
        """``{"upsert": {...}}`` / ``{"delete": {...}}`` shape used by file sinks."""
        body = self.model_dump(exclude={"operation"}, exclude_none=True)
        return {self.operation: body}


def _validate_reference(reference: str) -> None:
    if not isinstance(reference, str) or not reference:
        raise ValueError("request reference must be a non-empty string")
