"""
Request restrictions and metadata field mappings.

Restrictions decide whether a committer accepts a request at all (useful
for routing documents between several committers). Field mappings rename
or drop metadata fields before a request is queued.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field as dc_field
from typing import Dict, Iterable, List, Mapping, Optional

from .models import CommitterRequest, Metadata


@dataclass(frozen=True)
class PropertyMatcher:
    """Matches metadata when any value of ``field`` fully matches ``pattern``.

    A ``None`` pattern only requires the field to be present.
    """

    field: str
    pattern: Optional[str] = None
    ignore_case: bool = False
    _regex: Optional[re.Pattern] = dc_field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.pattern is not None:
            flags = re.IGNORECASE if self.ignore_case else 0
            object.__setattr__(self, "_regex", re.compile(self.pattern, flags))

    def matches(self, metadata: Metadata) -> bool:
        if self.field not in metadata:
            return False
        if self._regex is None:
            return True
        return any(self._regex.fullmatch(v) for v in metadata[self.field])


class Restrictions:
    """Set of matchers; a request passes when there are none or any one matches."""

    def __init__(self, matchers: Optional[Iterable[PropertyMatcher]] = None):
        self._matchers: List[PropertyMatcher] = list(matchers or [])

    def add(self, *matchers: PropertyMatcher) -> None:
        self._matchers.extend(matchers)

    def remove_field(self, field_name: str) -> int:
        """Remove every matcher on ``field_name``; returns how many were removed."""
        before = len(self._matchers)
        self._matchers = [m for m in self._matchers if m.field != field_name]
        return before - len(self._matchers)

    def clear(self) -> None:
        self._matchers.clear()

    def matches(self, metadata: Metadata) -> bool:
        if not self._matchers:
            return True
        return any(m.matches(metadata) for m in self._matchers)

    def __len__(self) -> int:
        return len(self._matchers)

    def __iter__(self):
        return iter(self._matchers)


def apply_field_mappings(request: CommitterRequest, mappings: Mapping[str, Optional[str]]) -> CommitterRequest:
    """Return ``request`` with metadata fields renamed per ``mappings``.

    A mapping whose target is blank drops the source field. Values of
    fields mapped onto an existing field are appended to it.
    """
    if not mappings:
        return request
    out: Dict[str, List[str]] = {}
    for name, values in request.metadata.items():
        if name in mappings:
            target = mappings[name]
            if not target or not target.strip():
                continue
            name = target
        out.setdefault(name, []).extend(values)
    return request.with_metadata(out)
