"""Core data models shared by the coordinate resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

Coordinates = Tuple[float, float]


class ResolutionStatus(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    FAILED = "failed"


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    SESSION_ERROR = "session_error"

    @property
    def retryable(self) -> bool:
        return self is not FailureReason.NOT_FOUND


@dataclass(slots=True)
class PlaceRecord:
    """One saved place, normalized from either CSV or GeoJSON input.

    ``coordinates`` are ``(latitude, longitude)``. Records that arrive with
    coordinates start out ``RESOLVED`` and are never looked up. So do GeoJSON
    records whose geometry is not a point (an area or a route): the geometry
    is kept as is. ``feature`` is the source GeoJSON feature, so its ``id``,
    ``bbox`` and other members survive into the output.
    """

    identity: int
    display_name: str
    source_locator: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict, repr=False)
    geometry: Optional[Dict[str, Any]] = field(default=None, repr=False)
    feature: Optional[Dict[str, Any]] = field(default=None, repr=False)
    status: ResolutionStatus = ResolutionStatus.UNRESOLVED
    failure: Optional[FailureReason] = None

    def __post_init__(self) -> None:
        if self.coordinates is not None:
            self.status = ResolutionStatus.RESOLVED

    @property
    def needs_lookup(self) -> bool:
        return self.status is ResolutionStatus.UNRESOLVED

    def mark_resolved(self, coordinates: Coordinates) -> None:
        if self.status is not ResolutionStatus.UNRESOLVED:
            raise ValueError(f"Record {self.identity} already settled as {self.status.value}")
        self.coordinates = coordinates
        self.status = ResolutionStatus.RESOLVED

    def mark_failed(self, reason: FailureReason) -> None:
        if self.status is not ResolutionStatus.UNRESOLVED:
            raise ValueError(f"Record {self.identity} already settled as {self.status.value}")
        self.failure = reason
        self.status = ResolutionStatus.FAILED


@dataclass(frozen=True)
class LookupTask:
    record_identity: int
    query: str
    attempt_count: int = 0

    def next_attempt(self) -> "LookupTask":
        return replace(self, attempt_count=self.attempt_count + 1)


@dataclass(frozen=True)
class LookupOutcome:
    """Terminal result of a lookup: either coordinates or a failure reason."""

    record_identity: int
    coordinates: Optional[Coordinates] = None
    failure: Optional[FailureReason] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.coordinates is not None
