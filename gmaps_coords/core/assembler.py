"""Merge lookup outcomes into place records and build the GeoJSON output."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Mapping, Optional, Sequence

from gmaps_coords.models import LookupOutcome, PlaceRecord, ResolutionStatus

logger = logging.getLogger(__name__)


def apply_outcomes(records: Sequence[PlaceRecord], outcomes: Mapping[int, LookupOutcome]) -> None:
    """Settle each looked-up record exactly once from its outcome."""
    known = {record.identity for record in records}
    stray = set(outcomes) - known
    if stray:
        raise ValueError(f"Outcomes reference unknown records: {sorted(stray)}")

    for record in records:
        outcome = outcomes.get(record.identity)
        if outcome is None:
            if record.needs_lookup:
                raise ValueError(f"Record {record.identity} has no lookup outcome")
            continue
        if not record.needs_lookup:
            raise ValueError(f"Record {record.identity} was already settled but received an outcome")
        if outcome.succeeded:
            record.mark_resolved(outcome.coordinates)
        else:
            record.mark_failed(outcome.failure)


def to_feature(record: PlaceRecord) -> Dict[str, Any]:
    properties = dict(record.properties)
    properties.setdefault("name", record.display_name)
    if record.source_locator:
        properties.setdefault("google_maps_url", record.source_locator)

    if record.status is ResolutionStatus.RESOLVED and record.geometry is not None:
        geometry = record.geometry
    elif record.status is ResolutionStatus.RESOLVED:
        lat, lon = record.coordinates
        geometry = {"type": "Point", "coordinates": [lon, lat]}
    else:
        geometry = None
        properties["coordinates_resolved"] = False
        if record.failure is not None:
            properties["resolution_error"] = record.failure.value

    # Start from the source feature so its id, bbox and foreign members carry over.
    feature = dict(record.feature or {})
    feature["type"] = "Feature"
    feature["geometry"] = geometry
    feature["properties"] = properties
    return feature


def to_feature_collection(
    records: Sequence[PlaceRecord], members: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """One feature per record, in input order; unresolved places keep a null geometry.

    ``members`` are extra top-level members of the source collection, such as ``bbox``.
    """
    collection: Dict[str, Any] = dict(members or {})
    collection["type"] = "FeatureCollection"
    collection["features"] = [to_feature(record) for record in records]
    return collection


def summarize(records: Sequence[PlaceRecord]) -> Dict[str, int]:
    counts = Counter(record.status.value for record in records)
    summary = {status.value: counts.get(status.value, 0) for status in ResolutionStatus}
    summary["total"] = len(records)
    return summary
