"""Utilities for turning Google Takeout saved-place exports into place records."""

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from gmaps_coords.models import PlaceRecord, ResolutionStatus

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_CSV_KNOWN_COLUMNS = {"Title", "URL"}


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def read_csv(path: PathLike) -> List[PlaceRecord]:
    """Read a saved-places CSV (Title, Note, URL, Comment, ...); none of its rows carry coordinates."""
    records: List[PlaceRecord] = []
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        for line_number, row in enumerate(reader, start=2):
            title = _strip_or_none(row.get("Title"))
            url = _strip_or_none(row.get("URL"))
            if not title and not url:
                logger.warning("Skipping CSV line %d without Title or URL", line_number)
                continue

            properties: Dict[str, Any] = {"name": title or ""}
            if url:
                properties["google_maps_url"] = url
            for column, value in row.items():
                if column is None or column in _CSV_KNOWN_COLUMNS:
                    continue
                value = _strip_or_none(value)
                if value is not None:
                    properties[column.lower()] = value

            records.append(
                PlaceRecord(
                    identity=len(records),
                    display_name=title or "",
                    source_locator=url,
                    properties=properties,
                )
            )
    logger.info("Read %d places from %s", len(records), path)
    return records


def parse_point(geometry: Any) -> Optional[Tuple[float, float]]:
    """Return ``(lat, lon)`` for a usable Point geometry.

    Takeout writes ``[0, 0]`` for places it has no coordinates for, so null
    island counts as missing.
    """
    if not isinstance(geometry, dict) or geometry.get("type") != "Point":
        return None
    coords = geometry.get("coordinates") or []
    if len(coords) < 2:
        return None
    try:
        lon, lat = float(coords[0]), float(coords[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if lat == 0.0 and lon == 0.0:
        return None
    return lat, lon


def is_missing_geometry(geometry: Any) -> bool:
    """True when Takeout has no location for the place: no geometry, or a null island Point."""
    if geometry is None:
        return True
    if not isinstance(geometry, dict) or geometry.get("type") != "Point":
        return False
    coords = geometry.get("coordinates")
    if not coords:
        return True
    if not isinstance(coords, list) or len(coords) < 2:
        return False
    try:
        return float(coords[0]) == 0.0 and float(coords[1]) == 0.0
    except (TypeError, ValueError):
        return False


def _feature_name(properties: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    location = properties.get("location")
    if not isinstance(location, dict):
        location = {}
    name = (
        _strip_or_none(location.get("name"))
        or _strip_or_none(properties.get("Title"))
        or _strip_or_none(properties.get("name"))
        or ""
    )
    return name, _strip_or_none(location.get("address"))


def read_geojson(path: PathLike) -> Tuple[List[PlaceRecord], Dict[str, Any]]:
    """Read a saved-places FeatureCollection, keeping any geometry it already has.

    Returns the records plus the collection's own members (``bbox``, ``crs``
    and the like) so they can be written back out.
    """
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise ValueError(f"{path} is not a GeoJSON FeatureCollection")

    records: List[PlaceRecord] = []
    for feature in payload.get("features") or []:
        if not isinstance(feature, dict):
            logger.warning("Skipping non-object feature in %s", path)
            continue
        properties = feature.get("properties")
        if properties is None:
            properties = {}
        elif not isinstance(properties, dict):
            logger.warning("Skipping feature with non-object properties in %s", path)
            continue
        name, address = _feature_name(properties)

        geometry = feature.get("geometry")
        if is_missing_geometry(geometry):
            geometry, coordinates, status = None, None, ResolutionStatus.UNRESOLVED
        else:
            coordinates, status = parse_point(geometry), ResolutionStatus.RESOLVED

        records.append(
            PlaceRecord(
                identity=len(records),
                display_name=name,
                source_locator=_strip_or_none(properties.get("google_maps_url")),
                coordinates=coordinates,
                address=address,
                properties=dict(properties),
                geometry=geometry,
                feature=feature,
                status=status,
            )
        )

    missing = sum(1 for record in records if record.needs_lookup)
    logger.info("Read %d places from %s (%d without coordinates)", len(records), path, missing)
    members = {key: value for key, value in payload.items() if key not in {"type", "features"}}
    return records, members


def read_places(path: PathLike) -> Tuple[List[PlaceRecord], Dict[str, Any]]:
    """CSV for ``.csv`` files, GeoJSON for anything else.

    Returns the records and the collection members to carry into the output;
    CSV input has none.
    """
    if Path(path).suffix.lower() == ".csv":
        return read_csv(path), {}
    return read_geojson(path)
