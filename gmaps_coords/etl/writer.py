"""GeoJSON output helpers."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from gmaps_coords.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_writable(path: PathLike) -> None:
    """Fail fast, before any slow lookups, if the output file cannot be created.

    The file is opened in append mode so an existing output is not truncated.
    """
    try:
        with open(path, "a", encoding="utf-8"):
            pass
    except OSError as exc:
        raise ConfigurationError(f"Cannot write to output file {path}: {exc}") from exc


def write_geojson(path: PathLike, collection: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(collection, fh, ensure_ascii=False, indent=2)
        fh.write("\n")
    logger.info("Wrote %d features to %s", len(collection.get("features", [])), path)
