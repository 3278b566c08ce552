import json

import pytest

from gmaps_coords.etl import readers
from gmaps_coords.models import ResolutionStatus

CSV_TEXT = (
    "Title,Note,URL,Tags,Comment\n"
    "Eiffel Tower,Go at night,https://www.google.com/maps/place/Eiffel+Tower/data=!4m2,,\n"
    ",,,,\n"
    "Corner Cafe,,,,Ask for the terrace\n"
)


def write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_read_csv_builds_unresolved_records(tmp_path, caplog):
    path = write(tmp_path, "saved.csv", CSV_TEXT)

    with caplog.at_level("WARNING"):
        records = readers.read_csv(path)

    assert [record.identity for record in records] == [0, 1]
    eiffel, cafe = records
    assert eiffel.display_name == "Eiffel Tower"
    assert eiffel.source_locator.startswith("https://www.google.com/maps/place/")
    assert eiffel.properties == {
        "name": "Eiffel Tower",
        "google_maps_url": eiffel.source_locator,
        "note": "Go at night",
    }
    assert eiffel.status is ResolutionStatus.UNRESOLVED
    assert cafe.source_locator is None
    assert cafe.properties["comment"] == "Ask for the terrace"
    assert "Skipping CSV line 3" in " ".join(caplog.messages)


def test_read_geojson_treats_null_island_as_missing(tmp_path):
    payload = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [2.2945, 48.8584]},
                "properties": {
                    "google_maps_url": "http://maps.google.com/?cid=1",
                    "location": {"name": "Eiffel Tower", "address": "Paris"},
                },
            },
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [0, 0]},
                "properties": {
                    "google_maps_url": "http://maps.google.com/?cid=2",
                    "location": {"name": "Louvre", "address": "Rue de Rivoli, Paris"},
                    "Comment": "closed tuesdays",
                },
            },
            {"type": "Feature", "geometry": None, "properties": {"Title": "Somewhere"}},
        ],
    }
    path = write(tmp_path, "saved.json", json.dumps(payload))

    records, members = readers.read_geojson(path)

    assert members == {}
    assert len(records) == 3
    assert records[0].coordinates == (48.8584, 2.2945)
    assert records[0].geometry == payload["features"][0]["geometry"]
    assert records[0].needs_lookup is False

    assert records[1].coordinates is None
    assert records[1].geometry is None
    assert records[1].display_name == "Louvre"
    assert records[1].address == "Rue de Rivoli, Paris"
    assert records[1].properties["Comment"] == "closed tuesdays"

    assert records[2].display_name == "Somewhere"
    assert records[2].source_locator is None


def test_read_geojson_passes_through_non_point_geometry(tmp_path):
    park = {
        "type": "Polygon",
        "coordinates": [[[2.29, 48.85], [2.30, 48.85], [2.30, 48.86], [2.29, 48.85]]],
    }
    payload = {
        "type": "FeatureCollection",
        "bbox": [2.29, 48.85, 2.30, 48.86],
        "features": [
            {"type": "Feature", "id": "park", "geometry": park, "properties": {"location": {"name": "Park"}}},
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": []}, "properties": {"name": "Empty"}},
        ],
    }
    path = write(tmp_path, "saved.geojson", json.dumps(payload))

    (polygon, empty), members = readers.read_geojson(path)

    assert members == {"bbox": [2.29, 48.85, 2.30, 48.86]}
    assert polygon.display_name == "Park"
    assert polygon.geometry == park
    assert polygon.coordinates is None
    assert polygon.status is ResolutionStatus.RESOLVED
    assert polygon.needs_lookup is False
    assert polygon.feature["id"] == "park"
    assert empty.needs_lookup is True
    assert empty.geometry is None


def test_read_geojson_skips_features_with_non_object_properties(tmp_path, caplog):
    payload = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": None, "properties": ["not", "an", "object"]},
            {"type": "Feature", "geometry": None, "properties": "Louvre"},
            {"type": "Feature", "geometry": None, "properties": None},
            {"type": "Feature", "geometry": None, "properties": {"Title": "Louvre"}},
        ],
    }
    path = write(tmp_path, "saved.geojson", json.dumps(payload))

    with caplog.at_level("WARNING"):
        records, _ = readers.read_geojson(path)

    assert [record.display_name for record in records] == ["", "Louvre"]
    assert [record.identity for record in records] == [0, 1]
    assert sum("non-object properties" in message for message in caplog.messages) == 2


def test_is_missing_geometry():
    assert readers.is_missing_geometry(None) is True
    assert readers.is_missing_geometry({"type": "Point", "coordinates": [0, 0]}) is True
    assert readers.is_missing_geometry({"type": "Point", "coordinates": [0.0, 0.0, 12.0]}) is True
    assert readers.is_missing_geometry({"type": "Point", "coordinates": [2.29, 48.85]}) is False
    assert readers.is_missing_geometry({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}) is False


def test_read_geojson_rejects_other_documents(tmp_path):
    path = write(tmp_path, "bad.geojson", json.dumps({"type": "Feature"}))
    with pytest.raises(ValueError):
        readers.read_geojson(path)


def test_parse_point():
    assert readers.parse_point({"type": "Point", "coordinates": [10, 20]}) == (20.0, 10.0)
    assert readers.parse_point({"type": "Point", "coordinates": [0.0, 0.0]}) is None
    assert readers.parse_point({"type": "LineString", "coordinates": [[1, 2], [3, 4]]}) is None
    assert readers.parse_point({"type": "Point", "coordinates": ["x", 1]}) is None
    assert readers.parse_point(None) is None


def test_read_places_dispatches_on_extension(tmp_path, monkeypatch):
    monkeypatch.setattr(readers, "read_csv", lambda path: ["csv"])
    monkeypatch.setattr(readers, "read_geojson", lambda path: (["geojson"], {"bbox": [0, 0, 1, 1]}))

    assert readers.read_places(tmp_path / "a.CSV") == (["csv"], {})
    assert readers.read_places(tmp_path / "a.json") == (["geojson"], {"bbox": [0, 0, 1, 1]})
    assert readers.read_places(tmp_path / "a") == (["geojson"], {"bbox": [0, 0, 1, 1]})
