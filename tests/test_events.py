"""
Tests for event parsing.

Covers:
- Valid GeoJSON features → Event
- Invalid elements reported with a reason, never raised
- Duplicate ids (first occurrence wins)
- Defaults for missing magnitude / time / depth
- Latitude range check, longitude wrapping
"""

from __future__ import annotations

import math

import pytest
from factories import make_feature

from quakecluster.pipeline.events import (
    Event,
    InvalidEvent,
    ValidEvent,
    parse_event,
    parse_events,
)


class TestParseEvent:
    def test_valid_feature(self) -> None:
        feature = make_feature("ci1", 35.7, -117.6, mag=4.2, depth=8.2)
        result = parse_event(feature, 0)
        assert isinstance(result, ValidEvent)
        event = result.event
        assert event.id == "ci1"
        assert event.latitude == 35.7
        assert event.longitude == -117.6
        assert event.magnitude == 4.2
        assert event.depth_km == 8.2
        assert event.place == "10km NE of Ridgecrest, CA"

    def test_original_feature_is_kept(self) -> None:
        feature = make_feature("ci1", 35.7, -117.6)
        result = parse_event(feature)
        assert isinstance(result, ValidEvent)
        assert result.event.to_feature() is feature

    def test_numeric_id_is_stringified(self) -> None:
        result = parse_event(make_feature(12345, 1.0, 2.0))
        assert isinstance(result, ValidEvent)
        assert result.event.id == "12345"

    def test_missing_id(self) -> None:
        result = parse_event(make_feature(None, 1.0, 2.0), 4)
        assert isinstance(result, InvalidEvent)
        assert result.reason == "missing id"
        assert result.index == 4

    def test_not_an_object(self) -> None:
        result = parse_event("nope", 1)
        assert isinstance(result, InvalidEvent)
        assert result.reason == "not an object"

    def test_missing_geometry(self) -> None:
        result = parse_event({"id": "x", "properties": {"mag": 2.0}})
        assert isinstance(result, InvalidEvent)
        assert result.reason == "missing coordinates"
        assert result.event_id == "x"

    def test_single_coordinate(self) -> None:
        result = parse_event({"id": "x", "geometry": {"coordinates": [1.0]}})
        assert isinstance(result, InvalidEvent)
        assert result.reason == "missing coordinates"

    def test_non_numeric_coordinates(self) -> None:
        result = parse_event({"id": "x", "geometry": {"coordinates": ["a", 1.0]}})
        assert isinstance(result, InvalidEvent)
        assert result.reason == "non-finite coordinates"

    def test_nan_coordinates(self) -> None:
        result = parse_event(make_feature("x", math.nan, 1.0))
        assert isinstance(result, InvalidEvent)
        assert result.reason == "non-finite coordinates"

    @pytest.mark.parametrize("lat", [90.5, -91.0, 1000.0])
    def test_latitude_out_of_range(self, lat: float) -> None:
        result = parse_event(make_feature("x", lat, 1.0))
        assert isinstance(result, InvalidEvent)
        assert result.reason == "latitude out of range"

    @pytest.mark.parametrize(
        "lon,expected",
        [(190.0, -170.0), (-190.0, 170.0), (540.0, -180.0), (180.0, 180.0), (-180.0, -180.0)],
    )
    def test_longitude_is_wrapped(self, lon: float, expected: float) -> None:
        feature = make_feature("x", 10.0, lon)
        result = parse_event(feature)
        assert isinstance(result, ValidEvent)
        assert result.event.longitude == pytest.approx(expected)
        assert result.event.to_feature()["geometry"]["coordinates"][0] == lon

    def test_event_instance_longitude_is_wrapped(self) -> None:
        event = Event(id="x", magnitude=1.0, time_ms=0, latitude=0.0, longitude=350.0)
        result = parse_event(event)
        assert isinstance(result, ValidEvent)
        assert result.event.longitude == pytest.approx(-10.0)

    def test_boolean_coordinates_rejected(self) -> None:
        result = parse_event({"id": "x", "geometry": {"coordinates": [True, False]}})
        assert isinstance(result, InvalidEvent)

    def test_missing_magnitude_and_time_default_to_zero(self) -> None:
        result = parse_event(make_feature("x", 1.0, 2.0, mag=None, time_ms=None, depth=None))
        assert isinstance(result, ValidEvent)
        assert result.event.magnitude == 0.0
        assert result.event.time_ms == 0
        assert result.event.depth_km is None

    def test_event_instance_passes_through(self) -> None:
        event = Event(id="e", magnitude=1.0, time_ms=0, latitude=0.0, longitude=0.0)
        result = parse_event(event)
        assert isinstance(result, ValidEvent)
        assert result.event is event

    def test_rebuilt_feature_for_plain_event(self) -> None:
        event = Event(id="e", magnitude=1.5, time_ms=7, latitude=2.0, longitude=3.0, depth_km=4.0)
        feature = event.to_feature()
        assert feature["id"] == "e"
        assert feature["geometry"]["coordinates"] == [3.0, 2.0, 4.0]
        assert feature["properties"]["mag"] == 1.5


class TestParseEvents:
    def test_mixed_payload(self) -> None:
        items = [
            make_feature("a", 1.0, 1.0),
            make_feature(None, 1.0, 1.0),
            42,
            make_feature("b", 1.1, 1.1),
        ]
        parsed = parse_events(items)
        assert [e.id for e in parsed.valid] == ["a", "b"]
        assert parsed.skipped_count == 2
        assert [s.index for s in parsed.skipped] == [1, 2]

    def test_duplicate_id_keeps_first(self) -> None:
        items = [
            make_feature("a", 1.0, 1.0, mag=2.0),
            make_feature("a", 5.0, 5.0, mag=6.0),
        ]
        parsed = parse_events(items)
        assert len(parsed.valid) == 1
        assert parsed.valid[0].magnitude == 2.0
        assert parsed.skipped[0].reason == "duplicate id"

    def test_skipped_to_dict(self) -> None:
        parsed = parse_events([make_feature(None, 1.0, 1.0)])
        assert parsed.skipped[0].to_dict() == {"index": 0, "reason": "missing id", "id": None}

    def test_empty(self) -> None:
        parsed = parse_events([])
        assert parsed.valid == []
        assert parsed.skipped_count == 0
