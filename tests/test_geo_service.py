"""Tests for geofence verification and spoofing heuristics."""
from datetime import datetime, timedelta

import pytest

from qrattend.services.domain import GeoPoint
from qrattend.services.geo_service import GeoService

ANCHOR = GeoPoint(latitude=23.81, longitude=90.41)


def test_distance_zero_for_same_point():
    assert GeoService.distance_between(ANCHOR, ANCHOR) == 0


def test_distance_known_value():
    """One degree of latitude is roughly 111.2 km."""
    distance = GeoService.calculate_distance(0, 0, 1, 0)
    assert distance == pytest.approx(111195, rel=1e-3)


def test_destination_point_round_trips_distance():
    sample = GeoService.destination_point(ANCHOR, 37, 250)
    assert GeoService.distance_between(ANCHOR, sample) == pytest.approx(250, abs=0.01)


def test_verify_inside_radius():
    sample = GeoService.destination_point(ANCHOR, 90, 40)
    result = GeoService.verify(ANCHOR, sample, 100)

    assert result.ok
    assert result.distance == pytest.approx(40, abs=0.01)


def test_geofence_boundary_includes_accuracy_buffer():
    """A sample exactly at radius + buffer passes, one meter further fails."""
    anchor = GeoPoint(latitude=23.81, longitude=90.41, accuracy=5)
    at_edge = GeoService.destination_point(anchor, 45, 108)
    beyond = GeoService.destination_point(anchor, 45, 109)

    inside = GeoService.verify(anchor, GeoPoint(at_edge.latitude, at_edge.longitude, 3), 100)
    outside = GeoService.verify(anchor, GeoPoint(beyond.latitude, beyond.longitude, 3), 100)

    assert inside.ok
    assert inside.distance == 108
    assert not outside.ok
    assert outside.distance == 109


def test_verify_rejection_reason_states_distance_and_radius():
    sample = GeoService.destination_point(ANCHOR, 0, 500)
    result = GeoService.verify(ANCHOR, sample, 100)

    assert not result.ok
    assert result.reason == "You are 500m away from the classroom (allowed: 100m)"


def test_verify_rejects_invalid_coordinates():
    result = GeoService.verify(ANCHOR, GeoPoint(latitude=91, longitude=0), 100)
    assert not result.ok
    assert result.reason == 'Invalid coordinates provided'


def test_spoofing_flags_too_clean_high_accuracy_fix():
    result = GeoService.detect_spoofing(GeoPoint(23.81, 90.41, accuracy=3))
    assert result.suspicious
    assert result.reason == 'Suspiciously accurate coordinates'


def test_spoofing_ignores_clean_coordinates_with_ordinary_accuracy():
    assert not GeoService.detect_spoofing(GeoPoint(23.81, 90.41, accuracy=12)).suspicious


def test_spoofing_ignores_noisy_high_accuracy_fix():
    sample = GeoPoint(23.8100004217, 90.4100012345, accuracy=3)
    assert not GeoService.detect_spoofing(sample).suspicious


def test_spoofing_flags_impossible_speed():
    previous = GeoPoint(23.8100004217, 90.4100012345)
    sample = GeoService.destination_point(previous, 0, 1000)

    result = GeoService.detect_spoofing(sample, previous=previous, elapsed_seconds=10)

    assert result.suspicious
    assert result.reason == 'Impossible movement speed detected'


def test_spoofing_accepts_walking_speed():
    previous = GeoPoint(23.8100004217, 90.4100012345)
    sample = GeoService.destination_point(previous, 0, 100)

    assert not GeoService.detect_spoofing(sample, previous=previous, elapsed_seconds=60).suspicious


def test_spoofing_flags_null_island():
    result = GeoService.detect_spoofing(GeoPoint(0.0, 0.0))
    assert result.suspicious
    assert result.reason == 'Invalid null island coordinates'


def test_format_distance():
    assert GeoService.format_distance(499.6) == '500m'
    assert GeoService.format_distance(1234) == '1.23km'


def test_is_within_session_time_uses_buffer():
    start = datetime(2026, 1, 1, 9, 0)
    end = start + timedelta(minutes=15)

    assert GeoService.is_within_session_time(start, end, start - timedelta(minutes=5), 5)
    assert GeoService.is_within_session_time(start, end, end + timedelta(minutes=5), 5)
    assert not GeoService.is_within_session_time(start, end, start - timedelta(minutes=6), 5)


def test_recommended_radius():
    assert GeoService.recommended_radius('lab') == 75
    assert GeoService.recommended_radius('rooftop') == 100


def test_geofence_polygon_points_lie_on_radius():
    polygon = GeoService.geofence_polygon(ANCHOR, 150, points=8)

    assert len(polygon) == 8
    for point in polygon:
        assert GeoService.distance_between(ANCHOR, point) == pytest.approx(150, abs=0.01)


def test_geo_point_from_dict_validates_ranges():
    from qrattend.utils.errors import BadRequestError

    assert GeoPoint.from_dict({'latitude': 1, 'longitude': 2, 'accuracy': 4}) == GeoPoint(1.0, 2.0, 4.0)
    assert GeoPoint.from_dict(None) is None
    with pytest.raises(BadRequestError):
        GeoPoint.from_dict({'latitude': 100, 'longitude': 0})
    with pytest.raises(BadRequestError):
        GeoPoint.from_dict({'latitude': 0, 'longitude': 0, 'accuracy': -1})
    with pytest.raises(BadRequestError):
        GeoPoint.from_dict({'latitude': 'north', 'longitude': 0})
