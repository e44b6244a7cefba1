"""Geofence verification and location anti-spoofing heuristics."""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from qrattend.services.domain import GeoPoint

EARTH_RADIUS_METERS = 6371000

# Plausible ceiling for human movement, ~54 km/h
MAX_HUMAN_SPEED_MPS = 15.0

SUSPICIOUS_ACCURACY_METERS = 5.0

RECOMMENDED_RADIUS = {
    'classroom': 50,
    'lab': 75,
    'auditorium': 100,
    'outdoor': 200,
}


@dataclass(frozen=True)
class GeoCheck:
    """Outcome of a geofence verification."""
    ok: bool
    distance: Optional[float] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class SpoofCheck:
    """Advisory spoofing signal; never a rejection on its own."""
    suspicious: bool
    reason: Optional[str] = None


class GeoService:
    """Service for distance, geofence and spoofing checks."""

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two points in meters."""
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        # Centimetre precision keeps boundary comparisons stable
        return round(EARTH_RADIUS_METERS * c, 2)

    @staticmethod
    def distance_between(a: GeoPoint, b: GeoPoint) -> float:
        return GeoService.calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)

    @staticmethod
    def is_valid_coordinates(point: GeoPoint) -> bool:
        """Check latitude/longitude types and ranges."""
        for value in (point.latitude, point.longitude):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            if math.isnan(value):
                return False
        return -90 <= point.latitude <= 90 and -180 <= point.longitude <= 180

    @staticmethod
    def verify(anchor: GeoPoint, sample: GeoPoint, allowed_radius: float) -> GeoCheck:
        """
        Check that sample lies within allowed_radius of anchor.

        Reported accuracies of both points widen the radius so that noisy
        devices are not rejected for GPS imprecision.
        """
        if not GeoService.is_valid_coordinates(anchor) or not GeoService.is_valid_coordinates(sample):
            return GeoCheck(ok=False, reason='Invalid coordinates provided')

        distance = GeoService.distance_between(anchor, sample)
        accuracy_buffer = (anchor.accuracy or 0) + (sample.accuracy or 0)
        effective_radius = allowed_radius + accuracy_buffer

        if distance <= effective_radius:
            return GeoCheck(ok=True, distance=distance, reason='Location verified successfully')

        return GeoCheck(
            ok=False,
            distance=distance,
            reason=(f"You are {GeoService.format_distance(distance)} away from the classroom "
                    f"(allowed: {allowed_radius:g}m)")
        )

    @staticmethod
    def detect_spoofing(
        sample: GeoPoint,
        previous: Optional[GeoPoint] = None,
        elapsed_seconds: Optional[float] = None,
        max_speed: float = MAX_HUMAN_SPEED_MPS,
        accuracy_threshold: float = SUSPICIOUS_ACCURACY_METERS
    ) -> SpoofCheck:
        """Flag implausible location data. Advisory only."""
        if (sample.accuracy is not None and
                sample.accuracy < accuracy_threshold and
                _has_at_most_six_decimals(sample.latitude) and
                _has_at_most_six_decimals(sample.longitude)):
            return SpoofCheck(suspicious=True, reason='Suspiciously accurate coordinates')

        if previous is not None and elapsed_seconds:
            speed = GeoService.distance_between(previous, sample) / elapsed_seconds
            if speed > max_speed:
                return SpoofCheck(suspicious=True, reason='Impossible movement speed detected')

        if sample.latitude == 0 and sample.longitude == 0:
            return SpoofCheck(suspicious=True, reason='Invalid null island coordinates')

        return SpoofCheck(suspicious=False)

    @staticmethod
    def format_distance(meters: float) -> str:
        """Human-readable distance string."""
        if meters < 1000:
            return f"{round(meters)}m"
        return f"{meters / 1000:.2f}km"

    @staticmethod
    def recommended_radius(venue_type: str) -> int:
        """Suggested geofence radius for a kind of venue."""
        return RECOMMENDED_RADIUS.get(venue_type, 100)

    @staticmethod
    def is_within_session_time(
        start_time: datetime,
        end_time: datetime,
        current_time: datetime,
        buffer_minutes: int = 5
    ) -> bool:
        """Check current_time against the session window widened by buffer_minutes."""
        buffer = timedelta(minutes=buffer_minutes)
        return start_time - buffer <= current_time <= end_time + buffer

    @staticmethod
    def destination_point(origin: GeoPoint, bearing_degrees: float, distance_meters: float) -> GeoPoint:
        """Point reached by travelling distance_meters from origin along a bearing."""
        angular = distance_meters / EARTH_RADIUS_METERS
        bearing = math.radians(bearing_degrees)
        lat1 = math.radians(origin.latitude)
        lon1 = math.radians(origin.longitude)

        lat2 = math.asin(
            math.sin(lat1) * math.cos(angular) +
            math.cos(lat1) * math.sin(angular) * math.cos(bearing)
        )
        lon2 = lon1 + math.atan2(
            math.sin(bearing) * math.sin(angular) * math.cos(lat1),
            math.cos(angular) - math.sin(lat1) * math.sin(lat2)
        )

        return GeoPoint(latitude=math.degrees(lat2), longitude=math.degrees(lon2))

    @staticmethod
    def geofence_polygon(center: GeoPoint, radius_meters: float, points: int = 16) -> List[GeoPoint]:
        """Approximate the circular geofence as a polygon."""
        return [
            GeoService.destination_point(center, (360 / points) * i, radius_meters)
            for i in range(points)
        ]


def _has_at_most_six_decimals(value: float) -> bool:
    return Decimal(str(value)).as_tuple().exponent >= -6
