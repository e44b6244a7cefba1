"""Value types shared by the session engine services."""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from qrattend.utils.errors import BadRequestError


class ActorRole(Enum):
    """Roles recognised by the engine."""
    ADMIN = 'admin'
    INSTRUCTOR = 'instructor'
    CR = 'cr'
    STUDENT = 'student'


@dataclass(frozen=True)
class Actor:
    """Authenticated principal issuing an engine command."""
    id: int
    role: ActorRole
    section_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair with optional reported accuracy in meters."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['GeoPoint']:
        """Build a point from request data, rejecting out-of-range values."""
        if data is None:
            return None
        if not isinstance(data, dict):
            raise BadRequestError("Location must be an object")

        try:
            latitude = float(data['latitude'])
            longitude = float(data['longitude'])
        except KeyError as e:
            raise BadRequestError(f"Missing location field: {e.args[0]}")
        except (TypeError, ValueError):
            raise BadRequestError("Location coordinates must be numbers")

        accuracy = data.get('accuracy')
        if accuracy is not None:
            try:
                accuracy = float(accuracy)
            except (TypeError, ValueError):
                raise BadRequestError("Location accuracy must be a number")
            if accuracy < 0:
                raise BadRequestError("Location accuracy must not be negative")

        if not -90 <= latitude <= 90:
            raise BadRequestError("Latitude must be between -90 and 90")
        if not -180 <= longitude <= 180:
            raise BadRequestError("Longitude must be between -180 and 180")

        return cls(latitude=latitude, longitude=longitude, accuracy=accuracy)

    def to_dict(self) -> Dict[str, Any]:
        result = {'latitude': self.latitude, 'longitude': self.longitude}
        if self.accuracy is not None:
            result['accuracy'] = self.accuracy
        return result


@dataclass(frozen=True)
class AttendedStudent:
    """A recorded scan; immutable once appended to a session."""
    student_id: int
    scanned_at: datetime
    location: Optional[GeoPoint] = None
    device_info: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'student_id': self.student_id,
            'scanned_at': self.scanned_at.isoformat(),
            'location': self.location.to_dict() if self.location else None,
            'device_info': self.device_info
        }


@dataclass(frozen=True)
class Session:
    """Snapshot of an attendance session as held by a SessionStore."""
    session_id: str
    section_id: int
    course_id: int
    date: date
    start_time: datetime
    end_time: datetime
    max_duration_minutes: int
    expires_at: datetime
    qr_payload: str
    allowed_radius: float
    anti_cheat_enabled: bool
    created_by: int
    is_active: bool = True
    location: Optional[GeoPoint] = None
    attended_students: Tuple[AttendedStudent, ...] = ()
    # Set only by an explicit close; expiry flips is_active alone
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def has_attended(self, student_id) -> bool:
        return any(a.student_id == student_id for a in self.attended_students)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def deactivated(self) -> 'Session':
        return replace(self, is_active=False)

    def closed(self, closed_at: datetime) -> 'Session':
        return replace(self, is_active=False, closed_at=closed_at)

    def with_attendance(self, attended: AttendedStudent) -> 'Session':
        return replace(self, attended_students=self.attended_students + (attended,))

    def to_dict(self, include_students: bool = True) -> Dict[str, Any]:
        result = {
            'session_id': self.session_id,
            'section_id': self.section_id,
            'course_id': self.course_id,
            'date': self.date.isoformat(),
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'max_duration_minutes': self.max_duration_minutes,
            'location': self.location.to_dict() if self.location else None,
            'allowed_radius': self.allowed_radius,
            'anti_cheat_enabled': self.anti_cheat_enabled,
            'is_active': self.is_active,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'created_by': self.created_by,
            'attended_count': len(self.attended_students)
        }
        if include_students:
            result['attended_students'] = [a.to_dict() for a in self.attended_students]
        return result


class AttendanceStatus(Enum):
    PRESENT = 'present'
    ABSENT = 'absent'


@dataclass(frozen=True)
class AttendanceEntry:
    """One roster line of a rolled-up attendance record."""
    student_id: int
    status: AttendanceStatus
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'student_id': self.student_id,
            'status': self.status.value,
            'note': self.note
        }


@dataclass
class ScanResult:
    """Confirmation returned for an accepted scan."""
    entry: AttendedStudent
    session_id: str
    section_id: int
    course_id: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'section_id': self.section_id,
            'course_id': self.course_id,
            'student_id': self.entry.student_id,
            'scanned_at': self.entry.scanned_at.isoformat(),
            'status': AttendanceStatus.PRESENT.value,
            'warnings': list(self.warnings)
        }


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for opening sessions and accepting scans."""
    default_duration_minutes: int = 15
    min_duration_minutes: int = 5
    max_duration_minutes: int = 120
    default_radius_meters: float = 100
    min_radius_meters: float = 10
    max_radius_meters: float = 1000
    scan_buffer_minutes: int = 5
    max_speed_mps: float = 15.0
    spoof_accuracy_threshold: float = 5.0

    @classmethod
    def from_config(cls, config) -> 'EngineSettings':
        return cls(
            default_duration_minutes=config['SESSION_DEFAULT_DURATION_MINUTES'],
            min_duration_minutes=config['SESSION_MIN_DURATION_MINUTES'],
            max_duration_minutes=config['SESSION_MAX_DURATION_MINUTES'],
            default_radius_meters=config['SESSION_DEFAULT_RADIUS_METERS'],
            min_radius_meters=config['SESSION_MIN_RADIUS_METERS'],
            max_radius_meters=config['SESSION_MAX_RADIUS_METERS'],
            scan_buffer_minutes=config['SCAN_WINDOW_BUFFER_MINUTES'],
            max_speed_mps=config['SPOOF_MAX_SPEED_MPS'],
            spoof_accuracy_threshold=config['SPOOF_ACCURACY_THRESHOLD_METERS']
        )


@dataclass(frozen=True)
class StudentRef:
    """Roster view of a student."""
    id: int
    section_id: int
    course_ids: frozenset = frozenset()


@dataclass(frozen=True)
class CourseRef:
    """Roster view of a course."""
    id: int
    section_id: int
