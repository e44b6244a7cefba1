"""Opening, closing and inspecting attendance sessions."""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from qrattend.services.domain import (
    Actor, ActorRole, AttendanceEntry, EngineSettings, GeoPoint, Session
)
from qrattend.services.payload_codec import PayloadCodec, PayloadDescriptor
from qrattend.services.rollup import rollup, summarize
from qrattend.services.roster import RosterLookup
from qrattend.services.session_store import SessionStore
from qrattend.utils.errors import (
    BadRequestError, ForbiddenError, NotFoundError, SessionClosedError
)
from qrattend.utils.helpers import utcnow

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)

RECENT_SCANS_LIMIT = 10


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the epoch for a naive UTC datetime."""
    return (moment - EPOCH) // timedelta(milliseconds=1)


def _clamp(value, lower, upper):
    return max(lower, min(upper, value))


def _positive_number(value, name: str):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequestError(f"{name} must be a number")
    if value <= 0:
        raise BadRequestError(f"{name} must be positive")
    return value


@dataclass
class CloseResult:
    session: Session
    entries: Optional[List[AttendanceEntry]] = None
    record: Optional[dict] = None

    def to_dict(self, now: datetime) -> dict:
        started = self.session.start_time
        return {
            'session': self.session.to_dict(),
            'attendance_record': self.record,
            'entries': [e.to_dict() for e in self.entries] if self.entries is not None else None,
            'stats': {
                'total_scanned': len(self.session.attended_students),
                'session_duration': round((now - started).total_seconds() / 60)
            }
        }


class SessionManager:
    """Owns the session lifecycle: open, lazy expiry, close and rollup."""

    def __init__(
        self,
        store: SessionStore,
        codec: PayloadCodec,
        roster: RosterLookup,
        settings: EngineSettings = None,
        clock: Callable[[], datetime] = utcnow,
        record_store=None
    ):
        self.store = store
        self.codec = codec
        self.roster = roster
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.record_store = record_store

    def open(
        self,
        actor: Actor,
        section_id,
        course_id,
        duration_minutes=None,
        anchor: Optional[GeoPoint] = None,
        allowed_radius=None,
        anti_cheat_enabled: bool = True
    ) -> Session:
        """Open a session for a section's course.

        The caller has already authorised the actor; only domain
        invariants are checked here.
        """
        duration = self._duration(duration_minutes)
        radius = self._radius(allowed_radius)

        if not self.roster.section_exists(section_id):
            raise NotFoundError('Section not found')

        course = self.roster.get_course(course_id)
        if course is None:
            raise NotFoundError('Course not found')
        if course.section_id != section_id:
            raise BadRequestError('Course does not belong to this section')

        now = self.clock()
        session_id = str(uuid.uuid4())
        end_time = now + timedelta(minutes=duration)

        payload = self.codec.encode(PayloadDescriptor(
            session_id=session_id,
            section_id=section_id,
            course_id=course_id,
            issued_at=epoch_millis(now),
            expires_at=epoch_millis(end_time)
        ))

        session = self.store.create_if_none_active(Session(
            session_id=session_id,
            section_id=section_id,
            course_id=course_id,
            date=now.date(),
            start_time=now,
            end_time=end_time,
            max_duration_minutes=duration,
            expires_at=end_time,
            qr_payload=payload,
            allowed_radius=radius,
            anti_cheat_enabled=bool(anti_cheat_enabled),
            created_by=actor.id,
            is_active=True,
            location=anchor
        ), now)

        logger.info(
            f"Session {session_id} opened by {actor.id} for section {section_id}, "
            f"course {course_id} ({duration} min, radius {radius:g}m)"
        )
        return session

    def close(self, actor: Actor, session_id: str, generate_record: bool = True) -> CloseResult:
        """Close a session and optionally roll it up into a record.

        A session that already expired can still be closed once, so its
        record is not lost when nobody closed it in time.
        """
        session = self.get(session_id)

        if session.created_by != actor.id and not actor.is_admin:
            raise ForbiddenError('You can only close sessions you created')

        if session.is_closed or not self.store.close(session_id, self.clock()):
            raise SessionClosedError('Session is already closed')

        session = self.get(session_id)
        logger.info(f"Session {session_id} closed by {actor.id} "
                    f"with {len(session.attended_students)} scans")

        if not generate_record:
            return CloseResult(session=session)

        entries = self.rollup(session)
        record = None
        if self.record_store is not None:
            record = self.record_store.save(session, entries, taken_by=session.created_by)
            logger.info(f"Attendance record saved for session {session_id}: {summarize(entries)}")

        return CloseResult(session=session, entries=entries, record=record)

    def rollup(self, session: Session) -> List[AttendanceEntry]:
        roster = self.roster.course_roster(session.section_id, session.course_id)
        return rollup(session, roster)

    def get(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise NotFoundError('Session not found')
        return session

    def get_active(self, section_id, course_id) -> Session:
        """Current active session, expiring it first if its time has passed."""
        now = self.clock()
        session = self.store.find_active(section_id, course_id)

        if session is not None and session.is_expired(now):
            self.store.deactivate(session.session_id)
            logger.info(f"Session {session.session_id} expired on read")
            session = None

        if session is None:
            raise NotFoundError('No active session found')
        return session

    def expire_sweep(self, now: datetime = None) -> int:
        """Deactivate every active session past its expiry."""
        count = self.store.deactivate_expired(now or self.clock())
        if count:
            logger.info(f"Expired {count} attendance session(s)")
        return count

    def stats(self, session_id: str) -> dict:
        session = self.get(session_id)
        total_students = len(self.roster.course_roster(session.section_id, session.course_id))
        attended_count = len(session.attended_students)
        rate = (attended_count / total_students) * 100 if total_students > 0 else 0

        recent = sorted(session.attended_students, key=lambda a: a.scanned_at, reverse=True)

        return {
            'session_info': {
                'session_id': session.session_id,
                'section_id': session.section_id,
                'course_id': session.course_id,
                'start_time': session.start_time.isoformat(),
                'end_time': session.end_time.isoformat(),
                'is_active': session.is_active,
                'session_duration_minutes': round((self.clock() - session.start_time).total_seconds() / 60)
            },
            'attendance': {
                'total_students': total_students,
                'attended_count': attended_count,
                'absent_count': max(total_students - attended_count, 0),
                'attendance_rate': round(rate, 2)
            },
            'recent_scans': [a.to_dict() for a in recent[:RECENT_SCANS_LIMIT]]
        }

    def history(
        self,
        actor: Actor,
        section_id=None,
        course_id=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = 10
    ) -> dict:
        # Class representatives only see their own section
        if actor.role == ActorRole.CR:
            if actor.section_id is None:
                raise ForbiddenError('You are not assigned to a section')
            section_id = actor.section_id

        page = max(page, 1)
        sessions, total = self.store.list_sessions(
            section_id=section_id,
            course_id=course_id,
            date_from=date_from,
            date_to=date_to,
            offset=(page - 1) * per_page,
            limit=per_page
        )

        return {
            'sessions': [s.to_dict(include_students=False) for s in sessions],
            'pagination': {
                'page': page,
                'limit': per_page,
                'total': total,
                'pages': (total + per_page - 1) // per_page
            }
        }

    def _duration(self, value) -> int:
        s = self.settings
        if value is None:
            value = s.default_duration_minutes
        value = _positive_number(value, 'Duration')
        return int(_clamp(value, s.min_duration_minutes, s.max_duration_minutes))

    def _radius(self, value) -> float:
        s = self.settings
        if value is None:
            value = s.default_radius_meters
        value = _positive_number(value, 'Allowed radius')
        return float(_clamp(value, s.min_radius_meters, s.max_radius_meters))
