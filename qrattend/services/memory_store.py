"""In-process SessionStore for single-worker deployments and tests."""
import threading
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from qrattend.services.domain import AttendedStudent, Session
from qrattend.services.session_store import (
    ACTIVE_SESSION_EXISTS, ALREADY_MARKED, SessionStore, session_gone
)
from qrattend.utils.errors import ConflictError, NotFoundError


class InMemorySessionStore(SessionStore):
    """SessionStore whose primitives are serialised by one lock.

    Sessions are immutable values; every mutation replaces the stored
    value while the lock is held.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._active: Dict[tuple, str] = {}

    def create_if_none_active(self, session: Session, now: datetime) -> Session:
        key = (session.section_id, session.course_id, session.date)
        with self._lock:
            self._expire_locked(now, session.section_id, session.course_id)

            if key in self._active:
                raise ConflictError(ACTIVE_SESSION_EXISTS)
            if session.session_id in self._sessions:
                raise ConflictError('Session id already in use')

            self._sessions[session.session_id] = session
            if session.is_active:
                self._active[key] = session.session_id
            return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def find_active(self, section_id, course_id, on_date: Optional[date] = None) -> Optional[Session]:
        with self._lock:
            candidates = [
                self._sessions[session_id]
                for (sec, course, day), session_id in self._active.items()
                if sec == section_id and course == course_id and (on_date is None or day == on_date)
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.start_time)

    def append_attendance_if_absent(self, session_id: str, attended: AttendedStudent) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError('Session not found')
            if not session.is_active or session.is_closed:
                raise session_gone(session)
            if session.has_attended(attended.student_id):
                raise ConflictError(ALREADY_MARKED)

            session = session.with_attendance(attended)
            self._sessions[session_id] = session
            return session

    def deactivate(self, session_id: str) -> bool:
        with self._lock:
            return self._deactivate_locked(session_id)

    def close(self, session_id: str, closed_at: datetime) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.is_closed:
                return False

            self._sessions[session_id] = session.closed(closed_at)
            key = (session.section_id, session.course_id, session.date)
            if self._active.get(key) == session_id:
                del self._active[key]
            return True

    def deactivate_expired(self, now: datetime, section_id=None, course_id=None) -> int:
        with self._lock:
            return self._expire_locked(now, section_id, course_id)

    def latest_scan(self, student_id) -> Optional[AttendedStudent]:
        with self._lock:
            scans = [
                a for s in self._sessions.values() for a in s.attended_students
                if a.student_id == student_id and a.location is not None
            ]
        if not scans:
            return None
        return max(scans, key=lambda a: a.scanned_at)

    def list_sessions(
        self,
        section_id=None,
        course_id=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Session], int]:
        with self._lock:
            sessions = list(self._sessions.values())

        matching = [
            s for s in sessions
            if (section_id is None or s.section_id == section_id)
            and (course_id is None or s.course_id == course_id)
            and (date_from is None or s.date >= date_from)
            and (date_to is None or s.date <= date_to)
        ]
        matching.sort(key=lambda s: s.start_time, reverse=True)
        return matching[offset:offset + limit], len(matching)

    def _deactivate_locked(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return False

        self._sessions[session_id] = session.deactivated()
        self._active.pop((session.section_id, session.course_id, session.date), None)
        return True

    def _expire_locked(self, now: datetime, section_id=None, course_id=None) -> int:
        expired = [
            session_id for session_id in list(self._active.values())
            if self._sessions[session_id].is_expired(now)
            and (section_id is None or self._sessions[session_id].section_id == section_id)
            and (course_id is None or self._sessions[session_id].course_id == course_id)
        ]
        for session_id in expired:
            self._deactivate_locked(session_id)
        return len(expired)
