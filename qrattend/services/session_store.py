"""Durable attendance session storage.

Sessions are mutated only through three atomic primitives:
``create_if_none_active``, ``append_attendance_if_absent`` and
``deactivate``. Implementations must not build these from a read followed
by a separate write.
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import insert, literal, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from qrattend import db
from qrattend.models.attendance_session import AttendanceSession, SessionAttendance
from qrattend.services.domain import AttendedStudent, Session
from qrattend.utils.errors import ConflictError, GoneError, InternalError, NotFoundError
from qrattend.utils.helpers import utcnow

logger = logging.getLogger(__name__)

ACTIVE_SESSION_EXISTS = 'An active session already exists for this course'
ALREADY_MARKED = 'You have already marked attendance for this session'
SESSION_CLOSED = 'This session has been closed'
QR_EXPIRED = 'This QR code has expired'


def session_gone(session: Session) -> GoneError:
    """The error for a scan against a session that no longer takes scans."""
    return GoneError(SESSION_CLOSED if session.is_closed else QR_EXPIRED)


class SessionStore(ABC):
    """Storage interface for attendance sessions."""

    @abstractmethod
    def create_if_none_active(self, session: Session, now: datetime) -> Session:
        """Insert session unless another is active for its section, course and date.

        Active sessions for that key that expired before ``now`` are
        deactivated first. Raises ConflictError when one is still active.
        """

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return the session or None."""

    @abstractmethod
    def find_active(self, section_id, course_id, on_date: Optional[date] = None) -> Optional[Session]:
        """Return the active session for a section/course, optionally on one date."""

    @abstractmethod
    def append_attendance_if_absent(self, session_id: str, attended: AttendedStudent) -> Session:
        """Append a scan unless the student is already recorded.

        Raises NotFoundError for an unknown session, GoneError once the
        session is closed or inactive, and ConflictError when the student
        already appears in it.
        """

    @abstractmethod
    def deactivate(self, session_id: str) -> bool:
        """Flip an active session to inactive. Returns False if it was not active."""

    @abstractmethod
    def close(self, session_id: str, closed_at: datetime) -> bool:
        """Mark a session closed and inactive.

        Applies to active and expired sessions alike, at most once.
        Returns False if the session was already closed.
        """

    @abstractmethod
    def deactivate_expired(self, now: datetime, section_id=None, course_id=None) -> int:
        """Deactivate active sessions whose expiry is before ``now``."""

    @abstractmethod
    def latest_scan(self, student_id) -> Optional[AttendedStudent]:
        """Most recent located scan of a student across all sessions."""

    @abstractmethod
    def list_sessions(
        self,
        section_id=None,
        course_id=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Session], int]:
        """Sessions newest first, with the total count matching the filter."""


class SQLSessionStore(SessionStore):
    """SessionStore backed by Flask-SQLAlchemy.

    Uniqueness is delegated to the database: a partial unique index over
    active sessions and a unique (session, student) constraint on scans.
    """

    def create_if_none_active(self, session: Session, now: datetime) -> Session:
        self.deactivate_expired(now, section_id=session.section_id, course_id=session.course_id)

        row = AttendanceSession.from_domain(session)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(ACTIVE_SESSION_EXISTS)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to create session {session.session_id}: {e}")
            raise InternalError("Failed to create attendance session")

        return row.to_domain()

    def get(self, session_id: str) -> Optional[Session]:
        row = self._row(session_id)
        return row.to_domain() if row else None

    def find_active(self, section_id, course_id, on_date: Optional[date] = None) -> Optional[Session]:
        query = AttendanceSession.query.filter_by(
            section_id=section_id,
            course_id=course_id,
            is_active=True
        )
        if on_date is not None:
            query = query.filter_by(date=on_date)

        row = query.order_by(AttendanceSession.start_time.desc()).first()
        return row.to_domain() if row else None

    def append_attendance_if_absent(self, session_id: str, attended: AttendedStudent) -> Session:
        # Lock the session row so a concurrent close waits for this scan
        row = AttendanceSession.query.filter_by(session_id=session_id) \
            .with_for_update().populate_existing().first()
        if row is None:
            raise NotFoundError('Session not found')

        location = attended.location
        now = utcnow()
        values = {
            'student_id': attended.student_id,
            'scanned_at': attended.scanned_at,
            'latitude': location.latitude if location else None,
            'longitude': location.longitude if location else None,
            'accuracy': location.accuracy if location else None,
            'device_info': attended.device_info,
            'created_at': now,
            'updated_at': now,
        }
        columns = SessionAttendance.__table__.c
        # Insert only while the session is still open
        open_session = select(
            AttendanceSession.id,
            *[literal(value, type_=columns[name].type) for name, value in values.items()]
        ).where(
            AttendanceSession.id == row.id,
            AttendanceSession.is_active.is_(True),
            AttendanceSession.closed_at.is_(None)
        )

        try:
            inserted = db.session.execute(
                insert(SessionAttendance.__table__).from_select(['session_pk', *values], open_session)
            ).rowcount
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(ALREADY_MARKED)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to record scan for session {session_id}: {e}")
            raise InternalError("Failed to record attendance")

        session = self._row(session_id).to_domain()
        if not inserted:
            raise session_gone(session)
        return session

    def deactivate(self, session_id: str) -> bool:
        try:
            updated = AttendanceSession.query.filter_by(
                session_id=session_id,
                is_active=True
            ).update({'is_active': False}, synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to deactivate session {session_id}: {e}")
            raise InternalError("Failed to deactivate attendance session")

        return updated == 1

    def close(self, session_id: str, closed_at: datetime) -> bool:
        try:
            updated = AttendanceSession.query.filter(
                AttendanceSession.session_id == session_id,
                AttendanceSession.closed_at.is_(None)
            ).update({'is_active': False, 'closed_at': closed_at}, synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to close session {session_id}: {e}")
            raise InternalError("Failed to close attendance session")

        return updated == 1

    def deactivate_expired(self, now: datetime, section_id=None, course_id=None) -> int:
        query = AttendanceSession.query.filter(
            AttendanceSession.is_active.is_(True),
            AttendanceSession.expires_at < now
        )
        if section_id is not None:
            query = query.filter(AttendanceSession.section_id == section_id)
        if course_id is not None:
            query = query.filter(AttendanceSession.course_id == course_id)

        try:
            updated = query.update({'is_active': False}, synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to expire sessions: {e}")
            raise InternalError("Failed to expire attendance sessions")

        return updated

    def latest_scan(self, student_id) -> Optional[AttendedStudent]:
        row = SessionAttendance.query.filter(
            SessionAttendance.student_id == student_id,
            SessionAttendance.latitude.isnot(None),
            SessionAttendance.longitude.isnot(None)
        ).order_by(SessionAttendance.scanned_at.desc()).first()
        return row.to_domain() if row else None

    def list_sessions(
        self,
        section_id=None,
        course_id=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        offset: int = 0,
        limit: int = 20
    ) -> Tuple[List[Session], int]:
        query = AttendanceSession.query
        if section_id is not None:
            query = query.filter(AttendanceSession.section_id == section_id)
        if course_id is not None:
            query = query.filter(AttendanceSession.course_id == course_id)
        if date_from is not None:
            query = query.filter(AttendanceSession.date >= date_from)
        if date_to is not None:
            query = query.filter(AttendanceSession.date <= date_to)

        total = query.count()
        rows = query.order_by(
            AttendanceSession.start_time.desc(),
            AttendanceSession.id.desc()
        ).offset(offset).limit(limit).all()

        return [row.to_domain() for row in rows], total

    @staticmethod
    def _row(session_id: str) -> Optional[AttendanceSession]:
        return AttendanceSession.query.filter_by(session_id=session_id).first()
