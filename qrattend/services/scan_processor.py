"""Validation and recording of a single QR scan."""
import logging
from datetime import datetime
from typing import Callable, Optional

from qrattend.services.domain import AttendedStudent, EngineSettings, GeoPoint, ScanResult
from qrattend.services.geo_service import GeoService
from qrattend.services.payload_codec import PayloadCodec
from qrattend.services.roster import RosterLookup
from qrattend.services.session_store import ALREADY_MARKED, QR_EXPIRED, SessionStore, session_gone
from qrattend.utils.errors import (
    BadRequestError, ConflictError, ForbiddenError, GoneError,
    MalformedPayloadError, NotFoundError
)
from qrattend.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class ScanProcessor:
    """Checks a scan attempt against its session and appends it.

    Checks run in a fixed order and the first failure wins. Nothing is
    written unless every check passes, except that an expired session is
    flipped to inactive when it is first noticed.
    """

    def __init__(
        self,
        store: SessionStore,
        codec: PayloadCodec,
        roster: RosterLookup,
        settings: EngineSettings = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.codec = codec
        self.roster = roster
        self.settings = settings or EngineSettings()
        self.clock = clock

    def record_scan(
        self,
        student_id,
        payload: str,
        sample: Optional[GeoPoint] = None,
        device_info: Optional[str] = None
    ) -> ScanResult:
        # Read once so every time check sees the same instant
        now = self.clock()

        descriptor = self.codec.decode(payload)

        session = self.store.get(descriptor.session_id)
        if session is None:
            raise NotFoundError('Session not found')
        if session.section_id != descriptor.section_id or session.course_id != descriptor.course_id:
            raise MalformedPayloadError('QR code does not match its session')

        if not session.is_active:
            raise session_gone(session)

        if session.is_expired(now):
            self.store.deactivate(session.session_id)
            raise GoneError(QR_EXPIRED)

        if not GeoService.is_within_session_time(
                session.start_time, session.end_time, now, self.settings.scan_buffer_minutes):
            raise BadRequestError('Attendance can only be marked during the session time')

        student = self.roster.get_student(student_id)
        if student is None:
            raise NotFoundError('Student not found')
        if student.section_id != session.section_id:
            raise ForbiddenError('You are not enrolled in this section')
        if session.course_id not in student.course_ids:
            raise ForbiddenError('You are not enrolled in this course')

        if session.has_attended(student_id):
            raise ConflictError(ALREADY_MARKED)

        warnings = []
        if session.anti_cheat_enabled and sample is not None:
            if session.location is not None:
                check = GeoService.verify(session.location, sample, session.allowed_radius)
                if not check.ok:
                    raise ForbiddenError(
                        check.reason or 'Location verification failed. You must be in the classroom.'
                    )

            spoofing = self._spoofing_check(student_id, sample, now)
            if spoofing is not None:
                logger.warning(
                    f"Suspicious location detected for student {student_id} "
                    f"in session {session.session_id}: {spoofing}"
                )
                warnings.append(spoofing)

        attended = AttendedStudent(
            student_id=student_id,
            scanned_at=now,
            location=sample,
            device_info=device_info
        )
        try:
            self.store.append_attendance_if_absent(session.session_id, attended)
        except ConflictError:
            logger.warning(f"Concurrent duplicate scan for student {student_id} "
                           f"in session {session.session_id}")
            raise
        except GoneError:
            logger.warning(f"Session {session.session_id} stopped taking scans "
                           f"before student {student_id} was recorded")
            raise

        logger.info(f"Student {student_id} marked present in session {session.session_id}")
        return ScanResult(
            entry=attended,
            session_id=session.session_id,
            section_id=session.section_id,
            course_id=session.course_id,
            warnings=warnings
        )

    def _spoofing_check(self, student_id, sample: GeoPoint, now: datetime) -> Optional[str]:
        previous = self.store.latest_scan(student_id)
        elapsed = (now - previous.scanned_at).total_seconds() if previous else None

        result = GeoService.detect_spoofing(
            sample,
            previous=previous.location if previous else None,
            elapsed_seconds=elapsed,
            max_speed=self.settings.max_speed_mps,
            accuracy_threshold=self.settings.spoof_accuracy_threshold
        )
        return result.reason if result.suspicious else None
