"""Persistence of rolled-up attendance records."""
import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from qrattend import db
from qrattend.models.attendance import AttendanceRecord, AttendanceRecordEntry
from qrattend.services.domain import AttendanceEntry, Session
from qrattend.utils.errors import InternalError

logger = logging.getLogger(__name__)


class SQLAttendanceRecordStore:
    """Writes an AttendanceRecord with one entry per roster student."""

    def save(self, session: Session, entries: List[AttendanceEntry], taken_by: int) -> dict:
        record = AttendanceRecord(
            section_id=session.section_id,
            course_id=session.course_id,
            date=session.date,
            taken_by=taken_by,
            session_id=session.session_id
        )
        for entry in entries:
            record.entries.append(AttendanceRecordEntry(
                student_id=entry.student_id,
                status=entry.status.value,
                note=entry.note
            ))

        db.session.add(record)
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to save attendance record for session {session.session_id}: {e}")
            raise InternalError("Failed to save attendance record")

        return record.to_dict()
