"""Derivation of present/absent records from a session's scans."""
from typing import Dict, Iterable, List

from qrattend.services.domain import AttendanceEntry, AttendanceStatus, Session


def rollup(session: Session, roster: Iterable) -> List[AttendanceEntry]:
    """
    Build one entry per roster student, in roster order.

    A student is present iff they appear in the session's attended
    students. Pure: the same session and roster always give the same
    entries.
    """
    scanned = {a.student_id: a for a in session.attended_students}
    entries = []

    for student_id in roster:
        attended = scanned.get(student_id)
        if attended is not None:
            entries.append(AttendanceEntry(
                student_id=student_id,
                status=AttendanceStatus.PRESENT,
                note=f"Scanned at {attended.scanned_at.strftime('%H:%M:%S')}"
            ))
        else:
            entries.append(AttendanceEntry(student_id=student_id, status=AttendanceStatus.ABSENT))

    return entries


def summarize(entries: List[AttendanceEntry]) -> Dict[str, int]:
    present = sum(1 for e in entries if e.status == AttendanceStatus.PRESENT)
    return {
        'total': len(entries),
        'present': present,
        'absent': len(entries) - present
    }
