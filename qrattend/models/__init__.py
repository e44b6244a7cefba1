"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .section import Section, Course, Student, enrollments
from .attendance_session import AttendanceSession, SessionAttendance
from .attendance import AttendanceRecord, AttendanceRecordEntry

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Section', 'Course', 'Student', 'enrollments',
    'AttendanceSession', 'SessionAttendance',
    'AttendanceRecord', 'AttendanceRecordEntry'
]
