"""Attendance session with QR codes."""
from qrattend import db
from qrattend.models.base import BaseModel
from qrattend.services.domain import AttendedStudent, GeoPoint, Session


def _point(latitude, longitude, accuracy):
    if latitude is None or longitude is None:
        return None
    return GeoPoint(latitude=latitude, longitude=longitude, accuracy=accuracy)


class AttendanceSession(BaseModel):
    """Time-boxed, location-bound attendance window for a section's course."""

    __tablename__ = 'attendance_sessions'
    __table_args__ = (
        # At most one active session per section, course and day
        db.Index(
            'uq_attendance_sessions_active',
            'section_id', 'course_id', 'date',
            unique=True,
            sqlite_where=db.text('is_active = 1'),
            postgresql_where=db.text('is_active'),
        ),
        db.Index('ix_attendance_sessions_active_expiry', 'is_active', 'expires_at'),
    )

    session_id = db.Column(db.String(36), unique=True, nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    max_duration = db.Column(db.Integer, nullable=False, default=15)
    expires_at = db.Column(db.DateTime, nullable=False)

    qr_payload = db.Column(db.Text, nullable=False)

    # Anchor location for geofencing
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy = db.Column(db.Float, nullable=True)
    allowed_radius = db.Column(db.Float, nullable=False, default=100)
    anti_cheat_enabled = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    attendances = db.relationship(
        'SessionAttendance',
        backref='attendance_session',
        lazy='selectin',
        order_by='SessionAttendance.id'
    )

    @classmethod
    def from_domain(cls, session: Session) -> 'AttendanceSession':
        location = session.location
        return cls(
            session_id=session.session_id,
            section_id=session.section_id,
            course_id=session.course_id,
            date=session.date,
            start_time=session.start_time,
            end_time=session.end_time,
            max_duration=session.max_duration_minutes,
            expires_at=session.expires_at,
            qr_payload=session.qr_payload,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            accuracy=location.accuracy if location else None,
            allowed_radius=session.allowed_radius,
            anti_cheat_enabled=session.anti_cheat_enabled,
            is_active=session.is_active,
            closed_at=session.closed_at,
            created_by=session.created_by
        )

    def to_domain(self) -> Session:
        return Session(
            session_id=self.session_id,
            section_id=self.section_id,
            course_id=self.course_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            max_duration_minutes=self.max_duration,
            expires_at=self.expires_at,
            qr_payload=self.qr_payload,
            allowed_radius=self.allowed_radius,
            anti_cheat_enabled=self.anti_cheat_enabled,
            created_by=self.created_by,
            is_active=self.is_active,
            location=_point(self.latitude, self.longitude, self.accuracy),
            attended_students=tuple(a.to_domain() for a in self.attendances),
            closed_at=self.closed_at
        )

    def __repr__(self):
        return f'<AttendanceSession {self.session_id}>'


class SessionAttendance(BaseModel):
    """A student's scan into a session. Rows are append-only."""

    __tablename__ = 'session_attendances'
    __table_args__ = (
        db.UniqueConstraint('session_pk', 'student_id', name='uq_session_attendances_student'),
    )

    session_pk = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    scanned_at = db.Column(db.DateTime, nullable=False)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy = db.Column(db.Float, nullable=True)
    device_info = db.Column(db.String(255), nullable=True)

    def to_domain(self) -> AttendedStudent:
        return AttendedStudent(
            student_id=self.student_id,
            scanned_at=self.scanned_at,
            location=_point(self.latitude, self.longitude, self.accuracy),
            device_info=self.device_info
        )

    def __repr__(self):
        return f'<SessionAttendance {self.session_pk}-{self.student_id}>'
