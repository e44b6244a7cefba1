"""Attendance record derived from a closed session."""
from qrattend import db
from qrattend.models.base import BaseModel


class AttendanceRecord(BaseModel):
    """Present/absent record for one course meeting."""

    __tablename__ = 'attendance_records'

    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    taken_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    # Session the record was rolled up from
    session_id = db.Column(db.String(36), nullable=True, index=True)

    entries = db.relationship(
        'AttendanceRecordEntry',
        backref='record',
        lazy='selectin',
        order_by='AttendanceRecordEntry.id'
    )

    def to_dict(self, exclude: list = None) -> dict:
        result = super().to_dict(exclude=exclude)
        result['attendees'] = [entry.to_dict(exclude=['record_id', 'created_at', 'updated_at'])
                               for entry in self.entries]
        return result

    def __repr__(self):
        return f'<AttendanceRecord {self.course_id}-{self.date}>'


class AttendanceRecordEntry(BaseModel):
    """One student's status within an attendance record."""

    __tablename__ = 'attendance_record_entries'
    __table_args__ = (
        db.UniqueConstraint('record_id', 'student_id', name='uq_attendance_record_entries_student'),
    )

    record_id = db.Column(db.Integer, db.ForeignKey('attendance_records.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    status = db.Column(db.String(10), nullable=False)  # present, absent
    note = db.Column(db.String(255), nullable=True)
