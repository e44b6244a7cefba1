"""Sections, courses and enrolled students."""
from qrattend import db
from qrattend.models.base import BaseModel

enrollments = db.Table(
    'enrollments',
    db.Column('student_id', db.Integer, db.ForeignKey('students.id'), primary_key=True),
    db.Column('course_id', db.Integer, db.ForeignKey('courses.id'), primary_key=True)
)


class Section(BaseModel):
    """A class section (cohort)."""

    __tablename__ = 'sections'

    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), unique=True, nullable=False)

    courses = db.relationship('Course', backref='section', lazy='dynamic')
    students = db.relationship('Student', backref='section', lazy='dynamic')

    def __repr__(self):
        return f'<Section {self.code}>'


class Course(BaseModel):
    """A course taught within one section."""

    __tablename__ = 'courses'

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(20), nullable=False)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=False, index=True)

    def __repr__(self):
        return f'<Course {self.code}>'


class Student(BaseModel):
    """Student enrolled in a section and a set of its courses."""

    __tablename__ = 'students'

    student_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=False, index=True)

    courses = db.relationship('Course', secondary=enrollments, lazy='subquery',
                              backref=db.backref('students', lazy='dynamic'))

    def to_dict(self, exclude: list = None) -> dict:
        result = super().to_dict(exclude=exclude)
        result['course_ids'] = sorted(c.id for c in self.courses)
        return result

    def __repr__(self):
        return f'<Student {self.student_number}>'
