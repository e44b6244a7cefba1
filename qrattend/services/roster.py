"""Roster lookups consumed by the session engine."""
from abc import ABC, abstractmethod
from typing import List, Optional

from qrattend import db
from qrattend.models.section import Course, Section, Student
from qrattend.services.domain import CourseRef, StudentRef


class RosterLookup(ABC):
    """Read-only view of sections, courses and enrolments."""

    @abstractmethod
    def section_exists(self, section_id) -> bool:
        pass

    @abstractmethod
    def get_course(self, course_id) -> Optional[CourseRef]:
        pass

    @abstractmethod
    def get_student(self, student_id) -> Optional[StudentRef]:
        pass

    @abstractmethod
    def course_roster(self, section_id, course_id) -> List:
        """Ids of students in the section enrolled in the course, ordered by id."""


class SQLRosterLookup(RosterLookup):
    """RosterLookup over the Section, Course and Student tables."""

    def section_exists(self, section_id) -> bool:
        return db.session.get(Section, section_id) is not None

    def get_course(self, course_id) -> Optional[CourseRef]:
        course = db.session.get(Course, course_id)
        if course is None:
            return None
        return CourseRef(id=course.id, section_id=course.section_id)

    def get_student(self, student_id) -> Optional[StudentRef]:
        student = db.session.get(Student, student_id)
        if student is None:
            return None
        return StudentRef(
            id=student.id,
            section_id=student.section_id,
            course_ids=frozenset(c.id for c in student.courses)
        )

    def course_roster(self, section_id, course_id) -> List:
        students = Student.query.filter(
            Student.section_id == section_id,
            Student.courses.any(Course.id == course_id)
        ).order_by(Student.id).all()
        return [s.id for s in students]
