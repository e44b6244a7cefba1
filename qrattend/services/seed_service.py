"""Database seeding service for test data."""
import logging

from qrattend import db
from qrattend.models.section import Course, Section, Student
from qrattend.models.user import User, UserRole

logger = logging.getLogger(__name__)

SECTIONS = [('Computer Science A', 'CSE-A'), ('Computer Science B', 'CSE-B')]
COURSES = [('Data Structures', 'CSE201'), ('Operating Systems', 'CSE301'), ('Databases', 'CSE311')]
STUDENTS_PER_SECTION = 10


class SeedService:
    """Service to seed database with test data."""

    @staticmethod
    def seed_all():
        """Seed all test data."""
        sections = SeedService.seed_sections()
        SeedService.seed_staff(sections)
        SeedService.seed_students(sections)

    @staticmethod
    def seed_sections():
        """Seed sections with their courses."""
        sections = []
        for name, code in SECTIONS:
            section = Section.query.filter_by(code=code).first()
            if not section:
                section = Section(name=name, code=code)
                db.session.add(section)
                db.session.flush()
                for course_name, course_code in COURSES:
                    db.session.add(Course(name=course_name, code=course_code, section_id=section.id))
            sections.append(section)

        db.session.commit()
        logger.info(f"Seeded {len(sections)} sections")
        return sections

    @staticmethod
    def seed_staff(sections):
        """Seed an instructor and one class representative per section."""
        staff = [('instructor@qrattend.local', 'Instructor', UserRole.INSTRUCTOR, None)]
        for section in sections:
            staff.append((f"cr.{section.code.lower()}@qrattend.local",
                          f"CR {section.code}", UserRole.CR, section.id))

        for email, name, role, section_id in staff:
            if User.query.filter_by(email=email).first():
                continue
            user = User(email=email, name=name, role=role, section_id=section_id)
            user.set_password('password123')
            db.session.add(user)

        db.session.commit()

    @staticmethod
    def seed_students(sections):
        """Seed students enrolled in every course of their section."""
        for section in sections:
            courses = Course.query.filter_by(section_id=section.id).all()
            for i in range(1, STUDENTS_PER_SECTION + 1):
                number = f"{section.code}-{i:03d}"
                if Student.query.filter_by(student_number=number).first():
                    continue

                student = Student(
                    student_number=number,
                    name=f"Student {number}",
                    email=f"{number.lower()}@qrattend.local",
                    section_id=section.id
                )
                student.courses.extend(courses)
                db.session.add(student)
                db.session.flush()

                user = User(
                    email=student.email,
                    name=student.name,
                    role=UserRole.STUDENT,
                    section_id=section.id,
                    student_id=student.id
                )
                user.set_password('student123')
                db.session.add(user)

        db.session.commit()
        logger.info(f"Seeded {Student.query.count()} students")
