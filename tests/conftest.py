"""Shared fixtures for engine and API tests."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from qrattend import create_app, db
from qrattend.models.section import Course, Section, Student
from qrattend.models.user import User, UserRole
from qrattend.services.domain import Actor, ActorRole, CourseRef, EngineSettings, StudentRef
from qrattend.services.engine import EXTENSION_KEY
from qrattend.services.memory_store import InMemorySessionStore
from qrattend.services.payload_codec import PayloadCodec
from qrattend.services.roster import RosterLookup
from qrattend.services.scan_processor import ScanProcessor
from qrattend.services.session_manager import SessionManager

T0 = datetime(2026, 10, 19, 9, 0, 0)

SECTION = 1
OTHER_SECTION = 2
COURSE = 10
OTHER_COURSE = 11
FOREIGN_COURSE = 20
ST1, ST2, ST3 = 101, 102, 103
NOT_ENROLLED = 104
OTHER_SECTION_STUDENT = 201

ANCHOR = (23.81, 90.41)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StaticRoster(RosterLookup):
    """Roster held in dictionaries."""

    def __init__(self):
        self.sections = {SECTION, OTHER_SECTION}
        self.courses = {
            COURSE: CourseRef(id=COURSE, section_id=SECTION),
            OTHER_COURSE: CourseRef(id=OTHER_COURSE, section_id=SECTION),
            FOREIGN_COURSE: CourseRef(id=FOREIGN_COURSE, section_id=OTHER_SECTION),
        }
        self.students = {
            ST1: StudentRef(id=ST1, section_id=SECTION, course_ids=frozenset({COURSE})),
            ST2: StudentRef(id=ST2, section_id=SECTION, course_ids=frozenset({COURSE})),
            ST3: StudentRef(id=ST3, section_id=SECTION, course_ids=frozenset({COURSE, OTHER_COURSE})),
            NOT_ENROLLED: StudentRef(id=NOT_ENROLLED, section_id=SECTION, course_ids=frozenset({OTHER_COURSE})),
            OTHER_SECTION_STUDENT: StudentRef(id=OTHER_SECTION_STUDENT, section_id=OTHER_SECTION,
                                              course_ids=frozenset({FOREIGN_COURSE})),
        }

    def section_exists(self, section_id) -> bool:
        return section_id in self.sections

    def get_course(self, course_id):
        return self.courses.get(course_id)

    def get_student(self, student_id):
        return self.students.get(student_id)

    def course_roster(self, section_id, course_id):
        return sorted(
            s.id for s in self.students.values()
            if s.section_id == section_id and course_id in s.course_ids
        )


@pytest.fixture(scope='session')
def codec():
    """Codec with a fixed key; key derivation is slow so it is shared."""
    return PayloadCodec('test-qr-encryption-key')


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def roster():
    return StaticRoster()


@pytest.fixture
def manager(store, codec, roster, clock):
    return SessionManager(store, codec, roster, settings=EngineSettings(), clock=clock)


@pytest.fixture
def scanner(store, codec, roster, clock):
    return ScanProcessor(store, codec, roster, settings=EngineSettings(), clock=clock)


@pytest.fixture
def instructor():
    return Actor(id=1, role=ActorRole.INSTRUCTOR)


@pytest.fixture
def admin():
    return Actor(id=99, role=ActorRole.ADMIN)


# --- Flask application fixtures ---

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def app_clock(app):
    """Freeze the engine clock of the app under test."""
    frozen = FrozenClock()
    engine = app.extensions[EXTENSION_KEY]
    engine.manager.clock = frozen
    engine.scanner.clock = frozen
    return frozen


def _user(email, role, section_id=None, student_id=None):
    user = User(email=email, name=email.split('@')[0], role=role,
                section_id=section_id, student_id=student_id)
    user.set_password('password123')
    db.session.add(user)
    return user


@pytest.fixture
def campus(app):
    """Seed two sections, their courses, students and staff.

    Returns plain ids and bearer headers so tests never touch detached rows.
    """
    section = Section(name='Section A', code='A')
    other_section = Section(name='Section B', code='B')
    db.session.add_all([section, other_section])
    db.session.flush()

    course = Course(name='Algorithms', code='CSE221', section_id=section.id)
    other_course = Course(name='Compilers', code='CSE421', section_id=other_section.id)
    db.session.add_all([course, other_course])
    db.session.flush()

    students = []
    for number in ('ST1', 'ST2', 'ST3'):
        student = Student(student_number=number, name=f'Student {number}', section_id=section.id)
        student.courses.append(course)
        students.append(student)
    outsider = Student(student_number='ST9', name='Student ST9', section_id=other_section.id)
    outsider.courses.append(other_course)
    db.session.add_all(students + [outsider])
    db.session.flush()

    instructor = _user('instructor@example.com', UserRole.INSTRUCTOR)
    other_instructor = _user('other@example.com', UserRole.INSTRUCTOR)
    admin = _user('admin@example.com', UserRole.ADMIN)
    cr = _user('cr@example.com', UserRole.CR, section_id=other_section.id)
    student_user = _user('st1@example.com', UserRole.STUDENT, section_id=section.id,
                         student_id=students[0].id)
    db.session.commit()

    def headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}

    return {
        'section_id': section.id,
        'other_section_id': other_section.id,
        'course_id': course.id,
        'other_course_id': other_course.id,
        'student_ids': [s.id for s in students],
        'outsider_id': outsider.id,
        'instructor': headers(instructor),
        'other_instructor': headers(other_instructor),
        'admin': headers(admin),
        'cr': headers(cr),
        'student': headers(student_user),
    }
