"""Concurrent opens, scans and closes against the in-memory and SQL stores."""
import threading

import pytest

from qrattend import create_app, db
from qrattend.models.attendance import AttendanceRecord
from qrattend.models.attendance_session import AttendanceSession, SessionAttendance
from qrattend.models.section import Course, Section, Student
from qrattend.services.domain import AttendedStudent
from qrattend.services.record_store import SQLAttendanceRecordStore
from qrattend.services.roster import SQLRosterLookup
from qrattend.services.scan_processor import ScanProcessor
from qrattend.services.session_manager import SessionManager
from qrattend.services.session_store import SQLSessionStore
from qrattend.utils.errors import ConflictError, GoneError

from tests.conftest import COURSE, SECTION, ST1, T0, FrozenClock

WORKERS = 8


def run_concurrently(target, count=WORKERS):
    """Start count threads behind a barrier and collect results or errors."""
    barrier = threading.Barrier(count)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            value = target()
        except Exception as e:  # collected for assertions
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results, errors


def test_concurrent_opens_create_one_session(manager, instructor, store):
    results, errors = run_concurrently(lambda: manager.open(instructor, SECTION, COURSE))

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, ConflictError) for e in errors)
    assert store.find_active(SECTION, COURSE).session_id == results[0].session_id


def test_concurrent_scans_by_one_student_record_once(manager, scanner, instructor, store):
    session = manager.open(instructor, SECTION, COURSE)

    results, errors = run_concurrently(lambda: scanner.record_scan(ST1, session.qr_payload))

    assert len(results) == 1
    assert all(isinstance(e, ConflictError) for e in errors)
    assert len(store.get(session.session_id).attended_students) == 1


def test_concurrent_appends_of_distinct_students_are_all_kept(manager, instructor, store):
    session = manager.open(instructor, SECTION, COURSE)
    counter = iter(range(1000, 1000 + WORKERS))
    counter_lock = threading.Lock()

    def append():
        with counter_lock:
            student_id = next(counter)
        return store.append_attendance_if_absent(
            session.session_id, AttendedStudent(student_id=student_id, scanned_at=T0)
        )

    results, errors = run_concurrently(append)

    assert errors == []
    attended = store.get(session.session_id).attended_students
    assert sorted(a.student_id for a in attended) == list(range(1000, 1000 + WORKERS))


def test_concurrent_closes_succeed_once(manager, instructor):
    session = manager.open(instructor, SECTION, COURSE)

    results, errors = run_concurrently(
        lambda: manager.close(instructor, session.session_id, generate_record=False)
    )

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, ConflictError) for e in errors)


# --- File-backed SQLite, so the database constraints are raced ---

@pytest.fixture
def race_db(tmp_path):
    """App on a SQLite file shared by worker threads, with one seeded course."""
    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
    })
    with app.app_context():
        db.create_all()
        section = Section(name='Section A', code='A')
        db.session.add(section)
        db.session.flush()
        course = Course(name='Algorithms', code='CSE221', section_id=section.id)
        db.session.add(course)
        db.session.flush()
        students = []
        for n in range(WORKERS):
            student = Student(student_number=f'R{n}', name=f'Student R{n}', section_id=section.id)
            student.courses.append(course)
            students.append(student)
        db.session.add_all(students)
        db.session.commit()
        seeded = {
            'app': app,
            'section_id': section.id,
            'course_id': course.id,
            'student_ids': [s.id for s in students],
        }

    yield seeded

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def in_app(app, target):
    """Run target inside its own app context, as a request worker would."""
    def run():
        with app.app_context():
            return target()
    return run


@pytest.fixture
def sql_engine(race_db, codec):
    store = SQLSessionStore()
    clock = FrozenClock()
    manager = SessionManager(store, codec, SQLRosterLookup(), clock=clock,
                             record_store=SQLAttendanceRecordStore())
    scanner = ScanProcessor(store, codec, SQLRosterLookup(), clock=clock)
    return manager, scanner


def test_sql_concurrent_opens_create_one_session(race_db, sql_engine, instructor):
    manager, _ = sql_engine
    app = race_db['app']

    results, errors = run_concurrently(in_app(
        app, lambda: manager.open(instructor, race_db['section_id'], race_db['course_id'])
    ))

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, ConflictError) for e in errors)
    with app.app_context():
        assert AttendanceSession.query.count() == 1


def test_sql_concurrent_scans_by_one_student_record_once(race_db, sql_engine, instructor):
    manager, scanner = sql_engine
    app = race_db['app']
    student_id = race_db['student_ids'][0]
    with app.app_context():
        session = manager.open(instructor, race_db['section_id'], race_db['course_id'])

    results, errors = run_concurrently(in_app(
        app, lambda: scanner.record_scan(student_id, session.qr_payload)
    ))

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, ConflictError) for e in errors)
    with app.app_context():
        assert SessionAttendance.query.count() == 1


def test_sql_concurrent_scans_of_distinct_students_are_all_kept(race_db, sql_engine, instructor):
    manager, scanner = sql_engine
    app = race_db['app']
    pending = iter(race_db['student_ids'])
    pending_lock = threading.Lock()
    with app.app_context():
        session = manager.open(instructor, race_db['section_id'], race_db['course_id'])

    def scan():
        with pending_lock:
            student_id = next(pending)
        return scanner.record_scan(student_id, session.qr_payload)

    results, errors = run_concurrently(in_app(app, scan))

    assert errors == []
    with app.app_context():
        attended = manager.get(session.session_id).attended_students
    assert sorted(a.student_id for a in attended) == sorted(race_db['student_ids'])


def test_sql_scans_racing_close_match_saved_record(race_db, sql_engine, instructor):
    manager, scanner = sql_engine
    app = race_db['app']
    pending = iter(race_db['student_ids'][1:])
    pending_lock = threading.Lock()
    closer = []
    with app.app_context():
        session = manager.open(instructor, race_db['section_id'], race_db['course_id'])

    def scan_or_close():
        with pending_lock:
            student_id = next(pending, None)
        if student_id is None:
            closer.append(threading.current_thread())
            return manager.close(instructor, session.session_id)
        return scanner.record_scan(student_id, session.qr_payload)

    results, errors = run_concurrently(in_app(app, scan_or_close))

    assert len(closer) == 1
    assert len(results) + len(errors) == WORKERS
    assert all(isinstance(e, GoneError) for e in errors)
    with app.app_context():
        attended = {a.student_id for a in manager.get(session.session_id).attended_students}
        record = AttendanceRecord.query.filter_by(session_id=session.session_id).one()
        present = {e.student_id for e in record.entries if e.status == 'present'}
    assert present == attended
