"""
QR Class Attendance - Test Configuration and Fixtures
"""
from datetime import datetime

import pytest

from qrattend.modules.attendance_store import ClassDescriptor, Recorder, SQLiteAttendanceStore, StoreError
from qrattend.modules.database_manager import DatabaseManager
from qrattend.modules.schedule_evaluator import FixedClock
from qrattend.web import create_app

# 2024-05-15 is a Wednesday
WEDNESDAY_10AM = datetime(2024, 5, 15, 10, 0)


class SpyStore:
    """In-memory record store that records calls and can be told to fail."""

    def __init__(self):
        self.records = []
        self.create_calls = 0
        self.find_calls = 0
        self.fail_create = False
        self.fail_find = False
        self.fail_with = StoreError('store unreachable')

    def create_attendance_record(self, event):
        self.create_calls += 1
        if self.fail_create:
            raise self.fail_with
        self.records.append(event)
        return len(self.records)

    def find_attendance_record(self, class_id, subject_id, session_date):
        self.find_calls += 1
        if self.fail_find:
            raise self.fail_with
        for event in self.records:
            if (event.class_id, event.subject_id, event.session_date) == (class_id, subject_id, session_date):
                return event
        return None


@pytest.fixture
def clock():
    return FixedClock(WEDNESDAY_10AM)


@pytest.fixture
def spy_store():
    return SpyStore()


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(tmp_path / 'attendance.db', timeout=1.0)
    yield manager
    manager.close_all_connections()


@pytest.fixture
def sqlite_store(db_manager):
    return SQLiteAttendanceStore(db_manager)


@pytest.fixture
def mwf_class():
    return ClassDescriptor(
        class_id='42',
        course_code='CS101',
        course_name='Intro to Computing',
        section='A',
        room='R101',
        schedule='MWF 09:00 AM - 11:00 AM',
        lecturer_id='L001'
    )


@pytest.fixture
def recorder():
    return Recorder(recorder_id='L001', recorder_name='Dr. Ada Reyes')


@pytest.fixture
def app(tmp_path, clock):
    app = create_app('testing', overrides={
        'DATABASE_PATH': tmp_path / 'web.db',
        'REPORTS_FOLDER': tmp_path / 'exports',
        'LOG_FILE': tmp_path / 'logs' / 'attendance.log'
    }, clock=clock)
    yield app
    app.extensions['qrattend']['db'].close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()
