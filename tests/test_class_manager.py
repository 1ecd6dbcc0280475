"""
Tests for class administration
"""
import sqlite3
from datetime import datetime

import pytest

from qrattend.modules.class_manager import ClassManager
from qrattend.modules.schedule_evaluator import ClockReading

CLASS_DATA = {
    'course_code': 'CS101',
    'course_name': 'Intro to Computing',
    'section': 'A',
    'room': 'R101',
    'schedule': 'MWF 09:00 AM - 11:00 AM',
    'lecturer_id': 'L001',
    'year_level': '1st Year'
}


@pytest.fixture
def class_manager(db_manager):
    return ClassManager(db_manager)


def test_create_and_get(class_manager):
    result = class_manager.create_class(CLASS_DATA)

    assert result['success']
    assert result['schedule_warnings'] == []

    descriptor = class_manager.get_class(result['class_id'])
    assert descriptor.class_id == str(result['class_id'])
    assert descriptor.course_code == 'CS101'
    assert descriptor.schedule == 'MWF 09:00 AM - 11:00 AM'


def test_create_requires_fields(class_manager):
    result = class_manager.create_class({**CLASS_DATA, 'room': ' '})

    assert not result['success']
    assert result['error_type'] == 'validation_error'
    assert 'room' in result['error']


def test_create_rejects_unknown_year_level(class_manager):
    assert class_manager.create_class({**CLASS_DATA, 'year_level': '9th Year'})['error_type'] == 'validation_error'


def test_create_rejects_schedule_without_rules(class_manager):
    result = class_manager.create_class({**CLASS_DATA, 'schedule': 'Someday 9:00 AM - 10:00 AM'})

    assert result['error_type'] == 'invalid_schedule'


def test_create_reports_skipped_entries(class_manager):
    result = class_manager.create_class({**CLASS_DATA, 'schedule': 'MWF 09:00 AM - 11:00 AM; Funday 1:00 PM - 2:00 PM'})

    assert result['success']
    assert len(result['schedule_warnings']) == 1


def test_lecturer_classes_and_deactivate(class_manager):
    first = class_manager.create_class(CLASS_DATA)['class_id']
    class_manager.create_class({**CLASS_DATA, 'section': 'B'})
    class_manager.create_class({**CLASS_DATA, 'lecturer_id': 'L002'})

    assert [c['section'] for c in class_manager.get_classes_by_lecturer('L001')] == ['A', 'B']

    assert class_manager.deactivate_class(first)
    assert class_manager.get_class(first) is None
    assert len(class_manager.get_all_classes()) == 2


def test_update_schedule(class_manager):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    assert class_manager.update_schedule(class_id, 'TTH 1:00 PM - 2:30 PM')['success']
    assert class_manager.get_class(class_id).schedule == 'TTH 1:00 PM - 2:30 PM'
    assert class_manager.update_schedule(class_id, 'never')['error_type'] == 'invalid_schedule'
    assert class_manager.update_schedule(999, 'TTH 1:00 PM - 2:30 PM')['error_type'] == 'not_found'


def test_schedule_status(class_manager):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    status = class_manager.get_schedule_status(class_id, ClockReading.from_datetime(datetime(2024, 5, 15, 10, 0)))

    assert status['in_session']
    assert status['session_date'] == '2024-05-15'
    assert status['rules'][0]['days'] == [1, 3, 5]

    closed = class_manager.get_schedule_status(class_id, ClockReading.from_datetime(datetime(2024, 5, 14, 10, 0)))
    assert not closed['in_session']
    assert closed['session_date'] is None

    assert class_manager.get_schedule_status(999, ClockReading.from_datetime(datetime(2024, 5, 14))) is None


def test_classes_in_session(class_manager):
    class_manager.create_class(CLASS_DATA)
    class_manager.create_class({**CLASS_DATA, 'section': 'B', 'schedule': 'TTH 09:00 AM - 11:00 AM'})

    wednesday = ClockReading.from_datetime(datetime(2024, 5, 15, 10, 0))

    assert [c['section'] for c in class_manager.get_classes_in_session(wednesday)] == ['A']
    assert class_manager.get_classes_in_session(wednesday, lecturer_id='L002') == []


def test_update_class_fields(class_manager):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    result = class_manager.update_class(class_id, {'room': ' R202 ', 'section': 'C', 'lecturer_id': 'ignored'})

    assert result['success']
    assert result['class']['room'] == 'R202'
    assert result['class']['section'] == 'C'
    assert result['class']['lecturer_id'] == 'L001'


def test_update_class_validation(class_manager):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    assert class_manager.update_class(class_id, {})['error_type'] == 'validation_error'
    assert class_manager.update_class(class_id, {'course_name': ''})['error_type'] == 'validation_error'
    assert class_manager.update_class(class_id, {'year_level': '5th Year'})['error_type'] == 'validation_error'


def test_deactivate_twice(class_manager):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    assert class_manager.deactivate_class(class_id)
    assert not class_manager.deactivate_class(class_id)


def test_database_errors_are_reported_not_raised(class_manager, db_manager, monkeypatch):
    class_id = class_manager.create_class(CLASS_DATA)['class_id']

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError('disk I/O error')

    monkeypatch.setattr(db_manager, 'execute_query', broken)
    monkeypatch.setattr(db_manager, 'execute_update', broken)

    assert class_manager.get_all_classes() == []
    assert class_manager.get_classes_by_lecturer('L001') == []
    assert class_manager.get_class(class_id) is None
    assert class_manager.update_schedule(class_id, 'TTH 1:00 PM - 2:30 PM')['error_type'] == 'database_error'
    assert not class_manager.deactivate_class(class_id)
    assert class_manager.create_class(CLASS_DATA)['error_type'] == 'database_error'
