# QR Class Attendance System - Package
"""
Class attendance tracking with student QR codes.
Lecturers scan a student's code during a scheduled class session; the
admission engine decides whether the scan becomes an attendance record.
"""

__version__ = "1.0.0"
__description__ = "Class attendance tracking with schedule-aware QR code admission"

from .modules.admission_engine import AdmissionEngine, AdmissionResult, AdmissionState
from .modules.attendance_store import AttendanceEvent, ClassDescriptor, Recorder, SQLiteAttendanceStore, StoreError
from .modules.duplicate_tracker import SessionDuplicateTracker, SessionKey
from .modules.qr_generator import QRGenerator, ScannedIdentity, format_payload
from .modules.schedule_evaluator import ClockReading, FixedClock, SystemClock, is_in_session
from .modules.schedule_parser import ScheduleRule, parse_schedule

__all__ = [
    'AdmissionEngine',
    'AdmissionResult',
    'AdmissionState',
    'AttendanceEvent',
    'ClassDescriptor',
    'ClockReading',
    'FixedClock',
    'QRGenerator',
    'Recorder',
    'SQLiteAttendanceStore',
    'ScannedIdentity',
    'ScheduleRule',
    'SessionDuplicateTracker',
    'SessionKey',
    'StoreError',
    'SystemClock',
    'format_payload',
    'is_in_session',
    'parse_schedule'
]
