"""
Attendance Store Module - QR Class Attendance System

The record store is the system of record for attendance events. The
admission engine only needs two operations from it (create and find); this
module defines those records, the store protocol, and a SQLite-backed
implementation on top of ``DatabaseManager``.

It is also where loosely shaped records coming from other parts of the
system (``lecturerId`` vs ``lecturer_id`` vs ``id`` and so on) are normalized
into the canonical ``Recorder`` and ``ClassDescriptor`` types.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol

STATUS_PRESENT = 'present'
STATUS_ABSENT = 'absent'
STATUS_LATE = 'late'
STATUS_EXCUSED = 'excused'

ATTENDANCE_STATUSES = (STATUS_PRESENT, STATUS_ABSENT, STATUS_LATE, STATUS_EXCUSED)


class StoreError(Exception):
    """Raised when the record store cannot complete an operation."""


def _pick(data: Mapping[str, Any], keys, default=None):
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return default


@dataclass(frozen=True)
class Recorder:
    """The lecturer (or operator) performing the scan."""
    recorder_id: str
    recorder_name: str

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> 'Recorder':
        """Build a recorder from a lecturer or user record of any common shape."""
        record = record or {}
        # Wrapped records keep the original document under 'originalData'
        if isinstance(record.get('originalData'), Mapping):
            record = record['originalData']

        recorder_id = _pick(record, ('recorder_id', 'lecturerId', 'lecturer_id', '_id', 'id'), 'N/A')
        recorder_name = _pick(
            record, ('recorder_name', 'name', 'fullName', 'full_name', 'lecturerName'), 'Unknown Lecturer'
        )
        return cls(recorder_id=str(recorder_id), recorder_name=str(recorder_name))


@dataclass(frozen=True)
class ClassDescriptor:
    """The class a scan is recorded against."""
    class_id: str
    course_code: str
    course_name: str
    section: str = 'N/A'
    room: str = 'N/A'
    schedule: Optional[str] = None
    lecturer_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'ClassDescriptor':
        """
        Build a class descriptor from a class record.

        Raises:
            ValueError: If the record has no identifier or course code
        """
        class_id = _pick(record, ('class_id', 'classId', '_id', 'id'))
        course_code = _pick(record, ('course_code', 'courseCode'))
        if class_id is None or course_code is None:
            raise ValueError('Class record must include an id and a course code')

        return cls(
            class_id=str(class_id),
            course_code=str(course_code),
            course_name=str(_pick(record, ('course_name', 'courseName'), 'Unknown Course')),
            section=str(_pick(record, ('section',), 'N/A')),
            room=str(_pick(record, ('room',), 'N/A')),
            schedule=_pick(record, ('schedule', 'schedule_text')),
            lecturer_id=_pick(record, ('lecturer_id', 'lecturerId'))
        )


@dataclass(frozen=True)
class AttendanceEvent:
    """One admitted attendance entry."""
    subject_id: str
    display_name: str
    contact: str
    class_id: str
    course_code: str
    course_name: str
    section: str
    room: str
    schedule_text: str
    recorder_id: str
    recorder_name: str
    occurred_at: datetime
    session_date: date
    status: str = STATUS_PRESENT
    idempotency_key: str = ''

    @staticmethod
    def make_idempotency_key(subject_id: str, course_code: str, occurred_at: datetime) -> str:
        return f"{subject_id}_{course_code}_{int(occurred_at.timestamp() * 1000)}"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['occurred_at'] = self.occurred_at.isoformat()
        data['session_date'] = self.session_date.isoformat()
        return data


class RecordStore(Protocol):
    """Operations the admission engine needs from the system of record."""

    def create_attendance_record(self, event: AttendanceEvent) -> int:
        ...

    def find_attendance_record(self, class_id: str, subject_id: str,
                               session_date: date) -> Optional[AttendanceEvent]:
        ...


_EVENT_COLUMNS = (
    'subject_id', 'display_name', 'contact', 'class_id', 'course_code', 'course_name',
    'section', 'room', 'schedule_text', 'recorder_id', 'recorder_name',
    'session_date', 'occurred_at', 'status', 'idempotency_key'
)


_STATUS_COUNTS = ', '.join(
    f"SUM(CASE WHEN status = '{status}' THEN 1 ELSE 0 END) AS {status}" for status in ATTENDANCE_STATUSES
)


def event_from_row(row: Mapping[str, Any]) -> AttendanceEvent:
    return AttendanceEvent(
        subject_id=row['subject_id'],
        display_name=row['display_name'],
        contact=row['contact'],
        class_id=row['class_id'],
        course_code=row['course_code'],
        course_name=row['course_name'],
        section=row['section'],
        room=row['room'],
        schedule_text=row['schedule_text'],
        recorder_id=row['recorder_id'],
        recorder_name=row['recorder_name'],
        occurred_at=datetime.fromisoformat(row['occurred_at']),
        session_date=date.fromisoformat(row['session_date']),
        status=row['status'],
        idempotency_key=row['idempotency_key'] or ''
    )


class SQLiteAttendanceStore:
    """
    Record store backed by the attendance table.
    Wraps every sqlite failure in ``StoreError`` so callers see one error type.
    """

    def __init__(self, database_manager):
        """
        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def create_attendance_record(self, event: AttendanceEvent) -> int:
        """
        Persist an attendance event.

        Args:
            event (AttendanceEvent): Event to store

        Returns:
            int: New attendance record ID

        Raises:
            StoreError: If the database rejects or cannot perform the insert
        """
        values = event.to_dict()
        placeholders = ', '.join('?' for _ in _EVENT_COLUMNS)
        try:
            record_id = self.db.execute_update(
                f"INSERT INTO attendance ({', '.join(_EVENT_COLUMNS)}) VALUES ({placeholders})",
                tuple(values[column] for column in _EVENT_COLUMNS)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not save attendance for {event.subject_id}: {e}") from e

        self.logger.info(f"Attendance record {record_id} stored for {event.subject_id} in class {event.class_id}")
        return record_id

    def find_attendance_record(self, class_id: str, subject_id: str,
                               session_date: date) -> Optional[AttendanceEvent]:
        """
        Find the earliest attendance record for a student in one class session.

        Raises:
            StoreError: If the lookup fails
        """
        try:
            row = self.db.execute_query(
                """SELECT * FROM attendance
                   WHERE class_id = ? AND subject_id = ? AND session_date = ?
                   ORDER BY occurred_at ASC
                   LIMIT 1""",
                (str(class_id), subject_id, session_date.isoformat()),
                fetch_all=False
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not look up attendance for {subject_id}: {e}") from e

        return event_from_row(row) if row else None

    def list_class_attendance(self, class_id: str, session_date: date = None) -> List[Dict[str, Any]]:
        """
        List attendance rows for a class, optionally for a single session date.

        Raises:
            StoreError: If the query fails
        """
        query = "SELECT * FROM attendance WHERE class_id = ?"
        params = [str(class_id)]
        if session_date is not None:
            query += " AND session_date = ?"
            params.append(session_date.isoformat())
        query += " ORDER BY occurred_at DESC"

        try:
            return self.db.execute_query(query, tuple(params))
        except sqlite3.Error as e:
            raise StoreError(f"Could not list attendance for class {class_id}: {e}") from e

    def list_attendance_between(self, class_id: str, start_date: date,
                                end_date: date) -> List[Dict[str, Any]]:
        """
        List attendance rows for a class within an inclusive date range.

        Raises:
            StoreError: If the query fails
        """
        try:
            return self.db.execute_query(
                """SELECT * FROM attendance
                   WHERE class_id = ? AND session_date BETWEEN ? AND ?
                   ORDER BY session_date ASC, occurred_at ASC""",
                (str(class_id), start_date.isoformat(), end_date.isoformat())
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not list attendance for class {class_id}: {e}") from e

    def list_subject_attendance(self, subject_id: str) -> List[Dict[str, Any]]:
        """
        List attendance rows for one student across all classes.

        Raises:
            StoreError: If the query fails
        """
        try:
            return self.db.execute_query(
                "SELECT * FROM attendance WHERE subject_id = ? ORDER BY occurred_at DESC",
                (subject_id,)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not list attendance for {subject_id}: {e}") from e

    def update_status(self, record_id: int, status: str, notes: str = None) -> bool:
        """
        Change the status of an attendance record.

        Returns:
            bool: True if a record was updated

        Raises:
            ValueError: If the status is not a known attendance status
            StoreError: If the update fails
        """
        if status not in ATTENDANCE_STATUSES:
            raise ValueError(f"Invalid attendance status: {status}")

        try:
            affected_rows = self.db.execute_update(
                """UPDATE attendance
                   SET status = ?, notes = COALESCE(?, notes),
                       updated_at = CURRENT_TIMESTAMP
                   WHERE id = ?""",
                (status, notes, record_id)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not update attendance record {record_id}: {e}") from e

        return affected_rows > 0

    def get_attendance_record(self, record_id: int) -> Optional[Dict[str, Any]]:
        """
        Get one attendance row by ID.

        Raises:
            StoreError: If the lookup fails
        """
        try:
            return self.db.execute_query(
                "SELECT * FROM attendance WHERE id = ?", (record_id,), fetch_all=False
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not load attendance record {record_id}: {e}") from e

    def delete_attendance_record(self, record_id: int) -> bool:
        """
        Remove an attendance record.

        Returns:
            bool: True if a record was deleted

        Raises:
            StoreError: If the delete fails
        """
        try:
            affected_rows = self.db.execute_update("DELETE FROM attendance WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            raise StoreError(f"Could not delete attendance record {record_id}: {e}") from e

        return affected_rows > 0

    def summarize_subject(self, subject_id: str) -> List[Dict[str, Any]]:
        """
        Status counts for one student, one row per class, most recently attended first.

        Raises:
            StoreError: If the query fails
        """
        try:
            return self.db.execute_query(
                f"""SELECT class_id, course_code, course_name, section,
                           COUNT(*) AS total_records, {_STATUS_COUNTS},
                           MAX(occurred_at) AS last_attendance
                    FROM attendance
                    WHERE subject_id = ?
                    GROUP BY class_id
                    ORDER BY last_attendance DESC""",
                (subject_id,)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not summarize attendance for {subject_id}: {e}") from e

    def summarize_class_subjects(self, class_id: str) -> List[Dict[str, Any]]:
        """
        Status counts and attendance percentage for every student of a class,
        best attendance first. The percentage counts ``present`` records only.

        Raises:
            StoreError: If the query fails
        """
        try:
            return self.db.execute_query(
                f"""SELECT subject_id, display_name,
                           COUNT(*) AS total_records, {_STATUS_COUNTS},
                           ROUND(100.0 * SUM(CASE WHEN status = 'present' THEN 1 ELSE 0 END) / COUNT(*), 2)
                               AS attendance_percentage
                    FROM attendance
                    WHERE class_id = ?
                    GROUP BY subject_id
                    ORDER BY attendance_percentage DESC, subject_id ASC""",
                (str(class_id),)
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not summarize attendance for class {class_id}: {e}") from e
