"""
Class Manager Module - QR Class Attendance System

This module handles the classes attendance is taken for. Each class carries
its course details, the lecturer teaching it, and the free-text schedule the
admission engine evaluates before accepting scans.

Features:
- Class creation with schedule validation
- Class lookup by ID and by lecturer
- Schedule updates and deactivation
- Which classes are in session right now
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from qrattend.modules.attendance_store import ClassDescriptor
from qrattend.modules.schedule_evaluator import ClockReading, find_active_window
from qrattend.modules.schedule_parser import parse_schedule

YEAR_LEVELS = ('1st Year', '2nd Year', '3rd Year', '4th Year')


class ClassManager:
    """
    Class administration for the attendance system.
    """

    REQUIRED_FIELDS = ('course_code', 'course_name', 'section', 'room', 'schedule', 'lecturer_id')
    UPDATABLE_FIELDS = ('course_code', 'course_name', 'faculty_name', 'section', 'room', 'schedule', 'year_level')

    def __init__(self, database_manager):
        """
        Initialize the class manager with database connection.

        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def create_class(self, class_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new class.

        Args:
            class_data (Dict[str, Any]): course_code, course_name, section, room,
                schedule, lecturer_id and optionally faculty_name and year_level

        Returns:
            Dict[str, Any]: Creation result with the new class ID and any
                schedule warnings
        """
        missing = [name for name in self.REQUIRED_FIELDS if not str(class_data.get(name) or '').strip()]
        if missing:
            return {
                'success': False,
                'error': f"Missing required fields: {', '.join(missing)}",
                'error_type': 'validation_error'
            }

        year_level = class_data.get('year_level')
        if year_level and year_level not in YEAR_LEVELS:
            return {
                'success': False,
                'error': f"Year level must be one of: {', '.join(YEAR_LEVELS)}",
                'error_type': 'validation_error'
            }

        parsed = parse_schedule(class_data['schedule'])
        if parsed.is_empty:
            return {
                'success': False,
                'error': 'Schedule has no valid entries, e.g. "MWF 09:00 AM - 11:00 AM"',
                'error_type': 'invalid_schedule',
                'schedule_warnings': [f"{segment}: {reason}" for segment, reason in parsed.skipped]
            }

        try:
            class_id = self.db.execute_update(
                """INSERT INTO classes
                   (course_code, course_name, faculty_name, section, room, schedule, lecturer_id, year_level)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    class_data['course_code'].strip(),
                    class_data['course_name'].strip(),
                    class_data.get('faculty_name'),
                    class_data['section'].strip(),
                    class_data['room'].strip(),
                    class_data['schedule'].strip(),
                    str(class_data['lecturer_id']),
                    year_level
                )
            )
        except sqlite3.Error as e:
            self.logger.error(f"Class creation failed: {str(e)}")
            return {
                'success': False,
                'error': 'Failed to create class',
                'error_type': 'database_error'
            }

        self.logger.info(f"Class {class_data['course_code']} created with ID {class_id}")
        return {
            'success': True,
            'class_id': class_id,
            'schedule_warnings': [f"{segment}: {reason}" for segment, reason in parsed.skipped]
        }

    def get_class_by_id(self, class_id) -> Optional[Dict[str, Any]]:
        """
        Get an active class record by ID.

        Args:
            class_id: Class ID

        Returns:
            Dict[str, Any]: Class record or None
        """
        try:
            return self.db.execute_query(
                "SELECT * FROM classes WHERE id = ? AND is_active = 1",
                (class_id,),
                fetch_all=False
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to get class {class_id}: {str(e)}")
            return None

    def get_class(self, class_id) -> Optional[ClassDescriptor]:
        """Get an active class as the descriptor the admission engine uses."""
        record = self.get_class_by_id(class_id)
        return ClassDescriptor.from_record(record) if record else None

    def get_classes_by_lecturer(self, lecturer_id) -> List[Dict[str, Any]]:
        """
        Get active classes taught by a lecturer.

        Args:
            lecturer_id: Lecturer ID

        Returns:
            List[Dict[str, Any]]: Class records
        """
        try:
            return self.db.execute_query(
                """SELECT * FROM classes
                   WHERE lecturer_id = ? AND is_active = 1
                   ORDER BY course_code, section""",
                (str(lecturer_id),)
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to get classes for lecturer {lecturer_id}: {str(e)}")
            return []

    def get_all_classes(self) -> List[Dict[str, Any]]:
        try:
            return self.db.execute_query(
                "SELECT * FROM classes WHERE is_active = 1 ORDER BY course_code, section"
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to get classes: {str(e)}")
            return []

    def update_class(self, class_id, class_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update the details of an active class.

        Args:
            class_id: Class ID
            class_data (Dict[str, Any]): Any of course_code, course_name,
                faculty_name, section, room, schedule and year_level

        Returns:
            Dict[str, Any]: Update result with the updated class record
        """
        updates = {name: class_data[name] for name in self.UPDATABLE_FIELDS if name in class_data}
        if not updates:
            return {'success': False, 'error': 'No fields to update', 'error_type': 'validation_error'}

        blank = [
            name for name in self.REQUIRED_FIELDS
            if name in updates and not str(updates[name] or '').strip()
        ]
        if blank:
            return {
                'success': False,
                'error': f"Fields cannot be empty: {', '.join(blank)}",
                'error_type': 'validation_error'
            }

        if updates.get('year_level') and updates['year_level'] not in YEAR_LEVELS:
            return {
                'success': False,
                'error': f"Year level must be one of: {', '.join(YEAR_LEVELS)}",
                'error_type': 'validation_error'
            }

        warnings = []
        if 'schedule' in updates:
            parsed = parse_schedule(str(updates['schedule']))
            if parsed.is_empty:
                return {
                    'success': False,
                    'error': 'Schedule has no valid entries',
                    'error_type': 'invalid_schedule',
                    'schedule_warnings': [f"{segment}: {reason}" for segment, reason in parsed.skipped]
                }
            warnings = [f"{segment}: {reason}" for segment, reason in parsed.skipped]

        values = {
            name: value.strip() if isinstance(value, str) else value
            for name, value in updates.items()
        }
        assignments = ', '.join(f"{name} = ?" for name in values)

        try:
            affected_rows = self.db.execute_update(
                f"""UPDATE classes SET {assignments}, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND is_active = 1""",
                (*values.values(), class_id)
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update class {class_id}: {str(e)}")
            return {'success': False, 'error': 'Failed to update class', 'error_type': 'database_error'}

        if affected_rows == 0:
            return {'success': False, 'error': 'Class not found', 'error_type': 'not_found'}

        self.logger.info(f"Class {class_id} updated: {', '.join(values)}")
        return {
            'success': True,
            'class': self.get_class_by_id(class_id),
            'schedule_warnings': warnings
        }

    def update_schedule(self, class_id, schedule: str) -> Dict[str, Any]:
        """Replace a class schedule."""
        return self.update_class(class_id, {'schedule': schedule})

    def deactivate_class(self, class_id) -> bool:
        """
        Soft delete a class.

        Returns:
            bool: True if a class was deactivated
        """
        try:
            affected_rows = self.db.execute_update(
                "UPDATE classes SET is_active = 0, updated_at = CURRENT_TIMESTAMP WHERE id = ? AND is_active = 1",
                (class_id,)
            )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to deactivate class {class_id}: {str(e)}")
            return False

        if affected_rows > 0:
            self.logger.info(f"Class {class_id} deactivated")
        return affected_rows > 0

    def get_schedule_status(self, class_id, reading: ClockReading) -> Optional[Dict[str, Any]]:
        """
        Describe a class schedule and whether it is in session at the reading.

        Returns:
            Dict[str, Any]: Schedule status, or None when the class does not exist
        """
        record = self.get_class_by_id(class_id)
        if not record:
            return None

        parsed = parse_schedule(record['schedule'])
        window = find_active_window(parsed.rules, reading)

        status = {
            'class_id': record['id'],
            'schedule': record['schedule'],
            'in_session': window is not None,
            'current_time': reading.describe(),
            'session_date': window.session_date.isoformat() if window else None
        }
        status.update(parsed.to_dict())
        return status

    def get_classes_in_session(self, reading: ClockReading, lecturer_id=None) -> List[Dict[str, Any]]:
        """
        List active classes whose schedule covers the reading.

        Args:
            reading (ClockReading): Point in time to check
            lecturer_id: Only consider this lecturer's classes

        Returns:
            List[Dict[str, Any]]: Class records in session
        """
        classes = (
            self.get_classes_by_lecturer(lecturer_id) if lecturer_id is not None
            else self.get_all_classes()
        )
        return [
            record for record in classes
            if find_active_window(parse_schedule(record['schedule']).rules, reading) is not None
        ]
