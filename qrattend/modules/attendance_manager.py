"""
Attendance Manager Module - QR Class Attendance System

This module handles attendance operations for the web layer. Scans are
delegated to the admission engine; this class resolves the class and the
recorder, turns outcomes into response dictionaries and serves the attendance
listings and summaries.

Features:
- QR code scan processing for a class
- Pending scan sync
- Class and student attendance history
- Attendance status updates
- Per-session, per-student and per-class summaries
- Attendance record deletion
"""

import logging
from collections import Counter
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

from qrattend.modules.admission_engine import AdmissionEngine
from qrattend.modules.attendance_store import ATTENDANCE_STATUSES, Recorder, StoreError


class AttendanceManager:
    """
    Attendance processing for QR code scans and attendance history.
    """

    def __init__(self, engine: AdmissionEngine, store, class_manager):
        """
        Initialize the attendance manager.

        Args:
            engine (AdmissionEngine): Admission engine deciding on scans
            store: Record store holding attendance rows
            class_manager: Class manager used to resolve class IDs
        """
        self.engine = engine
        self.store = store
        self.class_manager = class_manager
        self.logger = logging.getLogger(__name__)

    def process_attendance_scan(self, qr_data: Any, class_id,
                                recorder_data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Process a QR code scan for attendance recording.

        Args:
            qr_data: Decoded QR text or identity mapping
            class_id: ID of the class being taught
            recorder_data (Mapping): Lecturer record of the person scanning

        Returns:
            Dict[str, Any]: Scan processing result
        """
        class_info = self.class_manager.get_class(class_id)
        if class_info is None:
            return {
                'success': False,
                'outcome': 'class_not_found',
                'message': 'Please select a class before scanning student QR codes.',
                'error_type': 'class_not_found'
            }

        result = self.engine.admit(qr_data, class_info, Recorder.from_record(recorder_data))
        return result.to_dict()

    def sync_pending(self) -> Dict[str, Any]:
        """Retry saving scans that were only recorded locally."""
        summary = self.engine.sync_pending()
        return {'success': summary['failed'] == 0, **summary}

    def get_class_attendance(self, class_id, session_date: date = None) -> List[Dict[str, Any]]:
        """
        Get attendance records for a class.

        Args:
            class_id: Class ID
            session_date (date): Restrict to one session date

        Returns:
            List[Dict[str, Any]]: Attendance records, newest first
        """
        try:
            return self.store.list_class_attendance(class_id, session_date)
        except StoreError as e:
            self.logger.error(f"Failed to get class attendance: {str(e)}")
            return []

    def get_student_attendance_history(self, subject_id: str, days: int = None) -> List[Dict[str, Any]]:
        """
        Get attendance history for a student.

        Args:
            subject_id (str): Student ID as encoded in the QR code
            days (int): Only include the last N days

        Returns:
            List[Dict[str, Any]]: Student's attendance records
        """
        try:
            records = self.store.list_subject_attendance(subject_id)
        except StoreError as e:
            self.logger.error(f"Failed to get student attendance history: {str(e)}")
            return []

        if days is not None:
            start_date = (self.engine.clock.now().date - timedelta(days=days)).isoformat()
            records = [record for record in records if record['session_date'] >= start_date]
        return records

    def update_attendance_status(self, attendance_id: int, new_status: str,
                                 notes: str = None) -> Dict[str, Any]:
        """
        Update attendance record status and add notes.

        Args:
            attendance_id (int): Attendance record ID
            new_status (str): One of present, absent, late, excused
            notes (str): Optional notes

        Returns:
            Dict[str, Any]: Update result
        """
        if new_status not in ATTENDANCE_STATUSES:
            return {
                'success': False,
                'message': f"Invalid attendance status: {new_status}",
                'error_type': 'validation_error'
            }

        try:
            updated = self.store.update_status(attendance_id, new_status, notes)
        except StoreError as e:
            self.logger.error(f"Failed to update attendance status: {str(e)}")
            return {'success': False, 'message': 'Could not update attendance', 'error_type': 'database_error'}

        if not updated:
            self.logger.warning(f"No attendance record found with ID: {attendance_id}")
            return {'success': False, 'message': 'Attendance record not found', 'error_type': 'not_found'}

        self.logger.info(f"Attendance record {attendance_id} updated to status: {new_status}")
        return {'success': True, 'message': f"Attendance updated to {new_status}"}

    def get_class_summary(self, class_id, session_date: date) -> Dict[str, Any]:
        """
        Get attendance counts for one class session.

        Returns:
            Dict[str, Any]: Totals and status breakdown
        """
        records = self.get_class_attendance(class_id, session_date)
        status_counts = Counter(record['status'] for record in records)

        return {
            'class_id': class_id,
            'session_date': session_date.isoformat(),
            'total_scans': len(records),
            'unique_students': len({record['subject_id'] for record in records}),
            'status_breakdown': {status: status_counts.get(status, 0) for status in ATTENDANCE_STATUSES}
        }

    def get_student_summary(self, subject_id: str) -> List[Dict[str, Any]]:
        """
        Get a student's attendance counts per class.

        Args:
            subject_id (str): Student ID as encoded in the QR code

        Returns:
            List[Dict[str, Any]]: One row per class with status counts and the
                last attendance time, most recent first
        """
        try:
            return self.store.summarize_subject(subject_id)
        except StoreError as e:
            self.logger.error(f"Failed to get student attendance summary: {str(e)}")
            return []

    def get_class_student_summary(self, class_id) -> List[Dict[str, Any]]:
        """
        Get attendance counts and percentage for every student of a class.

        Returns:
            List[Dict[str, Any]]: One row per student, highest percentage first
        """
        try:
            return self.store.summarize_class_subjects(class_id)
        except StoreError as e:
            self.logger.error(f"Failed to get class attendance summary: {str(e)}")
            return []

    def delete_attendance_record(self, attendance_id: int) -> Dict[str, Any]:
        """
        Delete an attendance record. The student can be scanned again for
        that session afterwards.

        Args:
            attendance_id (int): Attendance record ID

        Returns:
            Dict[str, Any]: Deletion result
        """
        try:
            record = self.store.get_attendance_record(attendance_id)
            deleted = record is not None and self.store.delete_attendance_record(attendance_id)
        except StoreError as e:
            self.logger.error(f"Failed to delete attendance record: {str(e)}")
            return {'success': False, 'message': 'Could not delete attendance', 'error_type': 'database_error'}

        if not deleted:
            return {'success': False, 'message': 'Attendance record not found', 'error_type': 'not_found'}

        self.engine.forget(record['class_id'], record['subject_id'], date.fromisoformat(record['session_date']))
        self.logger.info(f"Attendance record {attendance_id} deleted")
        return {'success': True, 'message': 'Attendance record deleted successfully'}
