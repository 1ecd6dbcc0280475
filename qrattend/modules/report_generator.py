"""
Report Generator Module - QR Class Attendance System

This module exports class attendance to Excel and CSV files for lecturers
and administrators.

Features:
- Class attendance export for a date range
- Excel workbook with data, per-session and status sheets
- CSV export
"""

import logging
import os
from datetime import date, datetime
from typing import Any, Dict

import pandas as pd

from qrattend.modules.attendance_store import StoreError

EXPORT_COLUMNS = [
    'session_date', 'occurred_at', 'subject_id', 'display_name', 'contact',
    'course_code', 'course_name', 'section', 'room', 'status', 'recorder_name', 'notes'
]


class ReportGenerator:
    """
    Attendance export in the supported file formats.
    """

    def __init__(self, store, output_dir: str = 'exports'):
        """
        Initialize the report generator.

        Args:
            store: Record store holding attendance rows
            output_dir (str): Directory export files are written to
        """
        self.store = store
        self.output_dir = str(output_dir)
        self.supported_formats = ['excel', 'csv']
        self.logger = logging.getLogger(__name__)

        os.makedirs(self.output_dir, exist_ok=True)

    def export_class_attendance(self, class_id, start_date: date, end_date: date,
                                output_format: str = 'excel') -> Dict[str, Any]:
        """
        Export attendance of a class within a date range.

        Args:
            class_id: Class ID
            start_date (date): First session date, inclusive
            end_date (date): Last session date, inclusive
            output_format (str): excel or csv

        Returns:
            Dict[str, Any]: Export result with the file name and path
        """
        if output_format not in self.supported_formats:
            return {
                'success': False,
                'error': f'Unsupported output format: {output_format}'
            }
        if end_date < start_date:
            return {
                'success': False,
                'error': 'End date must not be before start date'
            }

        try:
            records = self.store.list_attendance_between(class_id, start_date, end_date)
        except StoreError as e:
            self.logger.error(f"Attendance export failed: {str(e)}")
            return {'success': False, 'error': str(e)}

        if not records:
            return {
                'success': False,
                'error': 'No data found for the specified criteria'
            }

        df = pd.DataFrame(records).reindex(columns=EXPORT_COLUMNS)
        base_name = f"attendance_class{class_id}_{start_date:%Y%m%d}_{end_date:%Y%m%d}_{datetime.now():%H%M%S}"

        if output_format == 'excel':
            result = self._write_excel(df, base_name)
        else:
            result = self._write_csv(df, base_name)

        result['records'] = len(records)
        self.logger.info(f"Report generated successfully: {result['filename']}")
        return result

    def _write_excel(self, df: pd.DataFrame, base_name: str) -> Dict[str, Any]:
        filename = f"{base_name}.xlsx"
        filepath = os.path.join(self.output_dir, filename)

        sessions = (
            df.groupby('session_date')
            .agg(total_scans=('subject_id', 'size'), unique_students=('subject_id', 'nunique'))
            .reset_index()
        )
        statuses = df['status'].value_counts().rename_axis('status').reset_index(name='count')

        with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Attendance', index=False)
            sessions.to_excel(writer, sheet_name='Sessions', index=False)
            statuses.to_excel(writer, sheet_name='Status Breakdown', index=False)

        return {
            'success': True,
            'filename': filename,
            'filepath': filepath,
            'format': 'excel',
            'size': os.path.getsize(filepath)
        }

    def _write_csv(self, df: pd.DataFrame, base_name: str) -> Dict[str, Any]:
        filename = f"{base_name}.csv"
        filepath = os.path.join(self.output_dir, filename)
        df.to_csv(filepath, index=False, encoding='utf-8')

        return {
            'success': True,
            'filename': filename,
            'filepath': filepath,
            'format': 'csv',
            'size': os.path.getsize(filepath)
        }
