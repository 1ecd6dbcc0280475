"""
Database Manager Module - QR Class Attendance System

SQLite access for the attendance system: the schema for classes, attendance
records and system settings, plus the small query helpers the record store
and class manager are built on.

Features:
- One connection per thread, reused across calls
- Busy timeout so a locked database fails instead of hanging
- Idempotent schema creation
- Query, update and transaction helpers
- Key/value system settings
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS classes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course_code VARCHAR(20) NOT NULL,
        course_name VARCHAR(100) NOT NULL,
        faculty_name VARCHAR(100),
        section VARCHAR(20) NOT NULL,
        room VARCHAR(50) NOT NULL,
        schedule TEXT NOT NULL,
        lecturer_id VARCHAR(50) NOT NULL,
        year_level VARCHAR(20),
        is_active BOOLEAN DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # No uniqueness on (class, subject, date): the admission engine prevents
    # duplicates, the store only rejects a repeated idempotency key
    """
    CREATE TABLE IF NOT EXISTS attendance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        subject_id VARCHAR(50) NOT NULL,
        display_name VARCHAR(100) NOT NULL,
        contact VARCHAR(100) NOT NULL,
        class_id VARCHAR(50) NOT NULL,
        course_code VARCHAR(20) NOT NULL,
        course_name VARCHAR(100) NOT NULL,
        section VARCHAR(20) DEFAULT 'N/A',
        room VARCHAR(50) DEFAULT 'N/A',
        schedule_text TEXT DEFAULT 'N/A',
        recorder_id VARCHAR(50) DEFAULT 'N/A',
        recorder_name VARCHAR(100) DEFAULT 'Unknown Lecturer',
        session_date DATE NOT NULL,
        occurred_at TIMESTAMP NOT NULL,
        status VARCHAR(20) DEFAULT 'present',
        notes TEXT DEFAULT '',
        idempotency_key VARCHAR(120) UNIQUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_settings (
        setting_key VARCHAR(100) PRIMARY KEY,
        setting_value TEXT,
        description TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_attendance_session ON attendance(class_id, subject_id, session_date)",
    "CREATE INDEX IF NOT EXISTS idx_attendance_subject ON attendance(subject_id)",
    "CREATE INDEX IF NOT EXISTS idx_attendance_date ON attendance(session_date)",
    "CREATE INDEX IF NOT EXISTS idx_classes_lecturer ON classes(lecturer_id)",
)

DEFAULT_SETTINGS = (
    ('system_name', 'QR Class Attendance System', 'Display name of the system'),
    ('late_threshold_minutes', '15', 'Minutes after a session opens before scans count as late'),
    ('session_retention_days', '2', 'Days a session stays in the in-memory duplicate tracker'),
    ('export_formats', 'excel,csv', 'File formats offered for attendance exports'),
)


class DatabaseManager:
    """
    SQLite database for classes, attendance and settings.

    Errors from sqlite3 are logged and re-raised; callers decide whether a
    failure is fatal.
    """

    def __init__(self, db_path, timeout=30.0):
        """
        Open (and if needed create) the attendance database.

        Args:
            db_path (str): SQLite file location; parent directories are created
            timeout (float): Seconds to wait for a locked database
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        parent = os.path.dirname(self.db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self.initialize_database()

    def _thread_connection(self):
        conn = getattr(self._local, 'connection', None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.connection = conn
        return conn

    @contextmanager
    def get_connection(self):
        """
        Yield this thread's connection, rolling back if the block fails.

        Yields:
            sqlite3.Connection: Connection with ``sqlite3.Row`` rows
        """
        conn = self._thread_connection()
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            self.logger.error(f"Database operation on {self.db_path} failed: {e}")
            raise

    def initialize_database(self):
        """Create tables, indexes and default settings that do not exist yet."""
        try:
            with self.get_connection() as conn:
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.executemany(
                    "INSERT OR IGNORE INTO system_settings (setting_key, setting_value, description) "
                    "VALUES (?, ?, ?)",
                    DEFAULT_SETTINGS
                )
                conn.commit()
        except sqlite3.Error as e:
            self.logger.error(f"Could not initialize attendance database: {e}")
            raise

        self.logger.info(f"Attendance database ready at {self.db_path}")

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Run a SELECT.

        Args:
            query (str): SQL with ``?`` placeholders
            params (tuple): Placeholder values
            fetch_all (bool): Return every row, or only the first one

        Returns:
            list or dict: Rows as dictionaries, or a single row / None
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]
            row = cursor.fetchone()
            return dict(row) if row else None

    def execute_update(self, query, params=None):
        """
        Run an INSERT, UPDATE or DELETE and commit it.

        Returns:
            int: New row ID for an INSERT, otherwise the number of rows changed
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            conn.commit()
            if query.lstrip().upper().startswith('INSERT'):
                return cursor.lastrowid
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Group several statements; commit on success, roll back on any error.

        Yields:
            sqlite3.Connection: Connection to run the statements on
        """
        conn = self._thread_connection()
        try:
            yield conn
        except Exception:
            conn.rollback()
            self.logger.warning("Attendance database transaction rolled back")
            raise
        conn.commit()

    def get_system_setting(self, key, default_value=None):
        """Look up a setting value, falling back to the default when it is unset or unreadable."""
        try:
            row = self.execute_query(
                "SELECT setting_value FROM system_settings WHERE setting_key = ?",
                (key,),
                fetch_all=False
            )
        except sqlite3.Error:
            return default_value
        return row['setting_value'] if row else default_value

    def update_system_setting(self, key, value, description=None):
        """
        Insert or replace a setting.

        Returns:
            bool: False when the database rejected the write
        """
        try:
            with self.transaction() as conn:
                conn.execute(
                    """INSERT INTO system_settings (setting_key, setting_value, description)
                       VALUES (?, ?, ?)
                       ON CONFLICT(setting_key) DO UPDATE SET
                           setting_value = excluded.setting_value,
                           description = COALESCE(excluded.description, system_settings.description),
                           updated_at = CURRENT_TIMESTAMP""",
                    (key, value, description)
                )
        except sqlite3.Error as e:
            self.logger.error(f"Setting {key} not saved: {e}")
            return False
        return True

    def close_all_connections(self):
        """Close the calling thread's connection, if it opened one."""
        conn = getattr(self._local, 'connection', None)
        if conn is not None:
            conn.close()
            self._local.connection = None
