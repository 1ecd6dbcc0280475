"""
QR Class Attendance System - Web Application

Builds the Flask application: wires the database, record store, class
manager, admission engine and report generator together and exposes them as
a JSON API for the lecturer scanner and the admin tools.
"""

import logging
from datetime import date, timedelta

from flask import Flask, jsonify, request, send_file

from qrattend.config import get_config, validate_config
from qrattend.modules.admission_engine import AdmissionEngine
from qrattend.modules.attendance_manager import AttendanceManager
from qrattend.modules.attendance_store import SQLiteAttendanceStore
from qrattend.modules.class_manager import ClassManager
from qrattend.modules.database_manager import DatabaseManager
from qrattend.modules.duplicate_tracker import SessionDuplicateTracker
from qrattend.modules.qr_generator import QRGenerator, ScannedIdentity
from qrattend.modules.report_generator import ReportGenerator
from qrattend.modules.schedule_evaluator import SystemClock

logger = logging.getLogger(__name__)

# HTTP status per admission outcome
OUTCOME_STATUS = {
    'admitted': 201,
    'rejected_invalid_payload': 400,
    'rejected_out_of_window': 403,
    'class_not_found': 404,
    'rejected_duplicate': 409,
    'rejected_persistence_failed': 503
}


def _parse_date(value, default=None):
    if not value:
        return default
    return date.fromisoformat(value)


def _current_recorder(data):
    """Lecturer performing the scan, from a nested `lecturer` record or top-level fields."""
    return data.get('lecturer') or {
        key: data[key] for key in ('lecturerId', 'lecturerName', 'recorder_id', 'recorder_name') if key in data
    }


def create_app(config_name=None, overrides=None, clock=None, store=None):
    """
    Create and configure the Flask application.

    Args:
        config_name (str): development, testing or production
        overrides (dict): Config values applied after the config class
        clock: Clock for the admission engine, defaults to the system clock
        store: Record store, defaults to the SQLite store

    Returns:
        Flask: Configured application
    """
    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    errors = validate_config(app.config)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    config_class.init_app(app)

    clock = clock or SystemClock()
    db_manager = DatabaseManager(app.config['DATABASE_PATH'], timeout=app.config['DATABASE_TIMEOUT'])
    sqlite_store = SQLiteAttendanceStore(db_manager)
    store = store or sqlite_store
    qr_generator = QRGenerator(
        box_size=app.config['QR_CODE_BOX_SIZE'],
        border=app.config['QR_CODE_BORDER']
    )
    class_manager = ClassManager(db_manager)
    engine = AdmissionEngine(
        store,
        clock=clock,
        validator=qr_generator,
        tracker=SessionDuplicateTracker(app.config['ATTENDANCE_SESSION_RETENTION_DAYS']),
        late_threshold_minutes=app.config['ATTENDANCE_LATE_THRESHOLD_MINUTES'],
        strict=app.config['ATTENDANCE_STRICT_CONTRACTS']
    )
    attendance_manager = AttendanceManager(engine, sqlite_store, class_manager)
    report_generator = ReportGenerator(sqlite_store, app.config['REPORTS_FOLDER'])

    app.extensions['qrattend'] = {
        'db': db_manager,
        'engine': engine,
        'class_manager': class_manager,
        'attendance_manager': attendance_manager,
        'report_generator': report_generator,
        'qr_generator': qr_generator,
        'clock': clock
    }

    @app.route('/api/scan', methods=['POST'])
    def process_scan():
        """Process a scanned QR code and record attendance"""
        data = request.get_json(silent=True) or {}
        qr_data = data.get('qr_code')
        class_id = data.get('class_id')

        if qr_data in (None, ''):
            return jsonify({'success': False, 'message': 'No QR code data provided'}), 400
        if not class_id:
            return jsonify({'success': False, 'message': 'No class specified'}), 400

        try:
            result = attendance_manager.process_attendance_scan(qr_data, class_id, _current_recorder(data))
        except Exception as e:
            logger.error(f"Scan processing error: {str(e)}")
            return jsonify({
                'success': False,
                'message': 'An error occurred while processing the scan'
            }), 500

        return jsonify(result), OUTCOME_STATUS.get(result['outcome'], 400)

    @app.route('/api/attendance/sync', methods=['POST'])
    def sync_attendance():
        """Retry saving scans kept locally after a store failure"""
        result = attendance_manager.sync_pending()
        return jsonify(result), 200 if result['success'] else 503

    @app.route('/api/attendance/<int:attendance_id>/status', methods=['PUT'])
    def update_attendance_status(attendance_id):
        data = request.get_json(silent=True) or {}
        result = attendance_manager.update_attendance_status(
            attendance_id, data.get('status', ''), data.get('notes')
        )
        if result['success']:
            return jsonify(result)
        return jsonify(result), 404 if result['error_type'] == 'not_found' else 400

    @app.route('/api/attendance/<int:attendance_id>', methods=['DELETE'])
    def delete_attendance(attendance_id):
        result = attendance_manager.delete_attendance_record(attendance_id)
        if result['success']:
            return jsonify(result)
        return jsonify(result), 404 if result['error_type'] == 'not_found' else 500

    @app.route('/api/classes', methods=['POST'])
    def create_class():
        data = request.get_json(silent=True) or {}
        result = class_manager.create_class(data)
        return jsonify(result), 201 if result['success'] else 400

    @app.route('/api/classes/<int:class_id>', methods=['GET'])
    def get_class(class_id):
        record = class_manager.get_class_by_id(class_id)
        if not record:
            return jsonify({'success': False, 'message': 'Class not found'}), 404
        return jsonify({'success': True, 'class': record})

    @app.route('/api/classes/<int:class_id>', methods=['PUT'])
    def update_class(class_id):
        data = request.get_json(silent=True) or {}
        result = class_manager.update_class(class_id, data)
        if result['success']:
            return jsonify(result)
        return jsonify(result), 404 if result['error_type'] == 'not_found' else 400

    @app.route('/api/classes/<int:class_id>', methods=['DELETE'])
    def deactivate_class(class_id):
        if not class_manager.deactivate_class(class_id):
            return jsonify({'success': False, 'message': 'Class not found'}), 404
        return jsonify({'success': True, 'message': 'Class deleted successfully'})

    @app.route('/api/classes/in-session', methods=['GET'])
    def classes_in_session():
        """Classes whose schedule covers the current time"""
        classes = class_manager.get_classes_in_session(clock.now(), request.args.get('lecturer_id'))
        return jsonify({'success': True, 'classes': classes})

    @app.route('/api/lecturers/<lecturer_id>/classes', methods=['GET'])
    def lecturer_classes(lecturer_id):
        return jsonify({'success': True, 'classes': class_manager.get_classes_by_lecturer(lecturer_id)})

    @app.route('/api/classes/<int:class_id>/schedule-status', methods=['GET'])
    def schedule_status(class_id):
        """Whether the scanner may be used for this class right now"""
        status = class_manager.get_schedule_status(class_id, clock.now())
        if status is None:
            return jsonify({'success': False, 'message': 'Class not found'}), 404
        return jsonify({'success': True, **status})

    @app.route('/api/classes/<int:class_id>/attendance', methods=['GET'])
    def class_attendance(class_id):
        try:
            session_date = _parse_date(request.args.get('date'))
        except ValueError:
            return jsonify({'success': False, 'message': 'Dates must use YYYY-MM-DD'}), 400

        records = attendance_manager.get_class_attendance(class_id, session_date)
        response = {'success': True, 'records': records}
        if session_date is not None:
            response['summary'] = attendance_manager.get_class_summary(class_id, session_date)
        return jsonify(response)

    @app.route('/api/classes/<int:class_id>/summary', methods=['GET'])
    def class_student_summary(class_id):
        """Attendance counts and percentage per student"""
        return jsonify({'success': True, 'students': attendance_manager.get_class_student_summary(class_id)})

    @app.route('/api/classes/<int:class_id>/export', methods=['GET'])
    def export_class_attendance(class_id):
        today = clock.now().date
        try:
            start_date = _parse_date(request.args.get('start'), today - timedelta(days=30))
            end_date = _parse_date(request.args.get('end'), today)
        except ValueError:
            return jsonify({'success': False, 'message': 'Dates must use YYYY-MM-DD'}), 400

        result = report_generator.export_class_attendance(
            class_id, start_date, end_date, request.args.get('format', 'excel')
        )
        if not result['success']:
            return jsonify(result), 400
        return send_file(result['filepath'], as_attachment=True, download_name=result['filename'])

    @app.route('/api/students/<subject_id>/attendance', methods=['GET'])
    def student_attendance(subject_id):
        days = request.args.get('days', type=int)
        records = attendance_manager.get_student_attendance_history(subject_id, days)
        return jsonify({'success': True, 'records': records})

    @app.route('/api/students/<subject_id>/summary', methods=['GET'])
    def student_summary(subject_id):
        """Attendance counts per class for one student"""
        return jsonify({'success': True, 'classes': attendance_manager.get_student_summary(subject_id)})

    @app.route('/api/qr/generate', methods=['POST'])
    def generate_qr():
        """Generate a student's identity QR code"""
        data = request.get_json(silent=True) or {}
        identity = ScannedIdentity(
            subject_id=str(data.get('subject_id') or ''),
            display_name=str(data.get('display_name') or ''),
            contact=str(data.get('contact') or '')
        )
        result = qr_generator.generate_identity_qr_code(identity, with_caption=bool(data.get('with_caption')))
        return jsonify(result), 200 if result['success'] else 400

    return app
