# QR Class Attendance System - Modules Package
"""
Core modules for the QR class attendance system.
"""

# Module descriptions
MODULES = {
    'schedule_parser': 'Class schedule text parsing',
    'schedule_evaluator': 'Schedule window checks and clocks',
    'qr_generator': 'Student QR payload validation and QR code generation',
    'duplicate_tracker': 'Per-session duplicate scan tracking',
    'admission_engine': 'Scan admission decisions',
    'attendance_store': 'Attendance record store',
    'database_manager': 'Database operations and schema management',
    'class_manager': 'Class management and schedule status',
    'attendance_manager': 'Attendance processing and history',
    'report_generator': 'Attendance export'
}


def get_module_info():
    """Get information about available modules"""
    return MODULES
