# QR Class Attendance System Configuration

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Root for the database, exports and logs
BASE_DIR = Path(os.environ.get('QRATTEND_HOME') or Path.cwd()).absolute()


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Settings shared by every environment"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'qr-class-attendance-secret-key'
    DEBUG = _env_flag('DEBUG')
    TESTING = False

    # Attendance database
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'attendance.db')
    DATABASE_TIMEOUT = float(os.environ.get('DATABASE_TIMEOUT') or 30)

    # Attendance exports
    REPORTS_FOLDER = BASE_DIR / 'exports'

    # Identity QR codes
    QR_CODE_BOX_SIZE = 10
    QR_CODE_BORDER = 4

    # Scan admission
    ATTENDANCE_LATE_THRESHOLD_MINUTES = 15
    ATTENDANCE_SESSION_RETENTION_DAYS = 2
    # Raise on classes without a schedule instead of treating them as closed
    ATTENDANCE_STRICT_CONTRACTS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'attendance.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    @classmethod
    def init_app(cls, app):
        """Create working directories and attach logging to the app"""
        for directory in (Path(app.config['DATABASE_PATH']).parent, Path(app.config['REPORTS_FOLDER'])):
            directory.mkdir(parents=True, exist_ok=True)

        app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

        # File logging outside debug and testing
        if not app.debug and not app.testing:
            log_file = Path(app.config['LOG_FILE'])
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=app.config['LOG_MAX_BYTES'],
                backupCount=app.config['LOG_BACKUP_COUNT']
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            logging.getLogger('qrattend').addHandler(file_handler)

            app.logger.info('QR Class Attendance System startup')


class DevelopmentConfig(Config):
    """Local development with debug logging"""
    DEBUG = True

    DATABASE_PATH = BASE_DIR / 'database' / 'attendance_dev.db'

    # Fail fast on broken class data during development
    ATTENDANCE_STRICT_CONTRACTS = True

    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Automated tests: short timeouts, no late marking"""
    TESTING = True
    DEBUG = True

    DATABASE_PATH = BASE_DIR / 'database' / 'attendance_test.db'
    DATABASE_TIMEOUT = 1.0

    ATTENDANCE_LATE_THRESHOLD_MINUTES = None
    ATTENDANCE_STRICT_CONTRACTS = True


class ProductionConfig(Config):
    """Deployed service"""
    DEBUG = False

    DATABASE_PATH = BASE_DIR / 'database' / 'attendance_prod.db'

    LOG_LEVEL = 'WARNING'


# FLASK_ENV name to config class
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration based on name or the FLASK_ENV environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(settings):
    """
    Validate configuration settings.

    Args:
        settings (Mapping): Flask app config or any mapping with the same keys

    Returns:
        list: Error messages, empty when the configuration is usable
    """
    errors = []

    threshold = settings.get('ATTENDANCE_LATE_THRESHOLD_MINUTES')
    if threshold is not None and (not isinstance(threshold, int) or threshold < 0):
        errors.append(f"ATTENDANCE_LATE_THRESHOLD_MINUTES must be a non-negative integer: {threshold!r}")

    retention = settings.get('ATTENDANCE_SESSION_RETENTION_DAYS')
    if not isinstance(retention, int) or retention < 1:
        errors.append(f"ATTENDANCE_SESSION_RETENTION_DAYS must be at least 1: {retention!r}")

    if settings.get('DATABASE_TIMEOUT', 0) <= 0:
        errors.append("DATABASE_TIMEOUT must be positive")

    if not settings.get('SECRET_KEY'):
        errors.append("SECRET_KEY is required")

    return errors
