"""
QR Class Attendance System - Main Application

Entry point for running the attendance API with the Flask development server.
The configuration is picked from FLASK_ENV (development, testing, production).
"""

import logging
import os

from qrattend.web import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)

app = create_app(os.environ.get('FLASK_ENV'))

if __name__ == '__main__':
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
