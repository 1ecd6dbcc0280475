"""
QR Code Generator Module - QR Class Attendance System

This module handles the student identity QR codes used for attendance.
Students carry a code whose text is ``subjectId|displayName|contact``; the
lecturer's scanner hands the decoded text (or an already decoded object) to
``validate_qr_code`` which either returns the identity or a specific
rejection. Anything that does not match the payload grammar exactly is
rejected as a whole, never partially read.

Features:
- Strict pipe-delimited payload validation
- Object payload normalization
- Identity QR code generation (PNG, base64)
- Optional caption with the student's name and ID
"""

import base64
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import qrcode
from PIL import Image, ImageDraw, ImageFont

PAYLOAD_GRAMMAR = 'studentID|name|email'

ERROR_MALFORMED_FORMAT = 'malformed_format'
ERROR_MISSING_IDENTITY = 'missing_identity'

_PAYLOAD_PATTERN = re.compile(r'([^|]+)\|([^|]+)\|([^|]+)')

# Key spellings accepted on the object input path, canonical name first
_SUBJECT_ID_KEYS = ('subject_id', 'subjectId', 'studentId', 'student_id')
_DISPLAY_NAME_KEYS = ('display_name', 'displayName', 'name', 'studentName')
_CONTACT_KEYS = ('contact', 'email')


@dataclass(frozen=True)
class ScannedIdentity:
    """Identity decoded from a student QR code."""
    subject_id: str
    display_name: str
    contact: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'subject_id': self.subject_id,
            'display_name': self.display_name,
            'contact': self.contact
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a scanned payload."""
    valid: bool
    identity: Optional[ScannedIdentity] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def accept(cls, identity: ScannedIdentity) -> 'ValidationResult':
        return cls(valid=True, identity=identity)

    @classmethod
    def reject(cls, error_type: str, error: str) -> 'ValidationResult':
        return cls(valid=False, error=error, error_type=error_type)


def format_payload(identity: ScannedIdentity) -> str:
    """
    Build the QR text for an identity.

    Raises:
        ValueError: If a field is empty, padded with whitespace or contains
            the delimiter
    """
    fields = (identity.subject_id, identity.display_name, identity.contact)
    for value in fields:
        if not _is_valid_field(value) or value != value.strip():
            raise ValueError(f"Identity field cannot be used in a QR payload: {value!r}")
    return '|'.join(fields)


def _is_valid_field(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != '' and '|' not in value


def _first_present(data: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return None


class QRGenerator:
    """
    Student QR code validation and generation.
    """

    def __init__(self, box_size: int = 10, border: int = 4):
        """
        Initialize the QR code generator.

        Args:
            box_size (int): Size of each QR module in pixels
            border (int): Quiet zone width in modules (minimum is 4)
        """
        self.logger = logging.getLogger(__name__)

        self.default_settings = {
            'version': 1,
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': box_size,
            'border': border,
            'fill_color': 'black',
            'back_color': 'white'
        }

    def validate_qr_code(self, qr_data: Any) -> ValidationResult:
        """
        Validate and decode scanned QR code data.

        Args:
            qr_data: Decoded QR text, or a mapping from a scanner that already
                decoded the payload

        Returns:
            ValidationResult: Identity on success, otherwise the rejection
        """
        if isinstance(qr_data, str):
            return self._validate_text(qr_data)
        if isinstance(qr_data, Mapping):
            return self._validate_object(qr_data)

        self.logger.warning(f"Unsupported QR data type: {type(qr_data).__name__}")
        return ValidationResult.reject(ERROR_MALFORMED_FORMAT, self.format_hint())

    def _validate_text(self, qr_data: str) -> ValidationResult:
        cleaned = qr_data.strip().lstrip('\ufeff').strip()
        match = _PAYLOAD_PATTERN.fullmatch(cleaned)

        if not match or not all(_is_valid_field(value) for value in match.groups()):
            self.logger.info("Rejected QR code that does not match the payload format")
            return ValidationResult.reject(ERROR_MALFORMED_FORMAT, self.format_hint())

        subject_id, display_name, contact = match.groups()
        return ValidationResult.accept(ScannedIdentity(subject_id, display_name, contact))

    def _validate_object(self, qr_data: Mapping[str, Any]) -> ValidationResult:
        subject_id = _first_present(qr_data, _SUBJECT_ID_KEYS)
        if subject_id is None:
            return ValidationResult.reject(
                ERROR_MISSING_IDENTITY,
                'Missing student ID in QR code data. ATTENDANCE NOT RECORDED.'
            )

        fields = (
            subject_id,
            _first_present(qr_data, _DISPLAY_NAME_KEYS),
            _first_present(qr_data, _CONTACT_KEYS)
        )
        if not all(_is_valid_field(value) for value in fields):
            return ValidationResult.reject(ERROR_MALFORMED_FORMAT, self.format_hint())

        return ValidationResult.accept(ScannedIdentity(*fields))

    @staticmethod
    def format_hint() -> str:
        return (
            f"This QR code does not have the required format:\n\n{PAYLOAD_GRAMMAR}\n\n"
            "ATTENDANCE NOT RECORDED."
        )

    def generate_identity_qr_code(self, identity: ScannedIdentity,
                                  with_caption: bool = False,
                                  custom_settings: dict = None) -> Dict[str, Any]:
        """
        Generate a QR code image for a student identity.

        Args:
            identity (ScannedIdentity): Student identity to encode
            with_caption (bool): Draw the name and ID under the code
            custom_settings (dict): Overrides for the default QR settings

        Returns:
            Dict[str, Any]: Generation result with base64 PNG data
        """
        try:
            qr_data = format_payload(identity)

            settings = self.default_settings.copy()
            if custom_settings:
                settings.update(custom_settings)

            qr = qrcode.QRCode(
                version=settings['version'],
                error_correction=settings['error_correction'],
                box_size=settings['box_size'],
                border=settings['border']
            )
            qr.add_data(qr_data)
            qr.make(fit=True)

            img = qr.make_image(
                fill_color=settings['fill_color'],
                back_color=settings['back_color']
            ).get_image()

            if with_caption:
                img = self._add_caption(img, identity)

            buffer = io.BytesIO()
            img.save(buffer, format='PNG')
            img_base64 = base64.b64encode(buffer.getvalue()).decode()

            filename = f"qr_{identity.subject_id}_{datetime.now().strftime('%Y%m%d')}.png"

            self.logger.info(f"QR code generated for student {identity.subject_id}")
            return {
                'success': True,
                'qr_data': qr_data,
                'image_base64': img_base64,
                'image_size': img.size,
                'filename': filename,
                'subject_id': identity.subject_id,
                'generated_at': datetime.now().isoformat()
            }

        except ValueError as e:
            self.logger.warning(f"QR code generation rejected: {str(e)}")
            return {
                'success': False,
                'error': str(e),
                'subject_id': identity.subject_id
            }

    def _add_caption(self, qr_img: Image.Image, identity: ScannedIdentity) -> Image.Image:
        """Extend the image downwards and draw the student's name and ID centered."""
        width, height = qr_img.size
        canvas = Image.new('RGB', (width, height + 60), 'white')
        canvas.paste(qr_img, (0, 0))

        draw = ImageDraw.Draw(canvas)
        font = ImageFont.load_default()

        text_y = height + 8
        for line in (identity.display_name, identity.subject_id):
            bbox = draw.textbbox((0, 0), line, font=font)
            line_width = bbox[2] - bbox[0]
            draw.text(((width - line_width) // 2, text_y), line, fill='black', font=font)
            text_y += 22

        return canvas
