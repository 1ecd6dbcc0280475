"""
Admission Engine Module - QR Class Attendance System

Decides whether a scanned QR code becomes an attendance record for the class
session in progress. Every scan walks the same sequence of states:

    idle -> awaiting_window_check -> awaiting_payload_validation
         -> awaiting_duplicate_check -> one terminal state

Terminal states are ``admitted`` and the four rejections (out of window,
invalid payload, duplicate, persistence failed). Only ``admitted`` writes to
the record store. The duplicate check, the store write and the tracker update
for one session run under that session's lock, so two scans of the same
student cannot both be admitted.

Features:
- Schedule window check with an injected clock
- Strict payload validation
- In-memory and store-backed duplicate detection
- Late status when a late threshold is configured
- Local pending set for scans the store could not save, with sync
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from qrattend.modules.attendance_store import (
    STATUS_LATE, STATUS_PRESENT, AttendanceEvent, ClassDescriptor, Recorder, RecordStore, StoreError
)
from qrattend.modules.duplicate_tracker import SessionDuplicateTracker, SessionKey
from qrattend.modules.qr_generator import QRGenerator, ScannedIdentity
from qrattend.modules.schedule_evaluator import ClockReading, SystemClock, find_active_window
from qrattend.modules.schedule_parser import parse_schedule


class ScheduleContractError(ValueError):
    """A class without a schedule was handed to the engine in strict mode."""


class AdmissionState(Enum):
    IDLE = 'idle'
    AWAITING_WINDOW_CHECK = 'awaiting_window_check'
    AWAITING_PAYLOAD_VALIDATION = 'awaiting_payload_validation'
    AWAITING_DUPLICATE_CHECK = 'awaiting_duplicate_check'
    ADMITTED = 'admitted'
    REJECTED_OUT_OF_WINDOW = 'rejected_out_of_window'
    REJECTED_INVALID_PAYLOAD = 'rejected_invalid_payload'
    REJECTED_DUPLICATE = 'rejected_duplicate'
    REJECTED_PERSISTENCE_FAILED = 'rejected_persistence_failed'

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    def __str__(self):
        return self.value


TERMINAL_STATES = frozenset({
    AdmissionState.ADMITTED,
    AdmissionState.REJECTED_OUT_OF_WINDOW,
    AdmissionState.REJECTED_INVALID_PAYLOAD,
    AdmissionState.REJECTED_DUPLICATE,
    AdmissionState.REJECTED_PERSISTENCE_FAILED
})


@dataclass
class AdmissionResult:
    """Tagged outcome of one scan, with whatever the UI needs to explain it."""
    state: AdmissionState
    message: str
    transitions: List[AdmissionState] = field(default_factory=list)
    event: Optional[AttendanceEvent] = None
    record_id: Optional[int] = None
    identity: Optional[ScannedIdentity] = None
    error_type: Optional[str] = None
    schedule_text: Optional[str] = None
    now: Optional[datetime] = None
    prior_event: Optional[AttendanceEvent] = None
    error: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.state is AdmissionState.ADMITTED

    @property
    def prior_time(self) -> Optional[datetime]:
        return self.prior_event.occurred_at if self.prior_event else None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.admitted,
            'outcome': self.state.value,
            'message': self.message
        }
        if self.error_type:
            result['error_type'] = self.error_type
        if self.event is not None:
            result['attendance'] = self.event.to_dict()
        if self.record_id is not None:
            result['attendance_id'] = self.record_id
        if self.schedule_text is not None:
            result['schedule'] = self.schedule_text
        if self.now is not None:
            result['current_time'] = self.now.isoformat()
        if self.prior_event is not None:
            result['previous_scan'] = self.prior_event.to_dict()
            result['previous_scan_time'] = self.prior_event.occurred_at.isoformat()
        if self.error is not None:
            result['error'] = self.error
        return result


class _Scan:
    """Records the state path of one admission attempt."""

    def __init__(self):
        self.state = AdmissionState.IDLE
        self.transitions = [AdmissionState.IDLE]

    def move(self, state: AdmissionState):
        if self.state.is_terminal:
            raise RuntimeError(f"Scan already finished in state {self.state}")
        self.state = state
        self.transitions.append(state)

    def finish(self, state: AdmissionState, message: str, **details) -> AdmissionResult:
        self.move(state)
        return AdmissionResult(state=state, message=message, transitions=list(self.transitions), **details)


class AdmissionEngine:
    """
    Turns scans into attendance records for a class session.

    The engine owns the duplicate tracker. Clock and record store are
    injected so the whole flow can run against fixed times and fake stores.
    """

    def __init__(self, store: RecordStore, clock=None, validator: QRGenerator = None,
                 tracker: SessionDuplicateTracker = None,
                 late_threshold_minutes: Optional[int] = None, strict: bool = False):
        """
        Initialize the admission engine.

        Args:
            store: Record store used to look up and save attendance
            clock: Object with ``now() -> ClockReading``, defaults to the system clock
            validator (QRGenerator): Payload validator
            tracker (SessionDuplicateTracker): Duplicate tracker, one is created if omitted
            late_threshold_minutes (int): Minutes after the window opens before a
                scan counts as late; None always records ``present``
            strict (bool): Raise ScheduleContractError for classes without a schedule
        """
        self.store = store
        self.clock = clock or SystemClock()
        self.validator = validator or QRGenerator()
        self.tracker = tracker or SessionDuplicateTracker()
        self.late_threshold_minutes = late_threshold_minutes
        self.strict = strict
        self.logger = logging.getLogger(__name__)

    def admit(self, qr_data: Any, class_info: ClassDescriptor,
              recorder: Recorder) -> AdmissionResult:
        """
        Process one scan.

        Args:
            qr_data: Decoded QR text or an already decoded identity mapping
            class_info (ClassDescriptor): Class being taught
            recorder (Recorder): Lecturer performing the scan

        Returns:
            AdmissionResult: Terminal outcome of the scan

        Raises:
            ScheduleContractError: In strict mode, when the class has no schedule
        """
        scan = _Scan()
        reading = self.clock.now()

        scan.move(AdmissionState.AWAITING_WINDOW_CHECK)
        window = self._check_window(class_info, reading)
        if window is None:
            self.logger.info(
                f"Scan outside schedule for class {class_info.class_id} "
                f"({class_info.schedule!r} at {reading.describe()})"
            )
            return scan.finish(
                AdmissionState.REJECTED_OUT_OF_WINDOW,
                'QR Scanner is only available during scheduled class times.\n\n'
                f"Current time: {reading.describe()}\n"
                f"Schedule: {class_info.schedule or 'No schedule'}",
                error_type='out_of_window',
                schedule_text=class_info.schedule,
                now=reading.instant
            )

        scan.move(AdmissionState.AWAITING_PAYLOAD_VALIDATION)
        validation = self.validator.validate_qr_code(qr_data)
        if not validation.valid:
            return scan.finish(
                AdmissionState.REJECTED_INVALID_PAYLOAD,
                validation.error,
                error_type=validation.error_type
            )

        identity = validation.identity
        key = SessionKey(class_info.class_id, window.session_date)
        event = self._build_event(identity, class_info, recorder, reading, window)

        scan.move(AdmissionState.AWAITING_DUPLICATE_CHECK)
        with self.tracker.lock_for(key):
            prior_event = self.tracker.get(key, identity.subject_id)
            if prior_event is None:
                try:
                    prior_event = self.store.find_attendance_record(
                        class_info.class_id, identity.subject_id, window.session_date
                    )
                except (StoreError, TimeoutError) as e:
                    return self._persistence_failed(scan, key, identity, e, event)

                if prior_event is not None:
                    self.tracker.add(key, identity.subject_id, prior_event)

            if prior_event is not None:
                previous = prior_event.occurred_at.strftime('%I:%M %p')
                self.logger.info(f"Duplicate scan of {identity.subject_id} for session {key}")
                return scan.finish(
                    AdmissionState.REJECTED_DUPLICATE,
                    f"{identity.display_name} ({identity.subject_id}) was already recorded "
                    f"for this class at {previous}.",
                    error_type='duplicate_scan',
                    identity=identity,
                    prior_event=prior_event
                )

            try:
                record_id = self.store.create_attendance_record(event)
            except (StoreError, TimeoutError) as e:
                return self._persistence_failed(scan, key, identity, e, event)

            self.tracker.add(key, identity.subject_id, event)

        self.tracker.evict_expired(reading.date)
        self.logger.info(
            f"Attendance recorded: {identity.subject_id} in {class_info.course_code} "
            f"({class_info.class_id}), status {event.status}"
        )
        return scan.finish(
            AdmissionState.ADMITTED,
            f"Attendance recorded for {identity.display_name} ({identity.subject_id}).",
            event=event,
            record_id=record_id,
            identity=identity
        )

    def _check_window(self, class_info: ClassDescriptor, reading: ClockReading):
        if class_info.schedule is None:
            if self.strict:
                raise ScheduleContractError(f"Class {class_info.class_id} has no schedule")
            self.logger.error(f"Class {class_info.class_id} has no schedule; treating as not in session")
            return None

        parsed = parse_schedule(class_info.schedule)
        for segment, reason in parsed.skipped:
            self.logger.warning(f"Ignoring schedule entry '{segment}' of class {class_info.class_id}: {reason}")

        return find_active_window(parsed.rules, reading)

    def _build_event(self, identity: ScannedIdentity, class_info: ClassDescriptor,
                     recorder: Recorder, reading: ClockReading, window) -> AttendanceEvent:
        status = STATUS_PRESENT
        if self.late_threshold_minutes is not None and window.opened_minutes_ago > self.late_threshold_minutes:
            status = STATUS_LATE

        return AttendanceEvent(
            subject_id=identity.subject_id,
            display_name=identity.display_name,
            contact=identity.contact,
            class_id=class_info.class_id,
            course_code=class_info.course_code,
            course_name=class_info.course_name,
            section=class_info.section,
            room=class_info.room,
            schedule_text=class_info.schedule,
            recorder_id=recorder.recorder_id,
            recorder_name=recorder.recorder_name,
            occurred_at=reading.instant,
            session_date=window.session_date,
            status=status,
            idempotency_key=AttendanceEvent.make_idempotency_key(
                identity.subject_id, class_info.course_code, reading.instant
            )
        )

    def _persistence_failed(self, scan: _Scan, key: SessionKey, identity: ScannedIdentity,
                            error: Exception, event: AttendanceEvent) -> AdmissionResult:
        self.logger.error(f"Could not save attendance for {identity.subject_id} in session {key}: {error}")
        self.tracker.add_pending(key, event)

        return scan.finish(
            AdmissionState.REJECTED_PERSISTENCE_FAILED,
            f"Could not save attendance for {identity.display_name} to the server. "
            "The scan was kept locally; scan again or sync to retry.",
            error_type='persistence_failed',
            identity=identity,
            event=event,
            error=str(error)
        )

    def forget(self, class_id: str, subject_id: str, session_date: date) -> bool:
        """
        Drop a student from a session's duplicate tracking so a new scan is
        admitted again. Used when their stored record is deleted.
        """
        key = SessionKey(str(class_id), session_date)
        with self.tracker.lock_for(key):
            return self.tracker.discard(key, subject_id)

    def sync_pending(self) -> Dict[str, Any]:
        """
        Retry saving every locally pending scan.

        Returns:
            Dict[str, Any]: Counts of synced, already stored and still failing events
        """
        summary = {'synced': 0, 'already_recorded': 0, 'failed': 0}

        for key, event in self.tracker.pending_events():
            with self.tracker.lock_for(key):
                if not self.tracker.is_pending(key, event.subject_id):
                    continue
                try:
                    existing = self.store.find_attendance_record(
                        event.class_id, event.subject_id, event.session_date
                    )
                    if existing is not None:
                        self.tracker.add(key, event.subject_id, existing)
                        summary['already_recorded'] += 1
                        continue

                    self.store.create_attendance_record(event)
                except (StoreError, TimeoutError) as e:
                    self.logger.warning(f"Pending attendance for {event.subject_id} still not saved: {e}")
                    summary['failed'] += 1
                    continue

                self.tracker.add(key, event.subject_id, event)
                summary['synced'] += 1

        if summary['synced'] or summary['already_recorded']:
            self.logger.info(f"Pending attendance sync: {summary}")
        return summary
