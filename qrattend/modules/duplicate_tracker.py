"""
Duplicate Tracker Module - QR Class Attendance System

In-memory record of the students already admitted to each class session.
The admission engine consults it before asking the store, and keeps a second
"pending" set for scans that were accepted locally but could not be saved.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from qrattend.modules.attendance_store import AttendanceEvent


@dataclass(frozen=True)
class SessionKey:
    """One meeting of a class on one calendar date."""
    class_id: str
    session_date: date

    def __str__(self):
        return f"{self.class_id}@{self.session_date.isoformat()}"


class SessionDuplicateTracker:
    """
    Per-session sets of admitted and pending student IDs.

    All reads and writes go through an internal lock. ``lock_for`` hands out a
    separate lock per session so the engine can hold it across the duplicate
    check and the store write.
    """

    def __init__(self, retention_days: int = 2):
        self.retention_days = retention_days
        self.logger = logging.getLogger(__name__)

        self._admitted: Dict[SessionKey, Dict[str, AttendanceEvent]] = {}
        self._pending: Dict[SessionKey, Dict[str, AttendanceEvent]] = {}
        self._session_locks: Dict[SessionKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: SessionKey) -> threading.Lock:
        with self._guard:
            return self._session_locks.setdefault(key, threading.Lock())

    def contains(self, key: SessionKey, subject_id: str) -> bool:
        with self._guard:
            return subject_id in self._admitted.get(key, {})

    def get(self, key: SessionKey, subject_id: str) -> Optional[AttendanceEvent]:
        with self._guard:
            return self._admitted.get(key, {}).get(subject_id)

    def add(self, key: SessionKey, subject_id: str, event: AttendanceEvent):
        """Mark a student as admitted; clears any pending entry for them."""
        with self._guard:
            self._admitted.setdefault(key, {})[subject_id] = event
            pending = self._pending.get(key)
            if pending is not None:
                pending.pop(subject_id, None)
                if not pending:
                    del self._pending[key]

    def discard(self, key: SessionKey, subject_id: str) -> bool:
        """Forget an admitted student, e.g. after their record was deleted."""
        with self._guard:
            events = self._admitted.get(key)
            if not events or subject_id not in events:
                return False
            del events[subject_id]
            return True

    def is_pending(self, key: SessionKey, subject_id: str) -> bool:
        with self._guard:
            return subject_id in self._pending.get(key, {})

    def add_pending(self, key: SessionKey, event: AttendanceEvent):
        """Remember an event that was accepted locally but not stored."""
        with self._guard:
            self._pending.setdefault(key, {})[event.subject_id] = event

    def pending_events(self) -> List[Tuple[SessionKey, AttendanceEvent]]:
        with self._guard:
            return [
                (key, event)
                for key, events in self._pending.items()
                for event in events.values()
            ]

    def admitted_count(self, key: SessionKey) -> int:
        with self._guard:
            return len(self._admitted.get(key, {}))

    def evict_before(self, cutoff: date) -> int:
        """
        Drop sessions dated before the cutoff.
        Sessions with pending events keep their pending set and lock until
        they are synced.

        Returns:
            int: Number of admitted sessions removed
        """
        with self._guard:
            stale = [key for key in self._admitted if key.session_date < cutoff]
            for key in stale:
                del self._admitted[key]

            for key in [key for key, events in self._pending.items() if not events]:
                del self._pending[key]

            idle_locks = [
                key for key in self._session_locks
                if key.session_date < cutoff and key not in self._pending
            ]
            for key in idle_locks:
                del self._session_locks[key]

        if stale or idle_locks:
            self.logger.debug(f"Evicted {len(stale)} stale attendance sessions, {len(idle_locks)} locks")
        return len(stale)

    def session_count(self) -> Dict[str, int]:
        """Number of sessions held in each internal map."""
        with self._guard:
            return {
                'admitted': len(self._admitted),
                'pending': len(self._pending),
                'locks': len(self._session_locks)
            }

    def evict_expired(self, today: date) -> int:
        return self.evict_before(today - timedelta(days=self.retention_days))
