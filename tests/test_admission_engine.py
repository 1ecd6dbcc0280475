"""
Tests for the scan admission flow
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, datetime

import pytest

from qrattend.modules.admission_engine import AdmissionEngine, AdmissionState, ScheduleContractError
from qrattend.modules.duplicate_tracker import SessionKey
from qrattend.modules.schedule_evaluator import FixedClock

JANE = '2022-1234|Jane Doe|jane@doe.edu'


@pytest.fixture
def engine(spy_store, clock):
    return AdmissionEngine(spy_store, clock=clock)


class TestAdmission:

    def test_first_scan_admitted_second_is_duplicate(self, engine, spy_store, clock, mwf_class, recorder):
        first = engine.admit(JANE, mwf_class, recorder)

        assert first.state is AdmissionState.ADMITTED
        assert first.record_id == 1
        assert first.event.subject_id == '2022-1234'
        assert first.event.session_date == date(2024, 5, 15)
        assert first.event.status == 'present'
        assert first.event.recorder_name == 'Dr. Ada Reyes'

        clock.advance(minutes=5)
        second = engine.admit(JANE, mwf_class, recorder)

        assert second.state is AdmissionState.REJECTED_DUPLICATE
        assert second.error_type == 'duplicate_scan'
        assert second.prior_time == datetime(2024, 5, 15, 10, 0)
        assert '10:00 AM' in second.message
        assert spy_store.create_calls == 1

    def test_transitions_of_admitted_scan(self, engine, mwf_class, recorder):
        result = engine.admit(JANE, mwf_class, recorder)

        assert result.transitions == [
            AdmissionState.IDLE,
            AdmissionState.AWAITING_WINDOW_CHECK,
            AdmissionState.AWAITING_PAYLOAD_VALIDATION,
            AdmissionState.AWAITING_DUPLICATE_CHECK,
            AdmissionState.ADMITTED
        ]
        assert result.state.is_terminal

    def test_different_students_both_admitted(self, engine, spy_store, mwf_class, recorder):
        engine.admit(JANE, mwf_class, recorder)
        result = engine.admit('2022-5678|John Roe|john@roe.edu', mwf_class, recorder)

        assert result.admitted
        assert spy_store.create_calls == 2

    def test_same_student_next_session_admitted(self, engine, clock, mwf_class, recorder):
        engine.admit(JANE, mwf_class, recorder)
        clock.set(datetime(2024, 5, 17, 9, 30))

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.admitted
        assert result.event.session_date == date(2024, 5, 17)

    def test_to_dict(self, engine, mwf_class, recorder):
        data = engine.admit(JANE, mwf_class, recorder).to_dict()

        assert data['success'] is True
        assert data['outcome'] == 'admitted'
        assert data['attendance']['subject_id'] == '2022-1234'
        assert data['attendance']['session_date'] == '2024-05-15'
        assert data['attendance_id'] == 1


class TestRejections:

    def test_out_of_window_never_touches_store(self, engine, spy_store, clock, mwf_class, recorder):
        clock.set(datetime(2024, 5, 14, 10, 0))  # Tuesday

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_OUT_OF_WINDOW
        assert result.error_type == 'out_of_window'
        assert result.schedule_text == 'MWF 09:00 AM - 11:00 AM'
        assert result.now == datetime(2024, 5, 14, 10, 0)
        assert 'only available during scheduled class times' in result.message
        assert spy_store.create_calls == 0
        assert spy_store.find_calls == 0

    def test_window_is_checked_before_payload(self, engine, clock, mwf_class, recorder):
        clock.set(datetime(2024, 5, 15, 12, 0))

        result = engine.admit('not a payload', mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_OUT_OF_WINDOW
        assert result.transitions[-2] is AdmissionState.AWAITING_WINDOW_CHECK

    def test_invalid_payload(self, engine, spy_store, mwf_class, recorder):
        result = engine.admit('STU001;Jane Doe;jane@x.com', mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_INVALID_PAYLOAD
        assert result.error_type == 'malformed_format'
        assert spy_store.create_calls == 0

    def test_object_without_subject_id(self, engine, mwf_class, recorder):
        result = engine.admit({'name': 'Jane Doe'}, mwf_class, recorder)

        assert result.error_type == 'missing_identity'

    def test_missing_schedule_is_out_of_window(self, engine, mwf_class, recorder):
        result = engine.admit(JANE, replace(mwf_class, schedule=None), recorder)

        assert result.state is AdmissionState.REJECTED_OUT_OF_WINDOW

    def test_missing_schedule_raises_in_strict_mode(self, spy_store, clock, mwf_class, recorder):
        engine = AdmissionEngine(spy_store, clock=clock, strict=True)

        with pytest.raises(ScheduleContractError):
            engine.admit(JANE, replace(mwf_class, schedule=None), recorder)

    def test_unparseable_schedule_is_out_of_window(self, engine, mwf_class, recorder):
        result = engine.admit(JANE, replace(mwf_class, schedule='whenever'), recorder)

        assert result.state is AdmissionState.REJECTED_OUT_OF_WINDOW


class TestStoreFallback:

    def test_duplicate_found_in_store(self, spy_store, clock, mwf_class, recorder):
        AdmissionEngine(spy_store, clock=clock).admit(JANE, mwf_class, recorder)

        # A fresh engine has an empty tracker, e.g. after a restart
        engine = AdmissionEngine(spy_store, clock=clock)
        clock.advance(minutes=10)
        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_DUPLICATE
        assert spy_store.create_calls == 1

        engine.admit(JANE, mwf_class, recorder)
        assert spy_store.find_calls == 2


class TestPersistenceFailure:

    def test_failed_create_is_kept_pending(self, engine, spy_store, mwf_class, recorder):
        spy_store.fail_create = True

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_PERSISTENCE_FAILED
        assert result.error_type == 'persistence_failed'
        assert result.event.subject_id == '2022-1234'
        assert len(engine.tracker.pending_events()) == 1

    def test_failed_scan_is_not_a_duplicate(self, engine, spy_store, clock, mwf_class, recorder):
        spy_store.fail_create = True
        engine.admit(JANE, mwf_class, recorder)

        spy_store.fail_create = False
        clock.advance(minutes=1)
        result = engine.admit(JANE, mwf_class, recorder)

        assert result.admitted
        assert len(spy_store.records) == 1
        assert engine.tracker.pending_events() == []

    def test_failed_lookup_is_persistence_failure(self, engine, spy_store, mwf_class, recorder):
        spy_store.fail_find = True

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_PERSISTENCE_FAILED
        assert spy_store.create_calls == 0

    def test_store_timeout_is_persistence_failure(self, engine, spy_store, mwf_class, recorder):
        spy_store.fail_create = True
        spy_store.fail_with = TimeoutError('database is locked')

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_PERSISTENCE_FAILED
        assert result.error_type == 'persistence_failed'
        assert result.error == 'database is locked'
        assert engine.tracker.is_pending(SessionKey('42', date(2024, 5, 15)), '2022-1234')
        assert not engine.tracker.contains(SessionKey('42', date(2024, 5, 15)), '2022-1234')

    def test_lookup_timeout_is_persistence_failure(self, engine, spy_store, mwf_class, recorder):
        spy_store.fail_find = True
        spy_store.fail_with = TimeoutError('lookup timed out')

        result = engine.admit(JANE, mwf_class, recorder)

        assert result.state is AdmissionState.REJECTED_PERSISTENCE_FAILED
        assert len(engine.tracker.pending_events()) == 1

    def test_synced_sessions_do_not_accumulate(self, engine, spy_store, clock, mwf_class, recorder):
        spy_store.fail_create = True
        for _ in range(10):
            engine.admit(JANE, mwf_class, recorder)
            clock.advance(weeks=1)

        spy_store.fail_create = False
        assert engine.sync_pending()['synced'] == 10
        assert engine.admit(JANE, mwf_class, recorder).admitted

        assert engine.tracker.session_count() == {'admitted': 1, 'pending': 0, 'locks': 1}

    def test_sync_pending(self, engine, spy_store, mwf_class, recorder):
        spy_store.fail_create = True
        engine.admit(JANE, mwf_class, recorder)

        assert engine.sync_pending() == {'synced': 0, 'already_recorded': 0, 'failed': 1}

        spy_store.fail_create = False
        assert engine.sync_pending() == {'synced': 1, 'already_recorded': 0, 'failed': 0}
        assert spy_store.records[0].occurred_at == datetime(2024, 5, 15, 10, 0)
        assert engine.sync_pending() == {'synced': 0, 'already_recorded': 0, 'failed': 0}

        duplicate = engine.admit(JANE, mwf_class, recorder)
        assert duplicate.state is AdmissionState.REJECTED_DUPLICATE


class TestLateStatus:

    def test_late_after_threshold(self, spy_store, clock, mwf_class, recorder):
        engine = AdmissionEngine(spy_store, clock=clock, late_threshold_minutes=15)

        assert engine.admit(JANE, mwf_class, recorder).event.status == 'late'

    def test_present_within_threshold(self, spy_store, mwf_class, recorder):
        clock = FixedClock(datetime(2024, 5, 15, 9, 10))
        engine = AdmissionEngine(spy_store, clock=clock, late_threshold_minutes=15)

        assert engine.admit(JANE, mwf_class, recorder).event.status == 'present'


class TestOvernight:

    def test_carried_over_scan_belongs_to_start_day(self, spy_store, mwf_class, recorder):
        clock = FixedClock(datetime(2024, 5, 17, 23, 0))  # Friday
        engine = AdmissionEngine(spy_store, clock=clock)
        night_class = replace(mwf_class, schedule='Friday 10:00 PM - 02:00 AM')

        assert engine.admit(JANE, night_class, recorder).admitted

        clock.set(datetime(2024, 5, 18, 1, 0))
        result = engine.admit(JANE, night_class, recorder)

        assert result.state is AdmissionState.REJECTED_DUPLICATE
        assert result.prior_event.session_date == date(2024, 5, 17)


def test_concurrent_scans_admit_once(engine, spy_store, mwf_class, recorder):
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: engine.admit(JANE, mwf_class, recorder), range(16)))

    states = [result.state for result in results]
    assert states.count(AdmissionState.ADMITTED) == 1
    assert states.count(AdmissionState.REJECTED_DUPLICATE) == 15
    assert spy_store.create_calls == 1
