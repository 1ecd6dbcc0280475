"""
Schedule Evaluator Module - QR Class Attendance System

Decides whether a point in time falls inside any window of a parsed class
schedule. Evaluation is a pure function of the rules and the reading it is
given; the wall clock is only read through a ``Clock`` object so tests can
inject a fixed instant.

Features:
- Same-day and overnight window checks
- Session date resolution for windows that cross midnight
- System and fixed clocks
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from qrattend.modules.schedule_parser import (
    ScheduleParseResult, ScheduleRule, WEEKDAY_LABELS, format_minutes, parse_schedule
)


@dataclass(frozen=True)
class ClockReading:
    """Local wall-clock reading used for schedule checks."""
    weekday: int  # 0 = Sunday
    minutes: int
    date: date
    instant: datetime

    @classmethod
    def from_datetime(cls, moment: datetime) -> 'ClockReading':
        return cls(
            weekday=(moment.weekday() + 1) % 7,
            minutes=moment.hour * 60 + moment.minute,
            date=moment.date(),
            instant=moment
        )

    def describe(self) -> str:
        return f"{WEEKDAY_LABELS[self.weekday]} {format_minutes(self.minutes)}"


class SystemClock:
    """Clock backed by the host's local time."""

    def now(self) -> ClockReading:
        return ClockReading.from_datetime(datetime.now())


class FixedClock:
    """Clock pinned to a given instant. Used by tests and replays."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> ClockReading:
        return ClockReading.from_datetime(self.moment)

    def set(self, moment: datetime):
        self.moment = moment

    def advance(self, **kwargs):
        self.moment = self.moment + timedelta(**kwargs)


@dataclass(frozen=True)
class ActiveWindow:
    """The rule that matched and the date its window opened."""
    rule: ScheduleRule
    session_date: date
    opened_minutes_ago: int


def _previous_weekday(weekday: int) -> int:
    return (weekday - 1) % 7


def rule_matches(rule: ScheduleRule, weekday: int, minutes: int) -> bool:
    """Check a single rule against a weekday index and minute of day."""
    if not rule.is_overnight:
        return weekday in rule.days and rule.start_minute <= minutes <= rule.end_minute

    # Overnight windows start on a listed day and spill into the next one
    if weekday in rule.days and minutes >= rule.start_minute:
        return True
    return _previous_weekday(weekday) in rule.days and minutes <= rule.end_minute


def is_in_session(rules: Iterable[ScheduleRule], weekday: int, minutes: int) -> bool:
    """
    Return True if any rule covers the given weekday and minute.

    Args:
        rules (Iterable[ScheduleRule]): Parsed schedule rules
        weekday (int): Weekday index, 0 = Sunday
        minutes (int): Minutes since midnight

    Returns:
        bool: Whether the class is in session
    """
    return any(rule_matches(rule, weekday, minutes) for rule in rules)


def find_active_window(rules: Iterable[ScheduleRule],
                       reading: ClockReading) -> Optional[ActiveWindow]:
    """
    Find the first rule that covers the reading.

    Args:
        rules (Iterable[ScheduleRule]): Parsed schedule rules
        reading (ClockReading): Point in time to check

    Returns:
        Optional[ActiveWindow]: Matching window, or None when out of session
    """
    for rule in rules:
        if not rule_matches(rule, reading.weekday, reading.minutes):
            continue

        carried_over = (
            rule.is_overnight
            and reading.minutes <= rule.end_minute
            and not (reading.weekday in rule.days and reading.minutes >= rule.start_minute)
        )
        if carried_over:
            session_date = reading.date - timedelta(days=1)
            elapsed = reading.minutes + (24 * 60 - rule.start_minute)
        else:
            session_date = reading.date
            elapsed = reading.minutes - rule.start_minute

        return ActiveWindow(rule=rule, session_date=session_date, opened_minutes_ago=elapsed)

    return None


def evaluate_schedule(schedule: Union[str, ScheduleParseResult, None],
                      reading: ClockReading) -> bool:
    """Convenience wrapper accepting raw schedule text or a parse result."""
    if schedule is None:
        return False
    if isinstance(schedule, str):
        schedule = parse_schedule(schedule)
    return is_in_session(schedule.rules, reading.weekday, reading.minutes)
