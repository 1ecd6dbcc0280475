"""
Schedule Parser Module - QR Class Attendance System

This module turns the free-text class schedule stored on every class into
structured rules that the schedule evaluator can check against the clock.

Supported grammar (one or more entries joined by ';'):

    DAY[,DAY...] H[H]:MM AM|PM - H[H]:MM AM|PM

DAY is a weekday name (Sunday..Saturday) or one of the aliases MWF, TTH,
WEEKDAYS and WEEKEND. Matching is case-insensitive.

Malformed entries never raise: they are dropped from the result and reported
in ``ScheduleParseResult.skipped`` so callers can show or log the reason.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Weekday indexes follow 0 = Sunday .. 6 = Saturday
DAY_NAMES = {
    'SUNDAY': 0,
    'MONDAY': 1,
    'TUESDAY': 2,
    'WEDNESDAY': 3,
    'THURSDAY': 4,
    'FRIDAY': 5,
    'SATURDAY': 6
}

DAY_ALIASES = {
    'MWF': frozenset({1, 3, 5}),
    'TTH': frozenset({2, 4}),
    'WEEKDAYS': frozenset({1, 2, 3, 4, 5}),
    'WEEKEND': frozenset({0, 6})
}

WEEKDAY_LABELS = {index: name.capitalize() for name, index in DAY_NAMES.items()}

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2}) ([A-Za-z]+)$')


@dataclass(frozen=True)
class ScheduleRule:
    """One (days, start, end) window parsed from a schedule segment."""
    days: FrozenSet[int]
    start_minute: int
    end_minute: int

    def __post_init__(self):
        for value in (self.start_minute, self.end_minute):
            if not 0 <= value < MINUTES_PER_DAY:
                raise ValueError(f"Minute of day out of range: {value}")
        if not self.days or not all(0 <= day <= 6 for day in self.days):
            raise ValueError(f"Invalid weekday set: {sorted(self.days)}")

    @property
    def is_overnight(self) -> bool:
        return self.end_minute < self.start_minute

    def describe(self) -> str:
        days = ','.join(WEEKDAY_LABELS[day] for day in sorted(self.days))
        return f"{days} {format_minutes(self.start_minute)} - {format_minutes(self.end_minute)}"


@dataclass
class ScheduleParseResult:
    """Parsed rules plus the segments that were dropped and why."""
    rules: List[ScheduleRule] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rules

    def to_dict(self) -> dict:
        return {
            'rules': [
                {
                    'days': sorted(rule.days),
                    'start_minute': rule.start_minute,
                    'end_minute': rule.end_minute,
                    'overnight': rule.is_overnight,
                    'description': rule.describe()
                }
                for rule in self.rules
            ],
            'skipped': [
                {'segment': segment, 'reason': reason}
                for segment, reason in self.skipped
            ]
        }


def parse_time_to_minutes(time_str: str) -> Optional[int]:
    """
    Convert a 12-hour clock string to minutes since midnight.

    Args:
        time_str (str): Time such as "9:00 AM" or "12:30 pm"

    Returns:
        Optional[int]: Minutes since midnight, or None when the text is invalid
    """
    if not isinstance(time_str, str):
        return None

    match = _TIME_PATTERN.match(' '.join(time_str.split()))
    if not match:
        return None

    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()

    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        return None
    if period not in ('AM', 'PM'):
        return None

    if period == 'PM' and hours != 12:
        hours += 12
    elif period == 'AM' and hours == 12:
        hours = 0

    return hours * 60 + minutes


def format_minutes(total_minutes: int) -> str:
    """Render minutes since midnight back into the schedule's 12-hour form."""
    hours, minutes = divmod(total_minutes, 60)
    period = 'AM' if hours < 12 else 'PM'
    display_hour = hours % 12 or 12
    return f"{display_hour:02d}:{minutes:02d} {period}"


def resolve_day_token(token: str) -> FrozenSet[int]:
    """
    Expand a day token into its weekday indexes.

    Args:
        token (str): Weekday name, alias or comma separated list of both

    Returns:
        FrozenSet[int]: Weekday indexes, empty when any part is unknown
    """
    days = set()
    for part in token.split(','):
        name = part.strip().upper()
        if name in DAY_ALIASES:
            days.update(DAY_ALIASES[name])
        elif name in DAY_NAMES:
            days.add(DAY_NAMES[name])
        else:
            return frozenset()
    return frozenset(days)


def _parse_segment(segment: str) -> Tuple[Optional[ScheduleRule], Optional[str]]:
    parts = segment.split(None, 1)
    if len(parts) != 2:
        return None, 'could not separate day from time range'

    day_token, time_range = parts
    days = resolve_day_token(day_token)
    if not days:
        return None, f"unknown day token '{day_token}'"

    bounds = [bound.strip() for bound in time_range.split('-')]
    if len(bounds) != 2 or not all(bounds):
        return None, f"could not parse time range '{time_range}'"

    start_minute = parse_time_to_minutes(bounds[0])
    end_minute = parse_time_to_minutes(bounds[1])
    if start_minute is None or end_minute is None:
        return None, f"invalid time in range '{time_range}'"

    return ScheduleRule(days=days, start_minute=start_minute, end_minute=end_minute), None


def parse_schedule(schedule_text: Optional[str]) -> ScheduleParseResult:
    """
    Parse a schedule string into rules.

    Args:
        schedule_text (str): Schedule such as "MWF 09:00 AM - 11:00 AM; Saturday 08:00 AM - 10:00 AM"

    Returns:
        ScheduleParseResult: Rules in segment order plus skipped segments
    """
    result = ScheduleParseResult()
    if not schedule_text:
        return result

    segments = [segment.strip() for segment in schedule_text.split(';')]
    for segment in filter(None, segments):
        rule, reason = _parse_segment(segment)
        if rule is None:
            logger.debug(f"Skipping schedule segment '{segment}': {reason}")
            result.skipped.append((segment, reason))
        else:
            result.rules.append(rule)

    return result
