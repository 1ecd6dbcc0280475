"""
Tests for schedule text parsing
"""
import pytest

from qrattend.modules.schedule_parser import (
    ScheduleRule, format_minutes, parse_schedule, parse_time_to_minutes, resolve_day_token
)


class TestParseTime:

    @pytest.mark.parametrize('text, expected', [
        ('12:00 AM', 0),
        ('12:30 AM', 30),
        ('9:00 AM', 540),
        ('09:05 am', 545),
        ('12:00 PM', 720),
        ('1:15 PM', 795),
        ('11:59 PM', 1439),
    ])
    def test_valid_times(self, text, expected):
        assert parse_time_to_minutes(text) == expected

    @pytest.mark.parametrize('text', [
        '13:00 PM', '0:30 AM', '9:60 AM', '9:00', '9:00 XM', '9.00 AM', '9:5 AM', '', 'noon'
    ])
    def test_invalid_times(self, text):
        assert parse_time_to_minutes(text) is None

    def test_non_string(self):
        assert parse_time_to_minutes(None) is None

    def test_format_minutes(self):
        assert format_minutes(0) == '12:00 AM'
        assert format_minutes(795) == '01:15 PM'


class TestDayTokens:

    def test_aliases(self):
        assert resolve_day_token('MWF') == {1, 3, 5}
        assert resolve_day_token('tth') == {2, 4}
        assert resolve_day_token('Weekdays') == {1, 2, 3, 4, 5}
        assert resolve_day_token('WEEKEND') == {0, 6}

    def test_literal_days(self):
        assert resolve_day_token('sunday') == {0}
        assert resolve_day_token('Saturday') == {6}

    def test_comma_list(self):
        assert resolve_day_token('Monday,TTH') == {1, 2, 4}

    def test_unknown_token(self):
        assert resolve_day_token('Mon') == frozenset()
        assert resolve_day_token('Monday,Someday') == frozenset()


class TestParseSchedule:

    def test_single_entry(self):
        result = parse_schedule('MWF 09:00 AM - 11:00 AM')

        assert result.rules == [ScheduleRule(frozenset({1, 3, 5}), 540, 660)]
        assert result.skipped == []

    def test_multiple_entries_keep_order(self):
        result = parse_schedule('Monday 8:00 AM - 9:00 AM; ; Thursday 1:00 PM-3:00 PM;')

        assert [rule.days for rule in result.rules] == [{1}, {4}]
        assert result.rules[1].start_minute == 780
        assert result.rules[1].end_minute == 900

    def test_bad_segments_are_skipped_not_fatal(self):
        result = parse_schedule(
            'MWF 09:00 AM - 11:00 AM; Funday 09:00 AM - 10:00 AM; TTH 9:00 AM; Friday; Friday 25:00 AM - 1:00 PM'
        )

        assert len(result.rules) == 1
        assert len(result.skipped) == 4
        reasons = [reason for _, reason in result.skipped]
        assert "unknown day token 'Funday'" in reasons[0]
        assert 'time range' in reasons[1]
        assert 'separate day' in reasons[2]
        assert 'invalid time' in reasons[3]

    def test_overnight_rule(self):
        rule = parse_schedule('Friday 10:00 PM - 02:00 AM').rules[0]

        assert rule.is_overnight
        assert (rule.start_minute, rule.end_minute) == (1320, 120)

    @pytest.mark.parametrize('text', [None, '', '   ', ';;'])
    def test_empty_input_gives_no_rules(self, text):
        result = parse_schedule(text)

        assert result.is_empty
        assert result.skipped == []

    def test_to_dict(self):
        data = parse_schedule('TTH 1:00 PM - 2:30 PM; nonsense').to_dict()

        assert data['rules'][0]['days'] == [2, 4]
        assert data['rules'][0]['description'] == 'Tuesday,Thursday 01:00 PM - 02:30 PM'
        assert data['skipped'][0]['segment'] == 'nonsense'

    def test_rule_rejects_out_of_range_minutes(self):
        with pytest.raises(ValueError):
            ScheduleRule(frozenset({1}), 0, 1440)
