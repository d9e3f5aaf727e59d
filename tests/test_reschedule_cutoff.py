import unittest
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import patch

from freezegun import freeze_time

from scheduling_core.core.errors import TooLateToReschedule, ValidationError
from scheduling_core.core.reschedule_cutoff import (
    ensure_outside_cutoff,
    is_within_cutoff,
    resolve_session_start,
    split_legacy_reason,
)
from scheduling_core.core.time_provider import APP_ZONEINFO, TimeProvider, default_time_provider
from scheduling_core.core.timeparse import parse_time_slot, parse_time_value, slots_overlap


NOW = datetime(2026, 3, 1, 10, 0, tzinfo=APP_ZONEINFO)


def _request(session_date, start_time=None):
    return SimpleNamespace(id='r-1', original_session_date=session_date, original_start_time=start_time)


class SessionStartTests(unittest.TestCase):
    def test_separate_date_and_time(self):
        self.assertEqual(resolve_session_start('2026-03-01', '14:30'), datetime(2026, 3, 1, 14, 30))
        self.assertEqual(resolve_session_start(date(2026, 3, 1), time(8, 0)), datetime(2026, 3, 1, 8, 0))

    def test_combined_value_wins(self):
        self.assertEqual(resolve_session_start('2026-03-01T09:15:00', '14:30'), datetime(2026, 3, 1, 9, 15))

    def test_midnight_date_takes_separate_time(self):
        self.assertEqual(resolve_session_start('2026-03-01T00:00:00', '14:30'), datetime(2026, 3, 1, 14, 30))

    def test_utc_values_are_converted_to_local_time(self):
        # 05:00Z is 12:00 in Asia/Ho_Chi_Minh.
        self.assertEqual(resolve_session_start('2026-03-01T05:00:00Z'), datetime(2026, 3, 1, 12, 0))

    def test_unparseable_values(self):
        self.assertIsNone(resolve_session_start('soon', 'later'))
        self.assertIsNone(resolve_session_start('2026-03-01', None))


class CutoffTests(unittest.TestCase):
    def test_two_hours_ahead_is_too_late(self):
        self.assertTrue(is_within_cutoff(_request('2026-03-01', '12:00'), NOW))
        with self.assertRaises(TooLateToReschedule):
            ensure_outside_cutoff(_request('2026-03-01', '12:00'), NOW)

    def test_exactly_four_hours_is_still_blocked(self):
        self.assertTrue(is_within_cutoff(_request('2026-03-01', '14:00'), NOW))

    def test_more_than_four_hours_is_allowed(self):
        self.assertFalse(is_within_cutoff(_request('2026-03-01', '14:01'), NOW))
        ensure_outside_cutoff(_request('2026-03-02', '09:00'), NOW)

    def test_past_sessions_are_blocked(self):
        self.assertTrue(is_within_cutoff(_request('2026-02-28', '09:00'), NOW))

    def test_utc_clock_is_compared_in_local_time(self):
        utc_now = NOW.astimezone(timezone.utc)
        self.assertTrue(is_within_cutoff(_request('2026-03-01', '12:00'), utc_now))

    def test_cutoff_hours_come_from_settings(self):
        with patch('scheduling_core.core.reschedule_cutoff.settings.reschedule_cutoff_hours', 1):
            self.assertFalse(is_within_cutoff(_request('2026-03-01', '12:00'), NOW))

    def test_unparseable_start_is_not_within_cutoff(self):
        with self.assertLogs('scheduling_core.core.reschedule_cutoff', level='WARNING') as logs:
            self.assertFalse(is_within_cutoff(_request('tbd', ''), NOW))
        self.assertIn('reschedule_cutoff_unparseable', logs.output[0])


class LegacyReasonTests(unittest.TestCase):
    def test_prefix_is_detected_and_stripped(self):
        self.assertEqual(split_legacy_reason('[CHANGE TUTOR] Tutor is sick'), (True, 'Tutor is sick'))
        self.assertEqual(split_legacy_reason('  [change tutor]Moved away'), (True, 'Moved away'))

    def test_plain_reason(self):
        self.assertEqual(split_legacy_reason(' Family trip '), (False, 'Family trip'))
        self.assertEqual(split_legacy_reason(None), (False, ''))


class TimeSlotTests(unittest.TestCase):
    def test_slot_formats(self):
        self.assertEqual(parse_time_slot('09:00-10:30'), ('09:00', '10:30'))
        self.assertEqual(parse_time_slot('9:00 - 10:30:00'), ('09:00', '10:30'))
        self.assertIsNone(parse_time_slot('  '))

    def test_bad_slots(self):
        for raw in ('0900', '10:30-09:00', 'morning-evening'):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError) as ctx:
                    parse_time_slot(raw)
                self.assertEqual(ctx.exception.code, 'invalid_time_slot')

    def test_time_values(self):
        self.assertEqual(parse_time_value('2026-03-01T17:45:00'), time(17, 45))
        self.assertIsNone(parse_time_value('25:00'))

    def test_overlap(self):
        self.assertTrue(slots_overlap('09:00', '10:30', '10:00', '11:00'))
        self.assertFalse(slots_overlap('09:00', '10:00', '10:00', '11:00'))
        self.assertTrue(slots_overlap('', '', '10:00', '11:00'))


class TimeProviderTests(unittest.TestCase):
    @freeze_time('2026-03-01 03:00:00')
    def test_clock_reads_in_app_timezone(self):
        provider = TimeProvider()
        self.assertEqual(provider.now().utcoffset(), timedelta(hours=7))
        self.assertEqual(provider.local_naive_now(), datetime(2026, 3, 1, 10, 0))
        self.assertEqual(provider.today(), date(2026, 3, 1))

    @freeze_time('2026-03-01 03:00:00')
    def test_default_clock_drives_cutoff(self):
        now = default_time_provider.now()
        self.assertTrue(is_within_cutoff(_request('2026-03-01', '13:59'), now))
        self.assertFalse(is_within_cutoff(_request('2026-03-01', '14:30'), now))


if __name__ == '__main__':
    unittest.main()
