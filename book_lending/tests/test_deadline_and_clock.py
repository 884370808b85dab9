import unittest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from book_lending.services.clock import FixedClock, SystemClock, to_storage_time
from book_lending.services.deadline import RENTAL_PERIOD_DAYS, compute_deadline


class DeadlineTests(unittest.TestCase):
    def test_deadline_is_seven_days_after_rental(self):
        self.assertEqual(RENTAL_PERIOD_DAYS, 7)
        start = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(compute_deadline(start), datetime(2024, 1, 8, 0, 0, 0, tzinfo=timezone.utc))

    def test_deadline_crosses_month_and_leap_day(self):
        self.assertEqual(compute_deadline(datetime(2024, 2, 26, 13, 30)), datetime(2024, 3, 4, 13, 30))
        self.assertEqual(compute_deadline(datetime(2023, 12, 29, 23, 59, 59)), datetime(2024, 1, 5, 23, 59, 59))

    def test_deadline_keeps_local_wall_clock_across_dst(self):
        berlin = ZoneInfo("Europe/Berlin")
        start = datetime(2024, 3, 28, 10, 0, tzinfo=berlin)
        deadline = compute_deadline(start)
        self.assertEqual((deadline.day, deadline.hour, deadline.minute), (4, 10, 0))
        self.assertEqual(deadline.utcoffset(), timedelta(hours=2))

    def test_deadline_holds_for_many_start_times(self):
        start = datetime(2024, 1, 1)
        for hours in range(0, 24 * 400, 37):
            rental_date = start + timedelta(hours=hours)
            self.assertEqual(compute_deadline(rental_date) - rental_date, timedelta(days=7))


class ClockTests(unittest.TestCase):
    def test_fixed_clock_set_and_advance(self):
        clock = FixedClock(datetime(2024, 1, 1))
        self.assertEqual(clock.now(), datetime(2024, 1, 1))
        self.assertEqual(clock.advance(timedelta(hours=1)), datetime(2024, 1, 1, 1))
        clock.set(datetime(2025, 5, 5))
        self.assertEqual(clock.now(), datetime(2025, 5, 5))

    def test_system_clock_is_naive_utc(self):
        now = SystemClock().now()
        self.assertIsNone(now.tzinfo)
        reference = datetime.now(timezone.utc).replace(tzinfo=None)
        self.assertLess(abs(reference - now), timedelta(seconds=5))

    def test_storage_time_converts_aware_values_to_naive_utc(self):
        aware = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        self.assertEqual(to_storage_time(aware), datetime(2024, 1, 1, 0, 0))
        naive = datetime(2024, 1, 1, 9, 0)
        self.assertIs(to_storage_time(naive), naive)


if __name__ == "__main__":
    unittest.main()
