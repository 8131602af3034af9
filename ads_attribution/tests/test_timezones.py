from datetime import date, datetime, timezone

from django.test import SimpleTestCase

from ads_attribution.services.timezones import (
    floor_hour,
    format_conversion_date_time,
    local_day_bounds,
    local_days,
    local_hour_to_utc,
)


class LocalHourToUtcTest(SimpleTestCase):
    def test_winter_and_summer_offsets(self):
        self.assertEqual(local_hour_to_utc("2026-01-15", 9, "Europe/London"), datetime(2026, 1, 15, 9, tzinfo=timezone.utc))
        self.assertEqual(local_hour_to_utc("2026-07-15", 9, "Europe/London"), datetime(2026, 7, 15, 8, tzinfo=timezone.utc))
        self.assertEqual(local_hour_to_utc("2026-07-15", 9, "America/New_York"), datetime(2026, 7, 15, 13, tzinfo=timezone.utc))

    def test_same_day_dst_switch(self):
        # London springs forward at 01:00 UTC on 2026-03-29
        self.assertEqual(local_hour_to_utc("2026-03-29", 0, "Europe/London"), datetime(2026, 3, 29, 0, tzinfo=timezone.utc))
        self.assertEqual(local_hour_to_utc("2026-03-29", 3, "Europe/London"), datetime(2026, 3, 29, 2, tzinfo=timezone.utc))
        # New York springs forward at 07:00 UTC on 2026-03-08
        self.assertEqual(local_hour_to_utc("2026-03-08", 5, "America/New_York"), datetime(2026, 3, 8, 9, tzinfo=timezone.utc))

    def test_unknown_zone_is_utc(self):
        self.assertEqual(local_hour_to_utc("2026-01-15", 9, "Mars/Olympus"), datetime(2026, 1, 15, 9, tzinfo=timezone.utc))


class LocalDaysTest(SimpleTestCase):
    def test_days_follow_account_zone(self):
        start = datetime(2026, 7, 1, 2, tzinfo=timezone.utc)
        end = datetime(2026, 7, 2, 2, tzinfo=timezone.utc)
        # 22:00 on June 30 in New York through 22:00 on July 1
        self.assertEqual(local_days(start, end, "America/New_York"), [date(2026, 6, 30), date(2026, 7, 1)])

    def test_day_bounds(self):
        start, end = local_day_bounds(date(2026, 7, 1), "Europe/London")
        self.assertEqual(start, datetime(2026, 6, 30, 23, tzinfo=timezone.utc))
        self.assertEqual(end, datetime(2026, 7, 1, 23, tzinfo=timezone.utc))


class FormattingTest(SimpleTestCase):
    def test_conversion_date_time_carries_offset(self):
        moment = datetime(2026, 7, 1, 11, 30, 5, tzinfo=timezone.utc)
        self.assertEqual(format_conversion_date_time(moment, "Europe/London"), "2026-07-01 12:30:05+01:00")
        self.assertEqual(format_conversion_date_time(moment, "America/New_York"), "2026-07-01 07:30:05-04:00")
        self.assertEqual(format_conversion_date_time(moment, "Asia/Kolkata"), "2026-07-01 17:00:05+05:30")

    def test_floor_hour(self):
        self.assertEqual(floor_hour(datetime(2026, 7, 1, 11, 59, 59, tzinfo=timezone.utc)), datetime(2026, 7, 1, 11, tzinfo=timezone.utc))
