import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from backend.recurrence import (
    InvalidDate,
    RecurringDefinition,
    SUPPORTED_FREQUENCIES,
    next_occurrence,
    next_occurrence_or_default,
    to_calendar_date,
    upcoming_occurrences,
    validate_frequency,
)


def make_definition(**overrides) -> RecurringDefinition:
    values = dict(
        id=1,
        user_id=7,
        kind="expense",
        category_id=3,
        amount=Decimal("45.00"),
        frequency="monthly",
        start_date=date(2024, 5, 1),
        description="Gym membership",
    )
    values.update(overrides)
    return RecurringDefinition(**values)


class NextOccurrenceTests(unittest.TestCase):
    def test_day_based_frequencies(self) -> None:
        start = date(2024, 12, 25)
        self.assertEqual(next_occurrence(start, "daily"), date(2024, 12, 26))
        self.assertEqual(next_occurrence(start, "weekly"), date(2025, 1, 1))
        self.assertEqual(next_occurrence(start, "biweekly"), date(2025, 1, 8))

    def test_monthly_clamps_to_end_of_february(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 1, 31), "monthly"), date(2024, 2, 29))
        self.assertEqual(next_occurrence(date(2023, 1, 31), "monthly"), date(2023, 2, 28))

    def test_monthly_rolls_into_next_year(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 12, 15), "monthly"), date(2025, 1, 15))

    def test_quarterly_clamps_to_target_month(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 5, 31), "quarterly"), date(2024, 8, 31))
        self.assertEqual(next_occurrence(date(2024, 11, 30), "quarterly"), date(2025, 2, 28))

    def test_annual_leap_day_clamps_to_february_28(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 2, 29), "annually"), date(2025, 2, 28))
        self.assertEqual(next_occurrence(date(2023, 3, 1), "annually"), date(2024, 3, 1))

    def test_always_moves_forward(self) -> None:
        samples = [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2023, 12, 31),
            date(2024, 8, 31),
            date(2025, 6, 1),
        ]
        for value in samples:
            for frequency in SUPPORTED_FREQUENCIES:
                with self.subTest(value=value, frequency=frequency):
                    self.assertGreater(next_occurrence(value, frequency), value)

    def test_unknown_frequency_falls_back_to_monthly(self) -> None:
        with self.assertLogs("backend.recurrence", level="WARNING"):
            result = next_occurrence(date(2024, 1, 31), "fortnightlyish")
        self.assertEqual(result, date(2024, 2, 29))

    def test_frequency_aliases_are_normalized(self) -> None:
        self.assertEqual(next_occurrence(date(2024, 3, 1), " Bi-Weekly "), date(2024, 3, 15))
        self.assertEqual(next_occurrence(date(2024, 3, 1), "yearly"), date(2025, 3, 1))

    def test_accepts_iso_strings(self) -> None:
        self.assertEqual(next_occurrence("2024-01-31", "monthly"), date(2024, 2, 29))

    def test_timezone_moves_utc_midnight_to_local_day(self) -> None:
        stored = datetime(2024, 3, 10, 0, 0, tzinfo=timezone.utc)

        self.assertEqual(next_occurrence(stored, "daily"), date(2024, 3, 11))
        self.assertEqual(
            next_occurrence(stored, "daily", timezone="America/New_York"),
            date(2024, 3, 10),
        )
        self.assertEqual(
            next_occurrence("2024-03-10T00:00:00Z", "daily", timezone="America/New_York"),
            date(2024, 3, 10),
        )

    def test_timezone_does_not_shift_plain_dates(self) -> None:
        self.assertEqual(
            next_occurrence(date(2024, 3, 10), "daily", timezone="Pacific/Auckland"),
            date(2024, 3, 11),
        )

    def test_invalid_date_raises(self) -> None:
        for value in ("not-a-date", "2024-02-30", "", None):
            with self.subTest(value=value):
                with self.assertRaises(InvalidDate):
                    next_occurrence(value, "monthly")

    def test_unknown_timezone_raises_invalid_date(self) -> None:
        with self.assertRaises(InvalidDate):
            to_calendar_date(datetime(2024, 1, 1, 12), "Mars/Olympus_Mons")


class NextOccurrenceOrDefaultTests(unittest.TestCase):
    def test_returns_next_occurrence_for_valid_input(self) -> None:
        self.assertEqual(
            next_occurrence_or_default(date(2024, 1, 1), "weekly", today=date(2024, 6, 1)),
            date(2024, 1, 8),
        )

    def test_invalid_date_falls_back_to_one_month_from_today(self) -> None:
        with self.assertLogs("backend.recurrence", level="WARNING") as logs:
            result = next_occurrence_or_default("garbage", "daily", today=date(2024, 1, 31))

        self.assertEqual(result, date(2024, 2, 29))
        self.assertIn("garbage", logs.output[0])


class ValidateFrequencyTests(unittest.TestCase):
    def test_rejects_unknown_frequency(self) -> None:
        with self.assertRaises(ValueError):
            validate_frequency("every other tuesday")

    def test_normalizes_known_frequency(self) -> None:
        self.assertEqual(validate_frequency("Quarterly"), "quarterly")
        self.assertEqual(validate_frequency("byweekly"), "biweekly")


class UpcomingOccurrencesTests(unittest.TestCase):
    def test_previews_next_dates_from_last_generated(self) -> None:
        definition = make_definition(
            start_date=date(2024, 1, 31),
            last_generated=date(2024, 2, 29),
        )

        upcoming = upcoming_occurrences(definition, today=date(2024, 3, 1), count=3)

        self.assertEqual(upcoming, [date(2024, 3, 29), date(2024, 4, 29), date(2024, 5, 29)])

    def test_drops_dates_after_end_date(self) -> None:
        definition = make_definition(
            frequency="weekly",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 20),
        )

        upcoming = upcoming_occurrences(definition, today=date(2024, 1, 1))

        self.assertEqual(upcoming, [date(2024, 1, 8), date(2024, 1, 15)])

    def test_timestamp_end_date_uses_local_day(self) -> None:
        definition = make_definition(
            frequency="weekly",
            start_date=date(2024, 1, 1),
            end_date="2024-01-15T03:00:00Z",
        )

        upcoming = upcoming_occurrences(
            definition, today=date(2024, 1, 1), timezone="America/New_York"
        )

        self.assertEqual(upcoming, [date(2024, 1, 8)])

    def test_drops_dates_already_past(self) -> None:
        definition = make_definition(frequency="daily", start_date=date(2024, 1, 1))

        upcoming = upcoming_occurrences(definition, today=date(2024, 1, 4), count=5)

        self.assertEqual(upcoming, [date(2024, 1, 4), date(2024, 1, 5), date(2024, 1, 6)])

    def test_inactive_definition_has_no_upcoming_dates(self) -> None:
        definition = make_definition(active=False)

        self.assertEqual(upcoming_occurrences(definition, today=date(2024, 5, 1)), [])

    def test_first_preview_follows_start_date(self) -> None:
        today = date(2024, 5, 1)
        definition = make_definition(start_date=today - timedelta(days=1), frequency="daily")

        self.assertEqual(upcoming_occurrences(definition, today, count=1), [today])


if __name__ == "__main__":
    unittest.main()
