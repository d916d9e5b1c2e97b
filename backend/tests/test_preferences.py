import unittest
from datetime import date, datetime, timezone

from backend.preferences import (
    UserPreferences,
    normalize_currency,
    today_for,
    validate_theme,
    validate_timezone,
)


class UserPreferencesTests(unittest.TestCase):
    def test_updated_returns_new_validated_instance(self) -> None:
        original = UserPreferences()

        changed = original.updated(currency=" eur ", theme="Dark")

        self.assertEqual(changed, UserPreferences(currency="EUR", theme="dark", timezone="UTC"))
        self.assertEqual(original, UserPreferences())

    def test_updated_rejects_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            UserPreferences().updated(currency="EURO")
        with self.assertRaises(ValueError):
            UserPreferences().updated(theme="neon")
        with self.assertRaises(ValueError):
            UserPreferences().updated(timezone="Nowhere/City")

    def test_from_stored_falls_back_on_bad_values(self) -> None:
        preferences = UserPreferences.from_stored(
            "12",
            None,
            "Invalid/Zone",
            default_currency="CAD",
            default_timezone="America/Toronto",
        )

        self.assertEqual(
            preferences,
            UserPreferences(currency="CAD", theme="system", timezone="America/Toronto"),
        )

    def test_validators_normalize(self) -> None:
        self.assertEqual(normalize_currency("gbp"), "GBP")
        self.assertEqual(validate_theme(" LIGHT "), "light")
        self.assertEqual(validate_timezone(" Europe/Paris "), "Europe/Paris")


class TodayForTests(unittest.TestCase):
    def test_uses_user_timezone(self) -> None:
        now = datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)

        self.assertEqual(today_for(UserPreferences(), now=now), date(2024, 3, 1))
        self.assertEqual(
            today_for(UserPreferences(timezone="America/Los_Angeles"), now=now),
            date(2024, 2, 29),
        )

    def test_naive_now_is_treated_as_utc(self) -> None:
        now = datetime(2024, 3, 1, 23, 30)

        self.assertEqual(
            today_for(UserPreferences(timezone="Asia/Tokyo"), now=now),
            date(2024, 3, 2),
        )


if __name__ == "__main__":
    unittest.main()
