from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_CURRENCY = "USD"
DEFAULT_THEME = "system"
DEFAULT_TIMEZONE = "UTC"
SUPPORTED_THEMES = {"light", "dark", "system"}


@dataclass(frozen=True)
class UserPreferences:
    """Display and calendar preferences for one user.

    Instances are immutable and handed to the code that needs them; changing
    a preference produces a new instance through :meth:`updated`.
    """

    currency: str = DEFAULT_CURRENCY
    theme: str = DEFAULT_THEME
    timezone: str = DEFAULT_TIMEZONE

    def updated(
        self,
        currency: str | None = None,
        theme: str | None = None,
        timezone: str | None = None,
    ) -> "UserPreferences":
        return replace(
            self,
            currency=normalize_currency(currency) if currency is not None else self.currency,
            theme=validate_theme(theme) if theme is not None else self.theme,
            timezone=validate_timezone(timezone) if timezone is not None else self.timezone,
        )

    @classmethod
    def from_stored(
        cls,
        currency: str | None,
        theme: str | None,
        timezone: str | None,
        default_currency: str = DEFAULT_CURRENCY,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> "UserPreferences":
        return cls(
            currency=_or_default(normalize_currency, currency, default_currency),
            theme=_or_default(validate_theme, theme, DEFAULT_THEME),
            timezone=_or_default(validate_timezone, timezone, default_timezone),
        )


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def validate_theme(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in SUPPORTED_THEMES:
        raise ValueError("Theme must be light, dark, or system.")
    return normalized


def validate_timezone(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("Timezone required.")
    try:
        ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {normalized}") from exc
    return normalized


def today_for(preferences: UserPreferences, now: datetime | None = None) -> date:
    """Current calendar date in the user's timezone."""
    instant = now or datetime.now(dt_timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=dt_timezone.utc)
    return instant.astimezone(ZoneInfo(preferences.timezone)).date()


def _or_default(validator, value: str | None, fallback: str) -> str:
    if not value:
        return fallback
    try:
        return validator(value)
    except ValueError:
        return fallback
