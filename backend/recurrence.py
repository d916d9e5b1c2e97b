from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DAY_INTERVALS = {"daily": 1, "weekly": 7, "biweekly": 14}
MONTH_INTERVALS = {"monthly": 1, "quarterly": 3, "annually": 12}
SUPPORTED_FREQUENCIES = set(DAY_INTERVALS) | set(MONTH_INTERVALS)
SUPPORTED_KINDS = {"income", "expense"}
FREQUENCY_ALIASES = {
    "byweekly": "biweekly",
    "fortnightly": "biweekly",
    "yearly": "annually",
    "annual": "annually",
}
DEFAULT_UPCOMING_COUNT = 5


class InvalidDate(ValueError):
    """Raised when a date input cannot be read as a calendar day."""


@dataclass(frozen=True)
class RecurringDefinition:
    id: int
    user_id: int
    kind: str
    category_id: int
    amount: Decimal
    frequency: str
    start_date: date
    description: Optional[str] = None
    end_date: Optional[date] = None
    last_generated: Optional[date] = None
    active: bool = True


@dataclass(frozen=True)
class MaterializedTransaction:
    user_id: int
    kind: str
    category_id: int
    amount: Decimal
    description: str
    date: date
    created_at: datetime
    recurring_id: int


def next_occurrence(
    last_date: date | datetime | str,
    frequency: str,
    timezone: str | None = None,
) -> date:
    """Return the first calendar day after ``last_date`` for ``frequency``.

    Month based frequencies clamp to the last day of the target month, so
    Jan 31 becomes Feb 28 (or 29) and Feb 29 becomes Feb 28 a year later.
    Unrecognized frequencies are treated as monthly.
    """
    current = to_calendar_date(last_date, timezone)
    normalized = normalize_frequency(frequency)
    if normalized not in SUPPORTED_FREQUENCIES:
        logger.warning("Unknown recurring frequency %r, treating as monthly.", frequency)
        normalized = "monthly"

    if normalized in DAY_INTERVALS:
        return current + timedelta(days=DAY_INTERVALS[normalized])
    return add_months(current, MONTH_INTERVALS[normalized], current.day)


def next_occurrence_or_default(
    last_date: date | datetime | str,
    frequency: str,
    timezone: str | None = None,
    today: date | None = None,
) -> date:
    try:
        return next_occurrence(last_date, frequency, timezone=timezone)
    except InvalidDate as exc:
        reference = today or date.today()
        fallback = add_months(reference, 1, reference.day)
        logger.warning(
            "Could not compute next occurrence from %r (%s); using %s.",
            last_date,
            exc,
            fallback.isoformat(),
        )
        return fallback


def upcoming_occurrences(
    definition: RecurringDefinition,
    today: date,
    count: int = DEFAULT_UPCOMING_COUNT,
    timezone: str | None = None,
) -> List[date]:
    """Preview the next ``count`` steps of a series, keeping those still ahead.

    Steps that land before ``today`` or after the end date are dropped rather
    than replaced, so fewer than ``count`` dates may come back.
    """
    if count < 0:
        raise ValueError("count must not be negative.")
    if not definition.active:
        return []

    end_date = to_calendar_date(definition.end_date, timezone) if definition.end_date else None
    cursor = to_calendar_date(definition.last_generated or definition.start_date, timezone)
    upcoming: List[date] = []
    for _ in range(count):
        cursor = next_occurrence(cursor, definition.frequency)
        if end_date and cursor > end_date:
            continue
        if cursor < today:
            continue
        upcoming.append(cursor)
    return upcoming


def to_calendar_date(value: date | datetime | str, timezone: str | None = None) -> date:
    """Reduce ``value`` to a calendar day, shifting timestamps into ``timezone``."""
    if isinstance(value, datetime):
        return _instant_to_date(value, timezone)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDate(f"Unsupported date value: {value!r}")

    text = value.strip()
    if not text:
        raise InvalidDate("Empty date value.")
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError as exc:
            raise InvalidDate(f"Invalid date: {value!r}") from exc
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidDate(f"Invalid date: {value!r}") from exc
    return _instant_to_date(parsed, timezone)


def validate_frequency(frequency: str) -> str:
    normalized = normalize_frequency(frequency)
    if normalized not in SUPPORTED_FREQUENCIES:
        raise ValueError(
            "Only daily, weekly, biweekly, monthly, quarterly, or annually schedules are supported."
        )
    return normalized


def normalize_frequency(value: str) -> str:
    if not isinstance(value, str):
        return ""
    normalized = "".join(ch for ch in value.strip().lower() if ch.isalnum())
    return FREQUENCY_ALIASES.get(normalized, normalized)


def validate_kind(kind: str) -> str:
    normalized = kind.strip().lower()
    if normalized not in SUPPORTED_KINDS:
        raise ValueError("Only income or expense recurring transactions are supported.")
    return normalized


def add_months(start_date: date, months: int, anchor_day: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    last_day = monthrange(year, month)[1]
    day = min(anchor_day, last_day)
    return date(year, month, day)


def _instant_to_date(value: datetime, timezone: str | None) -> date:
    if not timezone:
        return value.date()
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidDate(f"Unknown timezone: {timezone!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt_timezone.utc)
    return value.astimezone(zone).date()
