from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone as dt_timezone
from typing import Iterable, List, Protocol

from backend.recurrence import (
    InvalidDate,
    MaterializedTransaction,
    RecurringDefinition,
    next_occurrence_or_default,
    to_calendar_date,
)

logger = logging.getLogger(__name__)

RECURRING_SUFFIX = "(Recurring)"


class PersistenceError(RuntimeError):
    """Raised by a ledger when a write or read cannot be completed."""


class DuplicateOccurrence(PersistenceError):
    """Raised when a transaction for the same series and date already exists."""

    def __init__(self, recurring_id: int, occurrence: date, transaction_id: int | None = None):
        super().__init__(
            f"Recurring transaction {recurring_id} already materialized on {occurrence.isoformat()}."
        )
        self.recurring_id = recurring_id
        self.occurrence = occurrence
        self.transaction_id = transaction_id


class Ledger(Protocol):
    def list_active_recurring_definitions(self, user_id: int) -> List[RecurringDefinition]:
        ...

    def insert_transaction(self, record: MaterializedTransaction) -> int:
        ...

    def update_recurring_last_generated(self, recurring_id: int, value: date) -> None:
        ...


@dataclass(frozen=True)
class LastGeneratedUpdate:
    id: int
    last_generated: date


@dataclass
class SweepResult:
    created: List[MaterializedTransaction] = field(default_factory=list)
    updated: List[LastGeneratedUpdate] = field(default_factory=list)
    skipped_count: int = 0


def sweep(
    definitions: Iterable[RecurringDefinition],
    today: date,
    ledger: Ledger,
    timezone: str | None = None,
    now: datetime | None = None,
) -> SweepResult:
    """Materialize at most one due occurrence per active definition.

    The transaction row is written before the ``last_generated`` marker, so a
    failure between the two can only cause a retry, never a lost occurrence.
    A failure for one definition is counted in ``skipped_count`` and does not
    stop the others.
    """
    created_at = now or datetime.now(dt_timezone.utc)
    result = SweepResult()

    for definition in definitions:
        if not definition.active:
            continue
        try:
            end_date = (
                to_calendar_date(definition.end_date, timezone) if definition.end_date else None
            )
        except InvalidDate as exc:
            logger.warning("Skipping recurring transaction %s: %s", definition.id, exc)
            continue
        if end_date and end_date < today:
            continue

        base = definition.last_generated or definition.start_date
        due = next_occurrence_or_default(
            base, definition.frequency, timezone=timezone, today=today
        )
        if due > today:
            continue
        if end_date and due > end_date:
            continue

        record = MaterializedTransaction(
            user_id=definition.user_id,
            kind=definition.kind,
            category_id=definition.category_id,
            amount=definition.amount,
            description=recurring_description(definition.description),
            date=due,
            created_at=created_at,
            recurring_id=definition.id,
        )
        created = True
        try:
            ledger.insert_transaction(record)
        except DuplicateOccurrence:
            logger.info(
                "Recurring transaction %s already has an entry on %s; advancing marker.",
                definition.id,
                due.isoformat(),
            )
            created = False
        except PersistenceError as exc:
            logger.error(
                "Failed to create transaction for recurring transaction %s: %s",
                definition.id,
                exc,
            )
            result.skipped_count += 1
            continue

        try:
            ledger.update_recurring_last_generated(definition.id, due)
        except PersistenceError as exc:
            logger.error(
                "Failed to update last generated date for recurring transaction %s: %s",
                definition.id,
                exc,
            )
            result.skipped_count += 1
            continue

        if created:
            result.created.append(record)
        result.updated.append(LastGeneratedUpdate(id=definition.id, last_generated=due))

    logger.info(
        "Recurring sweep for %s: %d created, %d skipped.",
        today.isoformat(),
        len(result.created),
        result.skipped_count,
    )
    return result


def sweep_user(
    ledger: Ledger,
    user_id: int,
    today: date,
    timezone: str | None = None,
    now: datetime | None = None,
) -> SweepResult:
    definitions = ledger.list_active_recurring_definitions(user_id)
    return sweep(definitions, today, ledger, timezone=timezone, now=now)


def recurring_description(description: str | None) -> str:
    text = (description or "").strip()
    if not text:
        return RECURRING_SUFFIX
    return f"{text} {RECURRING_SUFFIX}"
