from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNCATEGORIZED = "Uncategorized"
SUPPORTED_PERIODS = {"weekly", "monthly", "yearly"}


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    type: str
    date: date
    category_id: Optional[int] = None


@dataclass(frozen=True)
class Budget:
    category_id: int
    amount: Decimal
    period: str = "monthly"
    category_name: Optional[str] = None


@dataclass(frozen=True)
class CategorySpending:
    category_id: Optional[int]
    category_name: str
    spent: Decimal
    budget: Decimal
    percentage: Decimal

    @property
    def status(self) -> str:
        return spending_status(self.percentage)


def summarize_category_spending(
    transactions: Iterable[Transaction],
    budgets: Iterable[Budget],
    category_names: Optional[Mapping[int, str]] = None,
) -> List[CategorySpending]:
    names = dict(category_names or {})
    spent_by_category = _sum_expenses_by_category(transactions)

    lines: List[CategorySpending] = []
    budgeted: set[Optional[int]] = set()
    for budget in budgets:
        if budget.category_id in budgeted:
            raise ValueError(f"Duplicate budget for category {budget.category_id}.")
        budgeted.add(budget.category_id)
        amount = _coerce_amount(budget.amount)
        spent = spent_by_category.get(budget.category_id, ZERO)
        lines.append(
            CategorySpending(
                category_id=budget.category_id,
                category_name=budget.category_name
                or names.get(budget.category_id)
                or UNCATEGORIZED,
                spent=spent,
                budget=amount,
                percentage=spending_percentage(spent, amount),
            )
        )

    for category_id, spent in spent_by_category.items():
        if category_id in budgeted:
            continue
        lines.append(
            CategorySpending(
                category_id=category_id,
                category_name=names.get(category_id) or UNCATEGORIZED,
                spent=spent,
                budget=ZERO,
                percentage=spending_percentage(spent, ZERO),
            )
        )

    lines.sort(key=lambda line: line.percentage, reverse=True)
    return lines


def spending_percentage(spent: Decimal, budget: Decimal) -> Decimal:
    if budget > ZERO:
        return spent / budget * HUNDRED
    if spent > ZERO:
        return HUNDRED
    return ZERO


def spending_status(percentage: Decimal) -> str:
    if percentage > 100:
        return "over"
    if percentage > 85:
        return "warning"
    if percentage > 70:
        return "caution"
    return "ok"


def get_period_range(period: str, today: date) -> tuple[date, date]:
    normalized = validate_period(period)
    if normalized == "weekly":
        return today - timedelta(days=today.weekday()), today
    if normalized == "monthly":
        return today.replace(day=1), today
    return today.replace(month=1, day=1), today


def validate_period(period: str) -> str:
    normalized = period.strip().lower()
    if normalized not in SUPPORTED_PERIODS:
        raise ValueError("Unsupported period. Use weekly, monthly, or yearly.")
    return normalized


def _sum_expenses_by_category(
    transactions: Iterable[Transaction],
) -> Dict[Optional[int], Decimal]:
    totals: Dict[Optional[int], Decimal] = {}
    for txn in transactions:
        if txn.type.strip().lower() != "expense":
            continue
        totals[txn.category_id] = totals.get(txn.category_id, ZERO) + _coerce_amount(txn.amount)
    return totals


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
