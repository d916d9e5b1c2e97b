from __future__ import annotations

from datetime import date
from typing import List

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
    insert,
    select,
    true,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from backend.categories import DEFAULT_CATEGORIES
from backend.recurrence import MaterializedTransaction, RecurringDefinition
from backend.sweep import DuplicateOccurrence, PersistenceError

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("currency", String(3)),
    Column("theme", String(10)),
    Column("timezone", String(64)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("name", String(255), nullable=False),
    Column("type", String(10), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

recurring_transactions = Table(
    "recurring_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("type", String(10), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("description", String(500)),
    Column("frequency", String(20), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("last_generated", Date),
    Column("active", Boolean, nullable=False, server_default=true()),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("type", String(10), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("description", String(500)),
    Column("date", Date, nullable=False),
    Column("recurring_id", Integer, ForeignKey("recurring_transactions.id")),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("recurring_id", "date", name="uq_transactions_recurring_date"),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("period", String(10), nullable=False, server_default="monthly"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "category_id", name="uq_budgets_user_category"),
)


class SqlLedger:
    """Ledger backed by the application's SQL database."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_all(self) -> None:
        metadata.create_all(self.engine)
        self.ensure_default_categories()

    def ensure_default_categories(self) -> None:
        with self.engine.begin() as conn:
            existing = conn.execute(
                select(categories.c.id).where(categories.c.user_id.is_(None)).limit(1)
            ).first()
            if existing:
                return
            conn.execute(
                insert(categories),
                [
                    {"user_id": None, "name": name, "type": category_type, "is_active": True}
                    for name, category_type in DEFAULT_CATEGORIES
                ],
            )

    def list_active_recurring_definitions(self, user_id: int) -> List[RecurringDefinition]:
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(
                    select(recurring_transactions)
                    .where(
                        recurring_transactions.c.user_id == user_id,
                        recurring_transactions.c.active.is_(True),
                    )
                    .order_by(recurring_transactions.c.id.asc())
                ).mappings().all()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load recurring transactions.") from exc
        return [definition_from_row(row) for row in rows]

    def insert_transaction(self, record: MaterializedTransaction) -> int:
        try:
            with self.engine.begin() as conn:
                existing_id = conn.execute(
                    select(transactions.c.id).where(
                        transactions.c.recurring_id == record.recurring_id,
                        transactions.c.date == record.date,
                    )
                ).scalar_one_or_none()
                if existing_id is not None:
                    raise DuplicateOccurrence(record.recurring_id, record.date, existing_id)
                transaction_id = conn.execute(
                    insert(transactions)
                    .values(
                        user_id=record.user_id,
                        type=record.kind,
                        category_id=record.category_id,
                        amount=record.amount,
                        description=record.description,
                        date=record.date,
                        recurring_id=record.recurring_id,
                        created_at=record.created_at,
                    )
                    .returning(transactions.c.id)
                ).scalar_one()
        except IntegrityError as exc:
            raise PersistenceError(
                f"Transaction for recurring transaction {record.recurring_id} was rejected."
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to insert transaction.") from exc
        return transaction_id

    def update_recurring_last_generated(self, recurring_id: int, value: date) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(recurring_transactions)
                    .where(recurring_transactions.c.id == recurring_id)
                    .values(last_generated=value)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to update recurring transaction {recurring_id}."
            ) from exc
        if result.rowcount == 0:
            raise PersistenceError(f"Recurring transaction {recurring_id} not found.")


def definition_from_row(row) -> RecurringDefinition:
    return RecurringDefinition(
        id=row["id"],
        user_id=row["user_id"],
        kind=row["type"],
        category_id=row["category_id"],
        amount=row["amount"],
        description=row["description"],
        frequency=row["frequency"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        last_generated=row["last_generated"],
        active=bool(row["active"]),
    )


def create_database_engine(database_url: str) -> Engine:
    connect_args = {}
    engine_options = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            engine_options["poolclass"] = StaticPool
    return create_engine(database_url, connect_args=connect_args, **engine_options)
