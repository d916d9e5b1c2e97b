import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

import bcrypt
from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.exc import IntegrityError

from backend.budget_engine import (
    Budget,
    Transaction,
    get_period_range,
    summarize_category_spending,
    validate_period,
)
from backend.categories import (
    CategoryCompatibility,
    check_category_compatibility,
    validate_category_type,
)
from backend.config import Settings, configure_logging
from backend.ledger import (
    SqlLedger,
    budgets,
    categories,
    create_database_engine,
    definition_from_row,
    recurring_transactions,
    transactions,
    users,
)
from backend.preferences import UserPreferences, today_for
from backend.recurrence import upcoming_occurrences, validate_frequency, validate_kind
from backend.sweep import PersistenceError, sweep_user

settings = Settings.from_env()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

engine = create_database_engine(settings.database_url)
ledger = SqlLedger(engine)

CENT = Decimal("0.01")
MAX_UPCOMING = 50


@app.on_event("startup")
def init_db() -> None:
    ledger.create_all()


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime | None = None


class UserSettingsPayload(BaseModel):
    currency: str | None = None
    theme: str | None = None
    timezone: str | None = None


class UserSettingsResponse(BaseModel):
    id: int
    email: str
    currency: str
    theme: str
    timezone: str


class CategoryPayload(BaseModel):
    name: str
    type: str

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Category name required.")
        payload.type = validate_category_type(payload.type)
        return payload


class CategoryResponse(BaseModel):
    id: int
    user_id: int | None = None
    name: str
    type: str
    is_active: bool
    created_at: datetime | None = None


class TransactionPayload(BaseModel):
    type: str
    category_id: int
    amount: Decimal
    description: str | None = None
    date: date

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = validate_kind(payload.type)
        payload.amount = normalize_amount(payload.amount)
        payload.description = payload.description.strip() if payload.description else ""
        return payload


class TransactionResponse(BaseModel):
    id: int
    user_id: int
    type: str
    category_id: int
    amount: Decimal
    description: str | None = None
    date: date
    recurring_id: int | None = None
    created_at: datetime | None = None


class RecurringPayload(BaseModel):
    type: str
    category_id: int
    amount: Decimal
    description: str | None = None
    frequency: str = "monthly"
    start_date: date
    end_date: date | None = None
    active: bool | None = None

    @classmethod
    def validate_payload(cls, payload: "RecurringPayload") -> "RecurringPayload":
        payload.type = validate_kind(payload.type)
        payload.amount = normalize_amount(payload.amount)
        payload.frequency = validate_frequency(payload.frequency)
        payload.description = payload.description.strip() if payload.description else ""
        if payload.end_date is not None and payload.end_date < payload.start_date:
            raise ValueError("End date must be on or after the start date.")
        return payload


class RecurringResponse(BaseModel):
    id: int
    user_id: int
    type: str
    category_id: int
    amount: Decimal
    description: str | None = None
    frequency: str
    start_date: date
    end_date: date | None = None
    last_generated: date | None = None
    active: bool
    created_at: datetime | None = None


class SweepEntry(BaseModel):
    recurring_id: int
    type: str
    category_id: int
    amount: Decimal
    description: str
    date: date


class SweepResponse(BaseModel):
    created_count: int
    skipped_count: int
    created: list[SweepEntry]


class UpcomingEntry(BaseModel):
    date: date
    amount: Decimal
    description: str | None = None


class UpcomingResponse(BaseModel):
    id: int
    transactions: list[UpcomingEntry]


class BudgetPayload(BaseModel):
    category_id: int
    amount: Decimal
    period: str = "monthly"

    @classmethod
    def validate_payload(cls, payload: "BudgetPayload") -> "BudgetPayload":
        payload.period = validate_period(payload.period)
        payload.amount = normalize_amount(payload.amount)
        return payload


class BudgetResponse(BaseModel):
    id: int
    user_id: int
    category_id: int
    category_name: str | None = None
    amount: Decimal
    period: str
    created_at: datetime | None = None


class CategorySpendingResponse(BaseModel):
    category_id: int | None = None
    category_name: str
    spent: Decimal
    budget: Decimal
    percentage: Decimal
    status: str


def normalize_amount(value: Decimal) -> Decimal:
    amount = Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValueError("Amount must be greater than zero.")
    return amount


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_user_id(x_user_id: str | None = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    with engine.begin() as conn:
        result = conn.execute(select(users.c.id).where(users.c.id == user_id))
        if not result.first():
            raise HTTPException(status_code=404, detail="User not found.")
    return user_id


def load_preferences(conn, user_id: int) -> UserPreferences:
    row = conn.execute(
        select(users.c.currency, users.c.theme, users.c.timezone).where(users.c.id == user_id)
    ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserPreferences.from_stored(
        row["currency"],
        row["theme"],
        row["timezone"],
        default_currency=settings.default_currency,
        default_timezone=settings.default_timezone,
    )


def visible_to(user_id: int):
    return or_(categories.c.user_id == user_id, categories.c.user_id.is_(None))


def resolve_category_for(conn, user_id: int, category_id: int, kind: str) -> None:
    """Check a category can hold ``kind`` entries, promoting it to ``both`` if needed."""
    row = conn.execute(
        select(categories).where(categories.c.id == category_id, visible_to(user_id))
    ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Category not found.")
    compatibility = check_category_compatibility(
        row["type"],
        kind,
        user_owned=row["user_id"] == user_id,
        is_active=bool(row["is_active"]),
    )
    if compatibility is CategoryCompatibility.INCOMPATIBLE:
        raise HTTPException(
            status_code=400,
            detail=f"Category '{row['name']}' cannot be used for {kind} transactions.",
        )
    if compatibility is CategoryCompatibility.REQUIRES_PROMOTION:
        logger.info("Promoting category %s to 'both' for %s transactions.", category_id, kind)
        conn.execute(
            update(categories).where(categories.c.id == category_id).values(type="both")
        )


def category_response(row) -> CategoryResponse:
    return CategoryResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        type=row["type"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def transaction_response(row) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        category_id=row["category_id"],
        amount=row["amount"],
        description=row["description"],
        date=row["date"],
        recurring_id=row["recurring_id"],
        created_at=row["created_at"],
    )


def recurring_response(row) -> RecurringResponse:
    return RecurringResponse(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        category_id=row["category_id"],
        amount=row["amount"],
        description=row["description"],
        frequency=row["frequency"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        last_generated=row["last_generated"],
        active=bool(row["active"]),
        created_at=row["created_at"],
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=UserResponse)
def signup(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password required.")
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(
            email=email,
            hashed_password=hashed_password,
            currency=settings.default_currency,
            timezone=settings.default_timezone,
        )
        .returning(users.c.id, users.c.email, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.post("/auth/login", response_model=UserResponse)
def login(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()

    if not row or not verify_password(payload.password, row["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.get("/users/me/settings", response_model=UserSettingsResponse)
def get_user_settings(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UserSettingsResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        email = conn.execute(select(users.c.email).where(users.c.id == user_id)).scalar_one()
        preferences = load_preferences(conn, user_id)
    return UserSettingsResponse(
        id=user_id,
        email=email,
        currency=preferences.currency,
        theme=preferences.theme,
        timezone=preferences.timezone,
    )


@app.put("/users/me/settings", response_model=UserSettingsResponse)
def update_user_settings(
    payload: UserSettingsPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UserSettingsResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        current = load_preferences(conn, user_id)
        try:
            preferences = current.updated(
                currency=payload.currency,
                theme=payload.theme,
                timezone=payload.timezone,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        row = conn.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(
                currency=preferences.currency,
                theme=preferences.theme,
                timezone=preferences.timezone,
            )
            .returning(users.c.id, users.c.email)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserSettingsResponse(
        id=row["id"],
        email=row["email"],
        currency=preferences.currency,
        theme=preferences.theme,
        timezone=preferences.timezone,
    )


@app.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    type: str | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[CategoryResponse]:
    user_id = get_user_id(x_user_id)
    conditions = [visible_to(user_id), categories.c.is_active.is_(True)]
    if type is not None:
        try:
            kind = validate_kind(type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        conditions.append(categories.c.type.in_([kind, "both"]))
    with engine.begin() as conn:
        rows = conn.execute(
            select(categories).where(and_(*conditions)).order_by(categories.c.name.asc())
        ).mappings().all()
    return [category_response(row) for row in rows]


@app.post("/categories", response_model=CategoryResponse)
def create_category(
    payload: CategoryPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> CategoryResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = CategoryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        row = conn.execute(
            insert(categories)
            .values(user_id=user_id, name=payload.name, type=payload.type, is_active=True)
            .returning(*categories.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to create category.")
    return category_response(row)


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        result = conn.execute(
            update(categories)
            .where(categories.c.id == category_id, categories.c.user_id == user_id)
            .values(is_active=False)
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Category not found.")
    return {"status": "deactivated"}


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[TransactionResponse]:
    user_id = get_user_id(x_user_id)
    conditions = [transactions.c.user_id == user_id]
    if start_date is not None:
        conditions.append(transactions.c.date >= start_date)
    if end_date is not None:
        conditions.append(transactions.c.date <= end_date)
    with engine.begin() as conn:
        rows = conn.execute(
            select(transactions)
            .where(and_(*conditions))
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        ).mappings().all()
    return [transaction_response(row) for row in rows]


@app.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    payload: TransactionPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> TransactionResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = TransactionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        resolve_category_for(conn, user_id, payload.category_id, payload.type)
        row = conn.execute(
            insert(transactions)
            .values(
                user_id=user_id,
                type=payload.type,
                category_id=payload.category_id,
                amount=payload.amount,
                description=payload.description,
                date=payload.date,
            )
            .returning(*transactions.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=500, detail="Failed to create transaction.")
    return transaction_response(row)


@app.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    stmt = transactions.delete().where(
        transactions.c.id == transaction_id, transactions.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Transaction not found.")
    return {"status": "deleted"}


@app.get("/recurring-transactions", response_model=list[RecurringResponse])
def list_recurring_transactions(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[RecurringResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = conn.execute(
            select(recurring_transactions)
            .where(recurring_transactions.c.user_id == user_id)
            .order_by(recurring_transactions.c.created_at.desc(), recurring_transactions.c.id.desc())
        ).mappings().all()
    return [recurring_response(row) for row in rows]


@app.post("/recurring-transactions", response_model=RecurringResponse)
def create_recurring_transaction(
    payload: RecurringPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> RecurringResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = RecurringPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        resolve_category_for(conn, user_id, payload.category_id, payload.type)
        row = conn.execute(
            insert(recurring_transactions)
            .values(
                user_id=user_id,
                type=payload.type,
                category_id=payload.category_id,
                amount=payload.amount,
                description=payload.description,
                frequency=payload.frequency,
                start_date=payload.start_date,
                end_date=payload.end_date,
                active=True if payload.active is None else payload.active,
            )
            .returning(*recurring_transactions.c)
        ).mappings().first()
        if not row:
            raise HTTPException(status_code=500, detail="Failed to create recurring transaction.")
        # The series starts with a real entry on its start date.
        conn.execute(
            insert(transactions).values(
                user_id=user_id,
                type=payload.type,
                category_id=payload.category_id,
                amount=payload.amount,
                description=payload.description,
                date=payload.start_date,
                recurring_id=row["id"],
            )
        )
    return recurring_response(row)


@app.put("/recurring-transactions/{recurring_id}", response_model=RecurringResponse)
def update_recurring_transaction(
    recurring_id: int,
    payload: RecurringPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> RecurringResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = RecurringPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        existing = conn.execute(
            select(recurring_transactions).where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
        ).mappings().first()
        if not existing:
            raise HTTPException(status_code=404, detail="Recurring transaction not found.")
        resolve_category_for(conn, user_id, payload.category_id, payload.type)

        last_generated = existing["last_generated"]
        if (
            existing["start_date"] != payload.start_date
            or existing["frequency"] != payload.frequency
        ):
            # The old marker is not on the new series.
            last_generated = None
        # Omitting active keeps a retired series retired.
        active = existing["active"] if payload.active is None else payload.active

        row = conn.execute(
            update(recurring_transactions)
            .where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
            .values(
                type=payload.type,
                category_id=payload.category_id,
                amount=payload.amount,
                description=payload.description,
                frequency=payload.frequency,
                start_date=payload.start_date,
                end_date=payload.end_date,
                last_generated=last_generated,
                active=active,
            )
            .returning(*recurring_transactions.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")
    return recurring_response(row)


@app.post(
    "/recurring-transactions/{recurring_id}/deactivate",
    response_model=RecurringResponse,
)
def deactivate_recurring_transaction(
    recurring_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> RecurringResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        row = conn.execute(
            update(recurring_transactions)
            .where(
                recurring_transactions.c.id == recurring_id,
                recurring_transactions.c.user_id == user_id,
            )
            .values(active=False)
            .returning(*recurring_transactions.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found.")
    return recurring_response(row)


@app.post("/recurring-transactions/sweep", response_model=SweepResponse)
def sweep_recurring_transactions(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SweepResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        preferences = load_preferences(conn, user_id)
    today = today_for(preferences)
    try:
        result = sweep_user(ledger, user_id, today, timezone=preferences.timezone)
    except PersistenceError as exc:
        logger.error("Recurring sweep for user %s failed: %s", user_id, exc)
        raise HTTPException(status_code=503, detail="Recurring transactions unavailable.") from exc
    return SweepResponse(
        created_count=len(result.created),
        skipped_count=result.skipped_count,
        created=[
            SweepEntry(
                recurring_id=record.recurring_id,
                type=record.kind,
                category_id=record.category_id,
                amount=record.amount,
                description=record.description,
                date=record.date,
            )
            for record in result.created
        ],
    )


@app.get("/recurring-transactions/upcoming", response_model=list[UpcomingResponse])
def upcoming_recurring_transactions(
    count: int = Query(5, ge=1, le=MAX_UPCOMING),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[UpcomingResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        preferences = load_preferences(conn, user_id)
        rows = conn.execute(
            select(recurring_transactions)
            .where(
                recurring_transactions.c.user_id == user_id,
                recurring_transactions.c.active.is_(True),
            )
            .order_by(recurring_transactions.c.id.asc())
        ).mappings().all()
    today = today_for(preferences)

    upcoming: list[UpcomingResponse] = []
    for row in rows:
        definition = definition_from_row(row)
        dates = upcoming_occurrences(definition, today, count=count, timezone=preferences.timezone)
        if not dates:
            continue
        upcoming.append(
            UpcomingResponse(
                id=definition.id,
                transactions=[
                    UpcomingEntry(
                        date=value,
                        amount=definition.amount,
                        description=definition.description,
                    )
                    for value in dates
                ],
            )
        )
    return upcoming


@app.get("/budgets", response_model=list[BudgetResponse])
def list_budgets(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[BudgetResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = conn.execute(
            select(budgets, categories.c.name.label("category_name"))
            .select_from(budgets.outerjoin(categories, budgets.c.category_id == categories.c.id))
            .where(budgets.c.user_id == user_id)
            .order_by(budgets.c.id.asc())
        ).mappings().all()
    return [
        BudgetResponse(
            id=row["id"],
            user_id=row["user_id"],
            category_id=row["category_id"],
            category_name=row["category_name"],
            amount=row["amount"],
            period=row["period"],
            created_at=row["created_at"],
        )
        for row in rows
    ]


@app.post("/budgets", response_model=BudgetResponse)
def create_budget(
    payload: BudgetPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> BudgetResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = BudgetPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        with engine.begin() as conn:
            category_name = conn.execute(
                select(categories.c.name).where(
                    categories.c.id == payload.category_id, visible_to(user_id)
                )
            ).scalar_one_or_none()
            if category_name is None:
                raise HTTPException(status_code=404, detail="Category not found.")
            row = conn.execute(
                insert(budgets)
                .values(
                    user_id=user_id,
                    category_id=payload.category_id,
                    amount=payload.amount,
                    period=payload.period,
                )
                .returning(*budgets.c)
            ).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Budget already exists for this category.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create budget.")
    return BudgetResponse(
        id=row["id"],
        user_id=row["user_id"],
        category_id=row["category_id"],
        category_name=category_name,
        amount=row["amount"],
        period=row["period"],
        created_at=row["created_at"],
    )


@app.delete("/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    stmt = budgets.delete().where(budgets.c.id == budget_id, budgets.c.user_id == user_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Budget not found.")
    return {"status": "deleted"}


@app.get("/budgets/spending", response_model=list[CategorySpendingResponse])
def budget_spending(
    period: str = "monthly",
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[CategorySpendingResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        preferences = load_preferences(conn, user_id)
        try:
            start_date, end_date = get_period_range(period, today_for(preferences))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        normalized_period = validate_period(period)

        budget_rows = conn.execute(
            select(budgets).where(
                budgets.c.user_id == user_id,
                budgets.c.period == normalized_period,
            )
        ).mappings().all()
        transaction_rows = conn.execute(
            select(
                transactions.c.amount,
                transactions.c.type,
                transactions.c.date,
                transactions.c.category_id,
            ).where(
                transactions.c.user_id == user_id,
                transactions.c.type == "expense",
                transactions.c.date >= start_date,
                transactions.c.date <= end_date,
            )
        ).mappings().all()
        category_names = {
            row["id"]: row["name"]
            for row in conn.execute(
                select(categories.c.id, categories.c.name).where(visible_to(user_id))
            ).mappings()
        }

    lines = summarize_category_spending(
        [
            Transaction(
                amount=row["amount"],
                type=row["type"],
                date=row["date"],
                category_id=row["category_id"],
            )
            for row in transaction_rows
        ],
        [
            Budget(
                category_id=row["category_id"],
                amount=row["amount"],
                period=row["period"],
            )
            for row in budget_rows
        ],
        category_names=category_names,
    )
    return [
        CategorySpendingResponse(
            category_id=line.category_id,
            category_name=line.category_name,
            spent=line.spent,
            budget=line.budget,
            percentage=line.percentage.quantize(CENT, rounding=ROUND_HALF_UP),
            status=line.status,
        )
        for line in lines
    ]
