from __future__ import annotations

from enum import Enum

CATEGORY_TYPES = {"income", "expense", "both"}

DEFAULT_CATEGORIES = [
    ("Salary", "income"),
    ("Freelance", "income"),
    ("Groceries", "expense"),
    ("Rent", "expense"),
    ("Dining", "expense"),
    ("Utilities", "expense"),
    ("Transport", "expense"),
    ("Subscriptions", "expense"),
    ("Other", "both"),
]


class CategoryCompatibility(Enum):
    COMPATIBLE = "compatible"
    REQUIRES_PROMOTION = "requires_promotion"
    INCOMPATIBLE = "incompatible"


def check_category_compatibility(
    category_type: str,
    kind: str,
    user_owned: bool = True,
    is_active: bool = True,
) -> CategoryCompatibility:
    """Decide whether a transaction of ``kind`` may use a category.

    A user's own category of the other type can be promoted to ``both``;
    shared categories are never changed on a user's behalf.
    """
    if not is_active:
        return CategoryCompatibility.INCOMPATIBLE
    normalized_type = validate_category_type(category_type)
    normalized_kind = kind.strip().lower()
    if normalized_type == "both" or normalized_type == normalized_kind:
        return CategoryCompatibility.COMPATIBLE
    if user_owned:
        return CategoryCompatibility.REQUIRES_PROMOTION
    return CategoryCompatibility.INCOMPATIBLE


def validate_category_type(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in CATEGORY_TYPES:
        raise ValueError("Category type must be income, expense, or both.")
    return normalized
