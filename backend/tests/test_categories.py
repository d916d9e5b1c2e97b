import unittest

from backend.categories import (
    CategoryCompatibility,
    check_category_compatibility,
    validate_category_type,
)


class CategoryCompatibilityTests(unittest.TestCase):
    def test_matching_and_shared_types_are_compatible(self) -> None:
        self.assertIs(
            check_category_compatibility("expense", "expense"),
            CategoryCompatibility.COMPATIBLE,
        )
        self.assertIs(
            check_category_compatibility("both", "income", user_owned=False),
            CategoryCompatibility.COMPATIBLE,
        )

    def test_own_mismatched_category_requires_promotion(self) -> None:
        self.assertIs(
            check_category_compatibility("Income", " expense "),
            CategoryCompatibility.REQUIRES_PROMOTION,
        )

    def test_shared_mismatched_category_is_incompatible(self) -> None:
        self.assertIs(
            check_category_compatibility("income", "expense", user_owned=False),
            CategoryCompatibility.INCOMPATIBLE,
        )

    def test_inactive_category_is_incompatible(self) -> None:
        self.assertIs(
            check_category_compatibility("expense", "expense", is_active=False),
            CategoryCompatibility.INCOMPATIBLE,
        )

    def test_unknown_category_type_raises(self) -> None:
        with self.assertRaises(ValueError):
            validate_category_type("savings")


if __name__ == "__main__":
    unittest.main()
