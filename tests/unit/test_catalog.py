"""Unit tests for the catalog alias tables."""

from query_router.core.catalog import (
    CATEGORY_PATTERN,
    STATUS_PATTERN,
    Category,
    canonical_department,
    describe_fields,
)


def test_longest_alias_wins():
    assert STATUS_PATTERN.search("items in progress").group(0) == "in progress"
    assert CATEGORY_PATTERN.search("the office building lobby").group(0) == "office building"


def test_aliases_respect_word_boundaries():
    assert CATEGORY_PATTERN.search("household items") is None
    assert STATUS_PATTERN.search("reopened") is None


def test_canonical_department():
    assert canonical_department("finance") == "Finance"
    assert canonical_department("r&d") == "R&D"
    assert canonical_department("Space Programme") == "Space Programme"


def test_describe_fields_lists_allowed_values():
    text = describe_fields()

    assert text.splitlines()[0].startswith("- year (integer)")
    assert "Mixed-Use Development" in text
    assert str(Category.HOTEL) in text
    assert "date_end" in text
