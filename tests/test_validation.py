"""Tests for input validation and date resolution."""

import pytest
from datetime import datetime, UTC

from spendlog.validation import (
    ValidationError,
    require_fields,
    to_int,
    to_number,
    validate_amount,
    validate_category,
    validate_description,
    validate_month,
    validate_year,
    validate_time,
    parse_birthday,
    resolve_entry_date,
)


NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=UTC)


class TestRequiredFields:
    """Test presence checks."""

    def test_all_present(self):
        """No error when every field has a value."""
        require_fields(description="Lunch", category="food", userid=1, sum=5)

    def test_missing_fields_are_listed(self):
        """Missing and blank fields are named in order."""
        with pytest.raises(ValidationError) as exc_info:
            require_fields(description="  ", category="food", userid=None, sum=5)

        assert "description" in str(exc_info.value)
        assert "userid" in str(exc_info.value)
        assert "category" not in str(exc_info.value)

    def test_zero_counts_as_present(self):
        """A zero value is present; positivity is checked elsewhere."""
        require_fields(sum=0)


class TestNumbers:
    """Test numeric coercion."""

    def test_numeric_strings_are_coerced(self):
        assert to_number("42.5", "sum") == 42.5
        assert to_int("123123", "userid") == 123123

    def test_integral_float_is_an_int(self):
        assert to_int(7.0, "day") == 7

    def test_non_numeric_rejected(self):
        with pytest.raises(ValidationError):
            to_number("abc", "sum")

    def test_boolean_rejected(self):
        """Booleans are not numbers here."""
        with pytest.raises(ValidationError):
            to_number(True, "sum")

    def test_fractional_id_rejected(self):
        with pytest.raises(ValidationError):
            to_int(12.5, "userid")

    def test_nan_rejected(self):
        with pytest.raises(ValidationError):
            to_number("nan", "sum")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            validate_amount(0)
        with pytest.raises(ValidationError):
            validate_amount(-3)

    def test_amount_keeps_type(self):
        """Integral amounts stay integers."""
        assert validate_amount(50) == 50
        assert isinstance(validate_amount(50), int)
        assert validate_amount("50") == 50
        assert validate_amount("12.75") == 12.75


class TestCategoryAndDescription:
    """Test category and description rules."""

    @pytest.mark.parametrize("category", ["food", "health", "housing", "sport", "education"])
    def test_valid_categories(self, category):
        assert validate_category(category) == category

    def test_invalid_category_lists_valid_set(self):
        """The error message names every valid category."""
        with pytest.raises(ValidationError) as exc_info:
            validate_category("travel")

        message = str(exc_info.value)
        assert "travel" in message
        for category in ["food", "health", "housing", "sport", "education"]:
            assert category in message

    def test_category_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            validate_category("Food")

    def test_description_must_be_text(self):
        with pytest.raises(ValidationError):
            validate_description("")
        with pytest.raises(ValidationError):
            validate_description(12)


class TestTimeAndMonth:
    """Test time-of-day and month checks."""

    @pytest.mark.parametrize("value", ["00:00", "09:05", "23:59", "12:30"])
    def test_valid_times(self, value):
        assert validate_time(value) == value

    @pytest.mark.parametrize("value", ["24:00", "9:05", "12:60", "12-30", "noon", "12:3"])
    def test_invalid_times(self, value):
        with pytest.raises(ValidationError):
            validate_time(value)

    def test_missing_time_is_none(self):
        assert validate_time(None) is None
        assert validate_time("") is None

    def test_month_range(self):
        assert validate_month("12") == 12
        with pytest.raises(ValidationError):
            validate_month(13)
        with pytest.raises(ValidationError):
            validate_month(0)

    def test_year_range(self):
        assert validate_year("2025") == 2025
        assert validate_year(1) == 1
        assert validate_year(9999) == 9999
        for year in (0, 10000, -5):
            with pytest.raises(ValidationError) as exc_info:
                validate_year(year)
            assert str(exc_info.value) == f"year must be between 1 and 9999, got {year}"


class TestBirthday:
    """Test birthday normalization."""

    def test_iso_date(self):
        assert parse_birthday("1990-01-15") == "1990-01-15"

    def test_iso_timestamp_is_truncated(self):
        assert parse_birthday("1990-01-15T00:00:00Z") == "1990-01-15"

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            parse_birthday("last tuesday")


class TestResolveEntryDate:
    """Test the date resolution policy for cost entries."""

    def test_explicit_date_without_time(self):
        """Explicit year/month/day are used and stored at noon."""
        y, m, d, t, stamp = resolve_entry_date(NOW, 2025, 2, 1)

        assert (y, m, d) == (2025, 2, 1)
        assert t is None
        assert stamp == datetime(2025, 2, 1, 12, 0)

    def test_explicit_date_with_time(self):
        y, m, d, t, stamp = resolve_entry_date(NOW, 2025, 2, 1, "18:45")

        assert (y, m, d, t) == (2025, 2, 1, "18:45")
        assert stamp == datetime(2025, 2, 1, 18, 45)

    def test_all_omitted_uses_clock(self):
        """No date fields at all: everything comes from the clock."""
        y, m, d, t, stamp = resolve_entry_date(NOW)

        assert (y, m, d, t) == (2026, 3, 14, "09:26")
        assert stamp == datetime(2026, 3, 14, 9, 26)

    def test_partial_date_falls_back_entirely(self):
        """Partial explicit values are never mixed with the clock."""
        y, m, d, t, _ = resolve_entry_date(NOW, year=2020, month=5)

        assert (y, m, d, t) == (2026, 3, 14, "09:26")

    def test_time_alone_falls_back_entirely(self):
        """A time without a date is discarded along with the rest."""
        y, m, d, t, _ = resolve_entry_date(NOW, time="07:00")

        assert (y, m, d, t) == (2026, 3, 14, "09:26")

    def test_bad_time_rejected_even_when_discarded(self):
        with pytest.raises(ValidationError):
            resolve_entry_date(NOW, time="25:00")

    def test_invalid_calendar_date(self):
        with pytest.raises(ValidationError):
            resolve_entry_date(NOW, 2025, 2, 30)
        with pytest.raises(ValidationError):
            resolve_entry_date(NOW, 2025, 13, 1)

    def test_string_date_parts_are_coerced(self):
        y, m, d, _, _ = resolve_entry_date(NOW, "2025", "2", "1")
        assert (y, m, d) == (2025, 2, 1)

    def test_created_at_takes_precedence(self):
        """created_at wins over explicit fields."""
        y, m, d, t, stamp = resolve_entry_date(
            NOW, 2020, 1, 1, created_at="2025-07-04T16:20:00Z"
        )

        assert (y, m, d, t) == (2025, 7, 4, "16:20")
        assert stamp == datetime(2025, 7, 4, 16, 20)

    def test_created_at_with_offset_is_converted_to_utc(self):
        y, m, d, t, _ = resolve_entry_date(NOW, created_at="2025-07-04T01:30:00+03:00")
        assert (y, m, d, t) == (2025, 7, 3, "22:30")

    def test_bad_created_at_rejected(self):
        with pytest.raises(ValidationError):
            resolve_entry_date(NOW, created_at="yesterday")
