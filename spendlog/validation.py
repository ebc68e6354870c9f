"""
Input validation for Spendlog.

Validates and coerces raw request values before anything is written.
"""

import re
from datetime import MAXYEAR, MINYEAR, date, datetime, UTC
from typing import Any, Optional

from spendlog.models import CATEGORIES


class SpendlogError(Exception):
    """Base class for all errors raised by Spendlog."""
    pass


class ValidationError(SpendlogError, ValueError):
    """Raised when input validation fails."""
    pass


TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def is_missing(value: Any) -> bool:
    """Treat None and blank strings as absent."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def require_fields(**fields: Any) -> None:
    """
    Check that every named value is present.

    Raises:
        ValidationError: Listing all missing names, in the given order.
    """
    missing = [name for name, value in fields.items() if is_missing(value)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def to_number(value: Any, name: str) -> float:
    """
    Coerce a JSON or query value to a number.

    Numeric strings are accepted; booleans are not.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {type(value).__name__}")

    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{name} must be a number, got '{value}'") from None
    else:
        raise ValidationError(f"{name} must be a number, got {type(value).__name__}")

    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"{name} must be a finite number")
    return number


def to_int(value: Any, name: str) -> int:
    """Coerce to an integral number."""
    number = to_number(value, name)
    if int(number) != number:
        raise ValidationError(f"{name} must be an integer, got {value}")
    return int(number)


def validate_description(description: Any) -> str:
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("description must be a non-empty string")
    return description


def validate_category(category: Any) -> str:
    """
    Validate a cost category.

    Raises:
        ValidationError: If category is not one of the fixed categories
    """
    if category not in CATEGORIES:
        raise ValidationError(
            f"Invalid category '{category}'. "
            f"Valid categories: {', '.join(CATEGORIES)}"
        )
    return category


def validate_amount(amount: Any) -> float:
    """
    Validate a cost amount.

    Returns the amount unchanged when it is already numeric, so integral
    sums stay integers in responses.
    """
    number = to_number(amount, "sum")
    if number <= 0:
        raise ValidationError(f"sum must be positive, got {amount}")
    if isinstance(amount, (int, float)):
        return amount
    return int(number) if number.is_integer() else number


def validate_time(value: Optional[str]) -> Optional[str]:
    """Validate a 24-hour "hh:mm" time string. None passes through."""
    if is_missing(value):
        return None
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError(f"Invalid time '{value}'. Expected 24-hour format hh:mm")
    return value


def validate_year(year: Any) -> int:
    year = to_int(year, "year")
    if not MINYEAR <= year <= MAXYEAR:
        raise ValidationError(f"year must be between {MINYEAR} and {MAXYEAR}, got {year}")
    return year


def validate_month(month: Any) -> int:
    month = to_int(month, "month")
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be between 1 and 12, got {month}")
    return month


def parse_birthday(value: Any) -> str:
    """Normalize a birthday to ISO YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        raise ValidationError(f"Invalid birthday '{value}'. Expected ISO date YYYY-MM-DD") from None


def resolve_entry_date(
    now: datetime,
    year: Any = None,
    month: Any = None,
    day: Any = None,
    time: Any = None,
    created_at: Any = None,
) -> tuple[int, int, int, Optional[str], datetime]:
    """
    Resolve the calendar fields of a cost entry.

    Precedence:
    1. ``created_at`` (ISO-8601 timestamp) wins when given.
    2. Explicit year, month and day, all three present. ``time`` is kept
       if given; without it the stored timestamp is 12:00 and time is None.
    3. Otherwise every field comes from ``now``. Partial explicit values
       are discarded, never mixed with the clock.

    A supplied ``time`` is always format-checked, even when it ends up
    discarded.

    Returns:
        (year, month, day, time, timestamp)
    """
    time = validate_time(time)

    if not is_missing(created_at):
        try:
            stamp = datetime.fromisoformat(str(created_at).replace("Z", "+00:00"))
            if stamp.tzinfo is not None:
                stamp = stamp.astimezone(UTC)
        except (ValueError, OverflowError):
            raise ValidationError(f"Invalid created_at '{created_at}'. Expected ISO-8601 timestamp") from None
        stamp = stamp.replace(second=0, microsecond=0, tzinfo=None)
        return stamp.year, stamp.month, stamp.day, stamp.strftime("%H:%M"), stamp

    if not any(is_missing(v) for v in (year, month, day)):
        y = to_int(year, "year")
        m = to_int(month, "month")
        d = to_int(day, "day")
        hour, minute = (12, 0) if time is None else map(int, time.split(":"))
        try:
            stamp = datetime(y, m, d, hour, minute)
        except ValueError as exc:
            raise ValidationError(f"Invalid date {y}-{m}-{d}: {exc}") from None
        return y, m, d, time, stamp

    stamp = now.replace(second=0, microsecond=0, tzinfo=None)
    return stamp.year, stamp.month, stamp.day, stamp.strftime("%H:%M"), stamp
