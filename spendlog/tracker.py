"""
Cost tracking for Spendlog.

Features:
- User registration and lookup
- Cost recording with date normalization
- Monthly reports by category (scan or precomputed)
- All-time totals per user
"""

import calendar
import logging
from collections import defaultdict
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Callable, Optional

from spendlog import validation
from spendlog.models import (
    CATEGORIES,
    COSTS,
    MONTHLY_TOTALS,
    USERS,
    CostEntry,
    MonthlyReport,
    MonthlyTotals,
    User,
    UserTotal,
)
from spendlog.storage import DocumentStore, DuplicateKeyError, InMemoryStore, StorageError
from spendlog.validation import SpendlogError


logger = logging.getLogger("spendlog.tracker")


class ReportStrategy(str, Enum):
    """How monthly reports are built."""
    SCAN = "scan"                # group raw cost entries
    PRECOMPUTED = "precomputed"  # read the running monthly totals


class NotFoundError(SpendlogError):
    """Raised when a referenced user does not exist."""
    pass


class ConflictError(SpendlogError):
    """Raised when a unique key is already taken."""
    pass


class CostTracker:
    """
    Records costs and builds reports on top of a document store.

    Every recorded cost also increments the running total for its
    user, month and category in a single atomic upsert, so the totals
    always equal the sum of the recorded entries.

    Example:
        ```python
        tracker = CostTracker()
        tracker.register_user(123123, "Ada", "Lovelace", "1990-01-01", "single")

        tracker.record_cost(
            description="Gym Membership",
            category="sport",
            userid=123123,
            sum=50,
            year=2025, month=2, day=1,
        )

        report = tracker.get_monthly_report(123123, 2025, 2)
        report.costs["sport"]  # [{"sum": 50, "description": "Gym Membership", "day": 1}]
        ```
    """

    def __init__(
        self,
        storage: Optional[DocumentStore] = None,
        report_strategy: ReportStrategy | str = ReportStrategy.SCAN,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage if storage is not None else InMemoryStore()
        self.report_strategy = ReportStrategy(report_strategy)
        self._clock = clock or (lambda: datetime.now(UTC))

    # =========================================================================
    # Users
    # =========================================================================

    def register_user(
        self,
        id: Any,
        first_name: Any,
        last_name: Any,
        birthday: Any,
        marital_status: Any,
    ) -> User:
        """
        Register a new user.

        Raises:
            ValidationError: If a field is missing or malformed.
            ConflictError: If a user with this id already exists.
        """
        validation.require_fields(
            id=id,
            first_name=first_name,
            last_name=last_name,
            birthday=birthday,
            marital_status=marital_status,
        )
        user = User(
            id=validation.to_int(id, "id"),
            first_name=str(first_name),
            last_name=str(last_name),
            birthday=validation.parse_birthday(birthday),
            marital_status=str(marital_status),
        )

        if self.storage.find_one(USERS, {"id": user.id}) is not None:
            raise ConflictError("User already exists")
        try:
            self.storage.insert(USERS, user.to_document())
        except DuplicateKeyError:
            raise ConflictError("User already exists") from None

        logger.info(f"Registered user {user.id}")
        return user

    def get_user(self, userid: Any) -> User:
        """Look up a user. Raises NotFoundError("User not found")."""
        try:
            key = validation.to_int(userid, "id")
        except validation.ValidationError:
            raise NotFoundError("User not found") from None
        doc = self.storage.find_one(USERS, {"id": key})
        if doc is None:
            raise NotFoundError("User not found")
        return User.from_document(doc)

    def _require_user(self, userid: int) -> User:
        doc = self.storage.find_one(USERS, {"id": userid})
        if doc is None:
            raise NotFoundError(f"User with ID {userid} not found")
        return User.from_document(doc)

    # =========================================================================
    # Cost Recording
    # =========================================================================

    def record_cost(
        self,
        description: Any,
        category: Any,
        userid: Any,
        sum: Any,
        year: Any = None,
        month: Any = None,
        day: Any = None,
        time: Any = None,
        created_at: Any = None,
    ) -> CostEntry:
        """
        Record a single cost entry.

        Args:
            description: Short description of the cost.
            category: One of food, health, housing, sport, education.
            userid: Id of an existing user.
            sum: Positive amount.
            year, month, day: Explicit date. Used only when all three
                are given; otherwise the current date and time apply.
            time: Optional "hh:mm" (24-hour).
            created_at: Optional ISO-8601 timestamp, overrides the rest.

        Returns:
            The persisted CostEntry.

        Raises:
            ValidationError: On missing or malformed input.
            NotFoundError: If the user does not exist.
            StorageError: If either write fails. A failed totals update
                removes the just-inserted entry before re-raising.
        """
        validation.require_fields(
            description=description,
            category=category,
            userid=userid,
            sum=sum,
        )
        description = validation.validate_description(description)
        category = validation.validate_category(category)
        userid = validation.to_int(userid, "userid")
        amount = validation.validate_amount(sum)
        y, m, d, t, stamp = validation.resolve_entry_date(
            self._clock(), year, month, day, time, created_at
        )

        self._require_user(userid)

        entry = CostEntry(
            description=description,
            category=category,
            userid=userid,
            sum=amount,
            year=y,
            month=m,
            day=d,
            time=t,
            date=stamp,
        )
        self.storage.insert(COSTS, entry.to_document())
        try:
            totals = self.storage.upsert(
                MONTHLY_TOTALS,
                {"userid": userid, "year": y, "month": m},
                {"$inc": {f"totals.{category}": amount}},
            )
        except StorageError as exc:
            # Entries and monthly totals must agree, so undo the insert
            logger.error(f"Monthly totals update failed for user {userid}, removing entry {entry.entry_id}: {exc}")
            self.storage.delete_one(COSTS, {"entry_id": entry.entry_id})
            raise

        logger.info(
            f"Recorded {category} cost {amount} for user {userid} on {stamp.date().isoformat()} "
            f"(month total {MonthlyTotals.from_document(totals).total_for(category)})"
        )
        return entry

    # =========================================================================
    # Reports
    # =========================================================================

    def get_monthly_report(self, userid: Any, year: Any, month: Any) -> MonthlyReport:
        """
        Build the per-category report for one user and month.

        With the scan strategy each category maps to its line items
        ``{"sum", "description", "day"}`` in date order, or ``[]``.
        With the precomputed strategy each category maps to a single
        ``{"sum": total, "description": "Total for <category>", "day": None}``,
        or ``[0]`` when nothing was spent.

        Raises:
            ValidationError: If a parameter is missing, not numeric or out of range.
            NotFoundError: If the user does not exist.
        """
        validation.require_fields(userid=userid, year=year, month=month)
        userid = validation.to_int(userid, "userid")
        year = validation.validate_year(year)
        month = validation.validate_month(month)

        self._require_user(userid)

        if self.report_strategy == ReportStrategy.PRECOMPUTED:
            costs = self._costs_from_totals(userid, year, month)
        else:
            costs = self._costs_from_entries(userid, year, month)

        return MonthlyReport(userid=userid, year=year, month=month, costs=costs)

    def _costs_from_entries(self, userid: int, year: int, month: int) -> dict[str, list]:
        last_day = calendar.monthrange(year, month)[1]
        start = datetime(year, month, 1)
        end = datetime(year, month, last_day, 23, 59, 59)

        docs = self.storage.find(
            COSTS,
            {
                "userid": userid,
                "date": {
                    "$gte": start.isoformat(timespec="seconds"),
                    "$lte": end.isoformat(timespec="seconds"),
                },
            },
        )
        entries = sorted((CostEntry.from_document(d) for d in docs), key=lambda e: e.date)

        grouped: dict[str, list] = defaultdict(list)
        for entry in entries:
            grouped[entry.category].append({
                "sum": entry.sum,
                "description": entry.description,
                "day": entry.date.day,
            })

        return {category: grouped.get(category, []) for category in CATEGORIES}

    def _costs_from_totals(self, userid: int, year: int, month: int) -> dict[str, list]:
        doc = self.storage.find_one(MONTHLY_TOTALS, {"userid": userid, "year": year, "month": month})
        totals = MonthlyTotals.from_document(doc) if doc else MonthlyTotals(userid, year, month)

        costs: dict[str, list] = {}
        for category in CATEGORIES:
            total = totals.total_for(category)
            # Amounts are strictly positive, so a non-positive total means no entries
            if total > 0:
                costs[category] = [{
                    "sum": total,
                    "description": f"Total for {category}",
                    "day": None,
                }]
            else:
                costs[category] = [0]
        return costs

    # =========================================================================
    # Totals
    # =========================================================================

    def get_user_total(self, userid: Any) -> UserTotal:
        """
        Sum every cost recorded for a user.

        Returns 0 for a user with no costs.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = self.get_user(userid)
        total = self.storage.sum_field(COSTS, {"userid": user.id}, "sum") or 0
        return UserTotal(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            total=total,
        )
