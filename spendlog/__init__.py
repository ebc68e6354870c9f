"""
Spendlog - Personal cost tracking with monthly reports.

Simple usage:
    from spendlog import CostTracker

    tracker = CostTracker()
    tracker.register_user(123123, "Ada", "Lovelace", "1990-01-01", "single")
    tracker.record_cost("Groceries", "food", 123123, 42.5)

    report = tracker.get_monthly_report(123123, 2025, 2)
    print(report.costs["food"])

    print(tracker.get_user_total(123123).total)

Persistent storage:
    from spendlog import CostTracker, SQLiteStore

    tracker = CostTracker(storage=SQLiteStore("spendlog.db"))

Precomputed reports (one line per category, read from running totals):
    tracker = CostTracker(report_strategy="precomputed")
"""

from spendlog.config import Settings, get_settings, get_team, configure_logging
from spendlog.models import (
    CATEGORIES,
    Category,
    CostEntry,
    MonthlyReport,
    MonthlyTotals,
    User,
    UserTotal,
)
from spendlog.storage import (
    DocumentStore,
    InMemoryStore,
    SQLiteStore,
    MongoStore,
    StorageError,
    DuplicateKeyError,
    create_storage,
)
from spendlog.tracker import CostTracker, ReportStrategy, NotFoundError, ConflictError
from spendlog.validation import SpendlogError, ValidationError


__version__ = "1.0.0"
__all__ = [
    # Tracker
    "CostTracker",
    "ReportStrategy",
    # Models
    "CATEGORIES",
    "Category",
    "CostEntry",
    "MonthlyReport",
    "MonthlyTotals",
    "User",
    "UserTotal",
    # Storage
    "DocumentStore",
    "InMemoryStore",
    "SQLiteStore",
    "MongoStore",
    "create_storage",
    # Errors
    "SpendlogError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "DuplicateKeyError",
    # Config
    "Settings",
    "get_settings",
    "get_team",
    "configure_logging",
]
