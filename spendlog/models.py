"""Shared data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Category(str, Enum):
    """Fixed cost categories."""
    FOOD = "food"
    HEALTH = "health"
    HOUSING = "housing"
    SPORT = "sport"
    EDUCATION = "education"


CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

# Collection names in the document store
USERS = "users"
COSTS = "costs"
MONTHLY_TOTALS = "monthly_totals"


@dataclass
class User:
    """A registered user."""
    id: int
    first_name: str
    last_name: str
    birthday: str  # ISO YYYY-MM-DD
    marital_status: str

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "birthday": self.birthday,
            "marital_status": self.marital_status,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> User:
        return cls(
            id=doc["id"],
            first_name=doc["first_name"],
            last_name=doc["last_name"],
            birthday=doc["birthday"],
            marital_status=doc["marital_status"],
        )


@dataclass
class CostEntry:
    """A single recorded expense."""
    description: str
    category: str
    userid: int
    sum: float
    year: int
    month: int
    day: int
    time: Optional[str] = None
    date: datetime = field(default_factory=datetime.now)
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_document(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "category": self.category,
            "userid": self.userid,
            "sum": self.sum,
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "time": self.time,
            "date": self.date.isoformat(timespec="seconds"),
            "entry_id": self.entry_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> CostEntry:
        return cls(
            description=doc["description"],
            category=doc["category"],
            userid=doc["userid"],
            sum=doc["sum"],
            year=doc["year"],
            month=doc["month"],
            day=doc["day"],
            time=doc.get("time"),
            date=datetime.fromisoformat(doc["date"]),
            entry_id=doc.get("entry_id") or uuid.uuid4().hex,
        )


@dataclass
class MonthlyTotals:
    """Running per-category totals for one user and month."""
    userid: int
    year: int
    month: int
    totals: dict[str, float] = field(default_factory=dict)

    def total_for(self, category: str) -> float:
        return self.totals.get(category, 0)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> MonthlyTotals:
        return cls(
            userid=doc["userid"],
            year=doc["year"],
            month=doc["month"],
            totals=dict(doc.get("totals") or {}),
        )


@dataclass
class MonthlyReport:
    """Per-category cost breakdown for one user and month."""
    userid: int
    year: int
    month: int
    costs: dict[str, list] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userid": self.userid,
            "year": self.year,
            "month": self.month,
            "costs": {category: list(items) for category, items in self.costs.items()},
        }


@dataclass
class UserTotal:
    """A user's all-time spend."""
    id: int
    first_name: str
    last_name: str
    total: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "id": self.id,
            "total": self.total,
        }
