# pocketguard/core/models.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


@dataclass(frozen=True)
class Transaction:
    id: str
    description: str
    amount: float
    category: str
    date: date


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    amount: float
    percentage: float


@dataclass(frozen=True)
class BudgetState:
    """A spending ceiling; a limit of 0 means no budget is configured."""

    limit: float = 0.0

    @property
    def configured(self) -> bool:
        return self.limit > 0


@dataclass(frozen=True)
class BalanceState:
    """The starting fund amount spending is subtracted from."""

    initial: float = 0.0


class Severity(str, Enum):
    NOMINAL = "nominal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Milestone:
    id: int
    user_id: int
    task: str
    reward: str
    completed: bool = False


@dataclass
class User:
    id: int
    name: str
    email: str
