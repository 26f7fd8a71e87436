from __future__ import annotations

import math
from dataclasses import dataclass

from pocketguard import database
from pocketguard.core.models import BalanceState, BudgetState
from pocketguard.errors import ValidationError
from pocketguard.events import SETTINGS, ChangeEvent, ChangeNotifier


@dataclass(frozen=True)
class UserSettings:
    """Per-user budget limit and initial balance; 0 means not configured."""

    budget_limit: float = 0.0
    initial_balance: float = 0.0

    @property
    def budget(self) -> BudgetState:
        return BudgetState(limit=self.budget_limit)

    @property
    def balance(self) -> BalanceState:
        return BalanceState(initial=self.initial_balance)

    def as_dict(self) -> dict:
        return {"budget_limit": self.budget_limit, "initial_balance": self.initial_balance}


def _check(name: str, value) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None
    if not math.isfinite(number) or number < 0:
        raise ValidationError(f"{name} must be zero or greater")
    return number


class SettingsService:
    """Owns the per-user settings record.

    Each field is last-write-wins on its own; a partial update never resets
    the field it leaves out.
    """

    def __init__(self, db_path: str, notifier: ChangeNotifier | None = None) -> None:
        self.db_path = db_path
        self.notifier = notifier

    def get(self, user_id: int) -> UserSettings:
        budget_limit, initial_balance = database.load_user_settings(self.db_path, user_id)
        return UserSettings(budget_limit=budget_limit, initial_balance=initial_balance)

    def update(
        self,
        user_id: int,
        budget_limit: float | None = None,
        initial_balance: float | None = None,
    ) -> UserSettings:
        budget_limit = None if budget_limit is None else _check("budget_limit", budget_limit)
        initial_balance = None if initial_balance is None else _check("initial_balance", initial_balance)
        stored = database.update_user_settings(
            self.db_path, user_id, budget_limit=budget_limit, initial_balance=initial_balance
        )
        updated = UserSettings(budget_limit=stored[0], initial_balance=stored[1])
        if self.notifier is not None:
            self.notifier.publish(ChangeEvent(SETTINGS, user_id))
        return updated
