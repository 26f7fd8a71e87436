# pocketguard/core/progress.py
"""Budget progress and balance projection."""
from __future__ import annotations

import math
from dataclasses import dataclass

from pocketguard.core.models import BalanceState, BudgetState, Severity

BUDGET_WARNING_PERCENT = 70.0
BUDGET_CRITICAL_PERCENT = 90.0

BALANCE_CRITICAL_RATIO = 0.3
BALANCE_WARNING_RATIO = 0.6

# share of the initial balance already spent; strictly above these levels
SPENDING_WARNING_PERCENT = 40.0
SPENDING_CRITICAL_PERCENT = 70.0

SAVINGS_SUGGESTION_RATE = 0.2


def _non_negative(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    value = float(value)
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def budget_percentage(total_spent: float, budget_limit: float) -> float:
    """Percentage of the budget used; 0 when no budget is configured."""
    total_spent = _non_negative(total_spent)
    budget_limit = _non_negative(budget_limit)
    if budget_limit <= 0:
        return 0.0
    return total_spent / budget_limit * 100


def budget_severity(percentage: float) -> Severity:
    if percentage >= BUDGET_CRITICAL_PERCENT:
        return Severity.CRITICAL
    if percentage >= BUDGET_WARNING_PERCENT:
        return Severity.WARNING
    return Severity.NOMINAL


def project_balance(initial_balance: float, total_spent: float) -> float:
    return max(0.0, _non_negative(initial_balance) - _non_negative(total_spent))


def balance_ratio(current_balance: float, initial_balance: float) -> float:
    initial_balance = _non_negative(initial_balance)
    if initial_balance <= 0:
        return 0.0
    return _non_negative(current_balance) / initial_balance


def balance_severity(ratio: float) -> Severity:
    if ratio < BALANCE_CRITICAL_RATIO:
        return Severity.CRITICAL
    if ratio < BALANCE_WARNING_RATIO:
        return Severity.WARNING
    return Severity.NOMINAL


def spending_severity(percentage: float) -> Severity:
    if percentage > SPENDING_CRITICAL_PERCENT:
        return Severity.CRITICAL
    if percentage > SPENDING_WARNING_PERCENT:
        return Severity.WARNING
    return Severity.NOMINAL


def suggested_savings(current_balance: float) -> float:
    """Amount worth setting aside: a fixed share of what is left."""
    return _non_negative(current_balance) * SAVINGS_SUGGESTION_RATE


@dataclass(frozen=True)
class BudgetProgress:
    limit: float
    total_spent: float
    percentage: float
    severity: Severity

    @property
    def configured(self) -> bool:
        return self.limit > 0

    def as_dict(self) -> dict:
        return {
            "limit": self.limit,
            "total_spent": self.total_spent,
            "percentage": self.percentage,
            "severity": self.severity.value,
            "configured": self.configured,
        }


@dataclass(frozen=True)
class BalanceProjection:
    initial: float
    total_spent: float
    current: float
    ratio: float
    spending_percentage: float
    severity: Severity
    spending_severity: Severity
    suggested_savings: float

    def as_dict(self) -> dict:
        return {
            "initial": self.initial,
            "total_spent": self.total_spent,
            "current": self.current,
            "ratio": self.ratio,
            "spending_percentage": self.spending_percentage,
            "severity": self.severity.value,
            "spending_severity": self.spending_severity.value,
            "suggested_savings": self.suggested_savings,
        }


def evaluate_budget(total_spent: float, budget: BudgetState) -> BudgetProgress:
    percentage = budget_percentage(total_spent, budget.limit)
    return BudgetProgress(
        limit=_non_negative(budget.limit),
        total_spent=_non_negative(total_spent),
        percentage=percentage,
        severity=budget_severity(percentage),
    )


def evaluate_balance(total_spent: float, balance: BalanceState) -> BalanceProjection:
    """Project the remaining balance after spending.

    With no initial balance there is nothing to run out of, so the ratio is 0
    and the severity stays nominal.
    """
    initial = _non_negative(balance.initial)
    spent = _non_negative(total_spent)
    current = project_balance(initial, spent)
    ratio = balance_ratio(current, initial)
    severity = balance_severity(ratio) if initial > 0 else Severity.NOMINAL
    spent_pct = percentage_spent(spent, initial)
    return BalanceProjection(
        initial=initial,
        total_spent=spent,
        current=current,
        ratio=ratio,
        spending_percentage=spent_pct,
        severity=severity,
        spending_severity=spending_severity(spent_pct),
        suggested_savings=suggested_savings(current),
    )


def percentage_spent(total_spent: float, initial_balance: float) -> float:
    initial_balance = _non_negative(initial_balance)
    if initial_balance <= 0:
        return 0.0
    return _non_negative(total_spent) / initial_balance * 100
