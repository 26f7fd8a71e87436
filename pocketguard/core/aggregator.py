# pocketguard/core/aggregator.py
"""Category totals and percentages over a fetched list of transactions.

Everything here is pure: the functions only read their arguments and build
new values, so they can be called from any thread with any snapshot. Input
that is not a sequence of transaction-shaped records degrades to an empty
result instead of raising.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Tuple

from pocketguard.core.models import CategoryTotal, Transaction


def record_field(item: Any, name: str) -> Any:
    if isinstance(item, Transaction):
        return getattr(item, name)
    if isinstance(item, Mapping):
        return item.get(name)
    return None


def _clean_amount(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    amount = float(value)
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


def iter_entries(transactions: Any) -> Iterator[Tuple[Any, str, float]]:
    """Yield ``(record, category, amount)`` for every usable record.

    Records are either :class:`Transaction` instances or mappings with
    ``category`` and ``amount`` keys. Anything else, including a payload that
    is not a sequence at all, is skipped.
    """
    if transactions is None or isinstance(transactions, (str, bytes, Mapping)):
        return
    try:
        items = iter(transactions)
    except TypeError:
        return
    for item in items:
        category = record_field(item, "category")
        amount = _clean_amount(record_field(item, "amount"))
        if not isinstance(category, str) or amount is None:
            continue
        yield item, category, amount


def aggregate_by_category(transactions: Iterable[Any]) -> Dict[str, float]:
    """Sum amounts per category, keeping first-seen category order."""
    totals: Dict[str, float] = {}
    for _, category, amount in iter_entries(transactions):
        totals[category] = totals.get(category, 0.0) + amount
    return totals


def total_spent(transactions: Iterable[Any]) -> float:
    return sum(aggregate_by_category(transactions).values())


def percentage_of(amount: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return amount / total * 100


def category_percentages(totals: Mapping[str, float]) -> Dict[str, float]:
    total = sum(totals.values())
    return {category: percentage_of(amount, total) for category, amount in totals.items()}


@dataclass(frozen=True)
class CategoryBreakdown:
    """Category totals with a set of categories hidden from the chart view.

    ``totals`` always lists every category. Hiding only affects the
    ``visible_*`` views, whose percentages use the visible total as the
    denominator.
    """

    totals: Dict[str, float] = field(default_factory=dict)
    hidden: FrozenSet[str] = frozenset()

    @classmethod
    def from_transactions(cls, transactions: Iterable[Any], hidden: Iterable[str] = ()) -> "CategoryBreakdown":
        return cls(totals=aggregate_by_category(transactions), hidden=frozenset(hidden))

    @property
    def total(self) -> float:
        return sum(self.totals.values())

    def percentages(self) -> Dict[str, float]:
        return category_percentages(self.totals)

    def is_visible(self, category: str) -> bool:
        return category not in self.hidden

    def visible_totals(self) -> Dict[str, float]:
        return {c: amount for c, amount in self.totals.items() if c not in self.hidden}

    @property
    def visible_total(self) -> float:
        return sum(self.visible_totals().values())

    def visible_percentages(self) -> Dict[str, float]:
        return category_percentages(self.visible_totals())

    def toggle(self, category: str) -> "CategoryBreakdown":
        return replace(self, hidden=self.hidden ^ {category})

    def hide(self, *categories: str) -> "CategoryBreakdown":
        return replace(self, hidden=self.hidden | set(categories))

    def show(self, *categories: str) -> "CategoryBreakdown":
        return replace(self, hidden=self.hidden - set(categories))

    def category_totals(self) -> List[CategoryTotal]:
        pct = self.percentages()
        return [CategoryTotal(c, amount, pct[c]) for c, amount in self.totals.items()]

    def visible_category_totals(self) -> List[CategoryTotal]:
        pct = self.visible_percentages()
        return [CategoryTotal(c, amount, pct[c]) for c, amount in self.visible_totals().items()]
