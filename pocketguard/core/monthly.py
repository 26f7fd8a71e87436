# pocketguard/core/monthly.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable

from pocketguard.core.aggregator import record_field, iter_entries

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def month_label(value: date) -> str:
    """Return a ``"Jan 2025"`` style label independent of the locale."""
    return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.year}"


def group_by_month(transactions: Iterable[Any]) -> Dict[str, float]:
    """Sum amounts per month-year label.

    Labels keep the order in which they are first seen in ``transactions``;
    they are not sorted by calendar month. Records without a readable date are
    skipped.
    """
    totals: Dict[str, float] = {}
    for item, _, amount in iter_entries(transactions):
        when = _as_date(record_field(item, "date"))
        if when is None:
            continue
        label = month_label(when)
        totals[label] = totals.get(label, 0.0) + amount
    return totals
