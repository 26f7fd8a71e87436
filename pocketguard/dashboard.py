"""Dashboard payloads built from a user's expenses and settings.

``build_dashboard`` is a pure function over a snapshot. ``DashboardStore``
keeps the latest fetched snapshot per user and re-fetches it whenever the
change notifier reports that the user's expenses or settings were written.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from pocketguard import database
from pocketguard.core.aggregator import CategoryBreakdown, iter_entries
from pocketguard.core.models import Transaction
from pocketguard.core.monthly import group_by_month
from pocketguard.core.progress import evaluate_balance, evaluate_budget
from pocketguard.events import EXPENSES, SETTINGS, ChangeEvent, ChangeNotifier
from pocketguard.settings import SettingsService, UserSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_USERS = 256


def _category_rows(totals: Dict[str, float], percentages: Dict[str, float], hidden=frozenset()) -> List[dict]:
    return [
        {
            "category": category,
            "amount": amount,
            "percentage": percentages[category],
            "hidden": category in hidden,
        }
        for category, amount in totals.items()
    ]


def build_dashboard(
    transactions: Iterable[Any],
    settings: UserSettings,
    hidden: Iterable[str] = (),
) -> Dict[str, object]:
    entries = list(iter_entries(transactions))
    records = [record for record, _, _ in entries]
    breakdown = CategoryBreakdown.from_transactions(records, hidden=hidden)
    spent = breakdown.total
    return {
        "total_spent": spent,
        "transaction_count": len(records),
        "categories": _category_rows(breakdown.totals, breakdown.percentages(), breakdown.hidden),
        "chart": {
            "categories": _category_rows(breakdown.visible_totals(), breakdown.visible_percentages()),
            "visible_total": breakdown.visible_total,
        },
        "hidden": sorted(breakdown.hidden),
        "budget": evaluate_budget(spent, settings.budget).as_dict(),
        "balance": evaluate_balance(spent, settings.balance).as_dict(),
        "monthly": [
            {"label": label, "amount": amount}
            for label, amount in group_by_month(records).items()
        ],
    }


@dataclass(frozen=True)
class DashboardInputs:
    transactions: Tuple[Transaction, ...]
    settings: UserSettings


class DashboardStore:
    """Latest fetched dashboard inputs per user.

    Entries are loaded on first use and reloaded when an ``expenses`` or
    ``settings`` change is published for that user. At most ``max_users``
    entries are kept; the least recently used one is dropped first.

    Each user has a generation number that every change event bumps. A fetch
    only lands in the cache if no event for that user arrived while it ran;
    otherwise it is repeated.
    """

    def __init__(
        self,
        db_path: str,
        settings_service: SettingsService,
        notifier: ChangeNotifier,
        max_users: int = DEFAULT_MAX_USERS,
    ) -> None:
        if max_users < 1:
            raise ValueError("max_users must be at least 1")
        self.db_path = db_path
        self.settings_service = settings_service
        self.max_users = max_users
        self._lock = threading.Lock()
        self._inputs: "OrderedDict[int, DashboardInputs]" = OrderedDict()
        self._generations: Dict[int, int] = {}
        self._in_flight: Dict[int, int] = {}
        self._unsubscribe = notifier.subscribe(self._on_change)

    def _fetch(self, user_id: int) -> DashboardInputs:
        return DashboardInputs(
            transactions=tuple(database.list_expenses(self.db_path, user_id)),
            settings=self.settings_service.get(user_id),
        )

    def _on_change(self, event: ChangeEvent) -> None:
        if event.topic not in (EXPENSES, SETTINGS):
            return
        user_id = event.user_id
        with self._lock:
            if user_id not in self._inputs and user_id not in self._in_flight:
                return
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
            cached = user_id in self._inputs
        if cached:
            logger.debug("Refreshing dashboard inputs for user %s after %s change", user_id, event.topic)
            self.refresh(user_id)

    def _forget_if_idle(self, user_id: int) -> None:
        # caller holds the lock
        if user_id not in self._inputs and user_id not in self._in_flight:
            self._generations.pop(user_id, None)

    def _finish_fetch(self, user_id: int) -> None:
        # caller holds the lock
        remaining = self._in_flight[user_id] - 1
        if remaining:
            self._in_flight[user_id] = remaining
        else:
            del self._in_flight[user_id]

    def _remember(self, user_id: int, inputs: DashboardInputs) -> None:
        # caller holds the lock
        self._inputs[user_id] = inputs
        self._inputs.move_to_end(user_id)
        while len(self._inputs) > self.max_users:
            evicted, _ = self._inputs.popitem(last=False)
            self._forget_if_idle(evicted)

    def refresh(self, user_id: int) -> DashboardInputs:
        """Fetch ``user_id``'s inputs and cache them.

        If the fetch fails the cached entry is dropped so the next read goes
        back to the database.
        """
        while True:
            with self._lock:
                generation = self._generations.get(user_id, 0)
                self._in_flight[user_id] = self._in_flight.get(user_id, 0) + 1
            try:
                inputs = self._fetch(user_id)
            except Exception:
                with self._lock:
                    self._finish_fetch(user_id)
                    self._inputs.pop(user_id, None)
                    self._forget_if_idle(user_id)
                raise
            with self._lock:
                self._finish_fetch(user_id)
                if self._generations.get(user_id, 0) == generation:
                    self._remember(user_id, inputs)
                    return inputs
            logger.debug("Dashboard inputs for user %s changed during fetch; fetching again", user_id)

    def inputs(self, user_id: int) -> DashboardInputs:
        with self._lock:
            cached = self._inputs.get(user_id)
            if cached is not None:
                self._inputs.move_to_end(user_id)
        return cached if cached is not None else self.refresh(user_id)

    def is_cached(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._inputs

    def snapshot(self, user_id: int, hidden: Iterable[str] = ()) -> Dict[str, object]:
        inputs = self.inputs(user_id)
        return build_dashboard(inputs.transactions, inputs.settings, hidden=hidden)

    def close(self) -> None:
        self._unsubscribe()
        with self._lock:
            self._inputs.clear()
            self._generations.clear()
