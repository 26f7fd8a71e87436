import threading
from datetime import date

import pytest

from pocketguard import database
from pocketguard.core.models import Transaction
from pocketguard.dashboard import DashboardStore, build_dashboard
from pocketguard.events import EXPENSES, MILESTONES, ChangeEvent, ChangeNotifier
from pocketguard.settings import SettingsService, UserSettings


def _txs():
    return [
        Transaction("3", "Bus", 50.0, "Transport", date(2025, 3, 2)),
        Transaction("2", "Dinner", 50.0, "Food", date(2025, 1, 20)),
        Transaction("1", "Lunch", 100.0, "Food", date(2025, 1, 15)),
    ]


def test_build_dashboard():
    dash = build_dashboard(_txs(), UserSettings(budget_limit=250, initial_balance=1000), hidden=["Transport"])

    assert dash["total_spent"] == 200
    assert dash["transaction_count"] == 3
    assert dash["categories"] == [
        {"category": "Transport", "amount": 50.0, "percentage": 25.0, "hidden": True},
        {"category": "Food", "amount": 150.0, "percentage": 75.0, "hidden": False},
    ]
    assert dash["chart"] == {
        "categories": [{"category": "Food", "amount": 150.0, "percentage": 100.0, "hidden": False}],
        "visible_total": 150.0,
    }
    assert dash["hidden"] == ["Transport"]
    assert dash["budget"]["percentage"] == pytest.approx(80)
    assert dash["budget"]["severity"] == "warning"
    assert dash["balance"]["current"] == 800
    assert dash["balance"]["severity"] == "nominal"
    assert dash["monthly"] == [
        {"label": "Mar 2025", "amount": 50.0},
        {"label": "Jan 2025", "amount": 150.0},
    ]


def test_build_dashboard_empty():
    dash = build_dashboard([], UserSettings())
    assert dash["total_spent"] == 0
    assert dash["transaction_count"] == 0
    assert dash["categories"] == []
    assert dash["chart"] == {"categories": [], "visible_total": 0}
    assert dash["budget"] == {
        "limit": 0.0,
        "total_spent": 0.0,
        "percentage": 0.0,
        "severity": "nominal",
        "configured": False,
    }
    assert dash["balance"]["current"] == 0
    assert dash["balance"]["ratio"] == 0
    assert dash["monthly"] == []


def test_build_dashboard_malformed_input():
    dash = build_dashboard({"error": "Failed to fetch transactions"}, UserSettings(budget_limit=100))
    assert dash["total_spent"] == 0
    assert dash["categories"] == []


def _store(tmp_path):
    db_path = str(tmp_path / "pg.db")
    user = database.create_user(db_path, "Ana", "ana@example.com", "hashed")
    notifier = ChangeNotifier()
    settings = SettingsService(db_path, notifier)
    return DashboardStore(db_path, settings, notifier), notifier, settings, db_path, user.id


def test_store_refetches_on_expense_change(tmp_path):
    store, notifier, _, db_path, user_id = _store(tmp_path)
    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")

    assert store.snapshot(user_id)["total_spent"] == 20

    # a write without a notification is not seen
    database.add_expense(db_path, user_id, "Bus", 5, "Transport", "2025-01-16")
    assert store.snapshot(user_id)["total_spent"] == 20

    notifier.publish(ChangeEvent(EXPENSES, user_id))
    assert store.snapshot(user_id)["total_spent"] == 25


def test_store_refetches_on_settings_change(tmp_path):
    store, _, settings, db_path, user_id = _store(tmp_path)
    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")

    assert store.snapshot(user_id)["budget"]["configured"] is False
    settings.update(user_id, budget_limit=25)

    budget = store.snapshot(user_id)["budget"]
    assert budget["configured"] is True
    assert budget["percentage"] == pytest.approx(80)


def test_store_ignores_unrelated_events(tmp_path):
    store, notifier, _, db_path, user_id = _store(tmp_path)
    store.snapshot(user_id)
    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")

    notifier.publish(ChangeEvent(MILESTONES, user_id))
    notifier.publish(ChangeEvent(EXPENSES, user_id + 1))
    assert store.snapshot(user_id)["total_spent"] == 0
    assert not store.is_cached(user_id + 1)


def test_store_close_unsubscribes(tmp_path):
    store, notifier, _, _, user_id = _store(tmp_path)
    store.snapshot(user_id)
    assert notifier.subscriber_count == 1

    store.close()

    assert notifier.subscriber_count == 0
    assert not store.is_cached(user_id)


def _pause_first_fetch(store):
    """Make the store's next fetch wait after reading, until resumed."""
    fetched, resume = threading.Event(), threading.Event()
    real_fetch = store._fetch
    calls = []

    def fetch(user_id):
        inputs = real_fetch(user_id)
        calls.append(inputs)
        if len(calls) == 1:
            fetched.set()
            resume.wait(5)
        return inputs

    store._fetch = fetch
    return fetched, resume, calls


def test_write_during_first_fetch_is_not_lost(tmp_path):
    store, notifier, _, db_path, user_id = _store(tmp_path)
    fetched, resume, calls = _pause_first_fetch(store)
    results = []
    reader = threading.Thread(target=lambda: results.append(store.snapshot(user_id)))
    reader.start()
    assert fetched.wait(5)

    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")
    notifier.publish(ChangeEvent(EXPENSES, user_id))
    resume.set()
    reader.join(5)

    assert results[0]["total_spent"] == 20
    assert store.snapshot(user_id)["total_spent"] == 20
    assert len(calls) == 2


def test_older_refresh_does_not_overwrite_newer_one(tmp_path):
    store, notifier, _, db_path, user_id = _store(tmp_path)
    assert store.snapshot(user_id)["total_spent"] == 0

    fetched, resume, _ = _pause_first_fetch(store)
    refresher = threading.Thread(target=store.refresh, args=(user_id,))
    refresher.start()
    assert fetched.wait(5)

    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")
    notifier.publish(ChangeEvent(EXPENSES, user_id))
    assert store.snapshot(user_id)["total_spent"] == 20

    resume.set()
    refresher.join(5)
    assert store.snapshot(user_id)["total_spent"] == 20


def test_store_keeps_least_recently_used_users_out(tmp_path):
    db_path = str(tmp_path / "pg.db")
    ana = database.create_user(db_path, "Ana", "ana@example.com", "hashed")
    ben = database.create_user(db_path, "Ben", "ben@example.com", "hashed")
    cy = database.create_user(db_path, "Cy", "cy@example.com", "hashed")
    notifier = ChangeNotifier()
    store = DashboardStore(db_path, SettingsService(db_path, notifier), notifier, max_users=2)

    store.snapshot(ana.id)
    store.snapshot(ben.id)
    store.snapshot(ana.id)
    store.snapshot(cy.id)

    assert store.is_cached(ana.id)
    assert not store.is_cached(ben.id)
    assert store.is_cached(cy.id)


def test_store_rejects_empty_cache():
    with pytest.raises(ValueError):
        DashboardStore("unused.db", SettingsService("unused.db"), ChangeNotifier(), max_users=0)


def test_failed_refresh_drops_cached_entry(tmp_path):
    store, notifier, _, db_path, user_id = _store(tmp_path)
    store.snapshot(user_id)
    real_fetch = store._fetch

    def broken_fetch(uid):
        raise RuntimeError("database unavailable")

    store._fetch = broken_fetch
    database.add_expense(db_path, user_id, "Lunch", 20, "Food", "2025-01-15")
    notifier.publish(ChangeEvent(EXPENSES, user_id))
    assert not store.is_cached(user_id)

    store._fetch = real_fetch
    assert store.snapshot(user_id)["total_spent"] == 20
