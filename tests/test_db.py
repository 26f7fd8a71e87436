from datetime import date

import pytest

from pocketguard import database
from pocketguard.core.models import Transaction
from pocketguard.errors import NotFoundError, ValidationError


def _user(db_path, email="ana@example.com"):
    return database.create_user(str(db_path), "Ana", email, "hashed")


def _seed_expenses(db_path, user_id):
    rows = [
        ("Groceries", 45.5, "Food", "2025-01-05"),
        ("Cafe", 12.0, "Food", "2025-01-20"),
        ("Fuel", 60.0, "Transport", "2025-02-01"),
        ("Electricity", 80.0, "Bills", "2025-02-12"),
    ]
    for name, amount, category, when in rows:
        database.add_expense(str(db_path), user_id, name, amount, category, when)


def test_users(tmp_path):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)

    assert database.get_user(str(db_path), user.id) == user
    assert database.get_user_by_email(str(db_path), "ana@example.com") == user
    assert database.get_user_credentials(str(db_path), "ana@example.com") == (user, "hashed")
    assert database.get_user_by_email(str(db_path), "nobody@example.com") is None

    with pytest.raises(ValidationError):
        _user(db_path)


def test_expenses_newest_first_and_filters(tmp_path):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)
    _seed_expenses(db_path, user.id)

    txs = database.list_expenses(str(db_path), user.id)
    assert [tx.description for tx in txs] == ["Electricity", "Fuel", "Cafe", "Groceries"]
    assert isinstance(txs[0], Transaction)
    assert txs[0].date == date(2025, 2, 12)

    january = database.list_expenses(
        str(db_path), user.id, start_date=date(2025, 1, 1), end_date=date(2025, 1, 31)
    )
    assert [tx.description for tx in january] == ["Cafe", "Groceries"]

    food = database.list_expenses(str(db_path), user.id, category="Food")
    assert {tx.description for tx in food} == {"Cafe", "Groceries"}


def test_expenses_are_scoped_to_owner(tmp_path):
    db_path = tmp_path / "pg.db"
    ana = _user(db_path)
    ben = _user(db_path, "ben@example.com")
    _seed_expenses(db_path, ana.id)

    assert database.list_expenses(str(db_path), ben.id) == []
    expense_id = int(database.list_expenses(str(db_path), ana.id)[0].id)
    assert database.get_expense(str(db_path), ben.id, expense_id) is None
    assert database.delete_expense(str(db_path), ben.id, expense_id) is False
    assert database.delete_expense(str(db_path), ana.id, expense_id) is True
    assert database.get_expense(str(db_path), ana.id, expense_id) is None


@pytest.mark.parametrize(
    "name, amount, category, when",
    [
        ("Pizza 2", 10, "Food", "2025-01-01"),
        ("Pizza", -1, "Food", "2025-01-01"),
        ("Pizza", "abc", "Food", "2025-01-01"),
        ("Pizza", 10, "", "2025-01-01"),
        ("Pizza", 10, "Food", "not-a-date"),
    ],
)
def test_add_expense_validation(tmp_path, name, amount, category, when):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)
    with pytest.raises(ValidationError):
        database.add_expense(str(db_path), user.id, name, amount, category, when)


def test_append_expenses(tmp_path):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)
    txs = [
        Transaction("", "Uber 24", 18.0, "Transport", date(2025, 3, 1)),
        Transaction("", "Books", 30.0, "Education", date(2025, 3, 2)),
    ]
    assert database.append_expenses(str(db_path), user.id, txs) == 2
    assert database.append_expenses(str(db_path), user.id, []) == 0
    assert len(database.list_expenses(str(db_path), user.id)) == 2


def test_milestones(tmp_path):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)
    other = _user(db_path, "ben@example.com")

    first = database.create_milestone(str(db_path), user.id, "Save 500", "Concert tickets")
    database.create_milestone(str(db_path), user.id, "No takeout for a week")

    milestones = database.list_milestones(str(db_path), user.id)
    assert [m.task for m in milestones] == ["Save 500", "No takeout for a week"]
    assert milestones[1].reward == ""
    assert not first.completed

    done = database.complete_milestone(str(db_path), user.id, first.id)
    assert done.completed

    edited = database.update_milestone(str(db_path), user.id, first.id, reward="Vinyl")
    assert edited.task == "Save 500"
    assert edited.reward == "Vinyl"
    assert edited.completed

    with pytest.raises(NotFoundError):
        database.complete_milestone(str(db_path), other.id, first.id)
    with pytest.raises(ValidationError):
        database.create_milestone(str(db_path), user.id, "  ")

    assert database.delete_milestone(str(db_path), other.id, first.id) is False
    assert database.delete_milestone(str(db_path), user.id, first.id) is True
    assert [m.task for m in database.list_milestones(str(db_path), user.id)] == ["No takeout for a week"]


def test_user_settings_roundtrip(tmp_path):
    db_path = tmp_path / "pg.db"
    user = _user(db_path)

    assert database.load_user_settings(str(db_path), user.id) == (0.0, 0.0)
    assert database.update_user_settings(str(db_path), user.id, budget_limit=800) == (800.0, 0.0)
    assert database.update_user_settings(str(db_path), user.id, initial_balance=1500) == (800.0, 1500.0)
    assert database.update_user_settings(str(db_path), user.id, budget_limit=900) == (900.0, 1500.0)
    assert database.update_user_settings(str(db_path), user.id) == (900.0, 1500.0)
    assert database.load_user_settings(str(db_path), user.id) == (900.0, 1500.0)
