from __future__ import annotations

import re
import sqlite3
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pocketguard.core.models import Milestone, Transaction, User
from pocketguard.errors import NotFoundError, ValidationError
from pocketguard.utils import parse_amount, parse_date

EXPENSE_NAME_PATTERN = re.compile(r"^[A-Za-z\s]+$")


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE TABLE IF NOT EXISTS expenses (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            amount REAL NOT NULL,
            category TEXT NOT NULL,
            date TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses(user_id, date);
        CREATE TABLE IF NOT EXISTS milestones (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            task TEXT NOT NULL,
            reward TEXT NOT NULL DEFAULT '',
            completed INTEGER NOT NULL DEFAULT 0
        );
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            budget_limit REAL NOT NULL DEFAULT 0,
            initial_balance REAL NOT NULL DEFAULT 0
        );
        """
    )
    conn.commit()


def _connect(db_path: str) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys = ON")
    _init_db(conn)
    return conn


def init_db(db_path: str) -> None:
    """Create the PocketGuard schema in ``db_path`` if it is missing."""
    conn = _connect(db_path)
    conn.close()


# ---------------------------------------------------------------------------
# users


def create_user(db_path: str, name: str, email: str, password_hash: str) -> User:
    conn = _connect(db_path)
    try:
        try:
            cur = conn.execute(
                "INSERT INTO users (name, email, password) VALUES (?, ?, ?)",
                (name, email, password_hash),
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError("User already exists") from exc
        conn.commit()
        return User(id=cur.lastrowid, name=name, email=email)
    finally:
        conn.close()


def get_user(db_path: str, user_id: int) -> Optional[User]:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT id, name, email FROM users WHERE id = ?", (user_id,)
        ).fetchone()
    finally:
        conn.close()
    return User(*row) if row else None


def get_user_by_email(db_path: str, email: str) -> Optional[User]:
    found = get_user_credentials(db_path, email)
    return found[0] if found else None


def get_user_credentials(db_path: str, email: str) -> Optional[Tuple[User, str]]:
    """Return the user with ``email`` and their stored password hash."""
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT id, name, email, password FROM users WHERE email = ?", (email,)
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return User(id=row[0], name=row[1], email=row[2]), row[3]


# ---------------------------------------------------------------------------
# expenses


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=str(row[0]),
        description=row[1],
        amount=float(row[2]),
        category=row[3],
        date=date.fromisoformat(row[4]),
    )


def validate_expense(name, amount, category, when) -> Tuple[str, float, str, date]:
    """Check an expense the way the create endpoint requires it.

    The name may only contain letters and whitespace.
    """
    if not isinstance(name, str) or not EXPENSE_NAME_PATTERN.match(name):
        raise ValidationError("Expense Name must contain only letters")
    if not isinstance(category, str) or not category.strip():
        raise ValidationError("Expense category is required")
    return name.strip(), parse_amount(amount), category, parse_date(when)


def add_expense(db_path: str, user_id: int, name, amount, category, when) -> Transaction:
    name, amount, category, when = validate_expense(name, amount, category, when)
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            """
            INSERT INTO expenses (user_id, name, amount, category, date)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, name, amount, category, when.isoformat()),
        )
        conn.commit()
        return Transaction(
            id=str(cur.lastrowid),
            description=name,
            amount=amount,
            category=category,
            date=when,
        )
    finally:
        conn.close()


def append_expenses(db_path: str, user_id: int, transactions: Iterable[Transaction]) -> int:
    """Bulk insert already-parsed transactions for ``user_id``.

    Returns the number of rows written.
    """
    rows = [
        (
            user_id,
            tx.description.strip(),
            float(tx.amount),
            tx.category,
            tx.date.isoformat(),
        )
        for tx in transactions
    ]
    if not rows:
        return 0
    conn = _connect(db_path)
    try:
        conn.executemany(
            """
            INSERT INTO expenses (user_id, name, amount, category, date)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
    finally:
        conn.close()
    return len(rows)


def list_expenses(
    db_path: str,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    category: str | None = None,
) -> List[Transaction]:
    """Retrieve a user's expenses, newest first.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    user_id:
        Owner of the expenses.
    start_date, end_date:
        Optional inclusive date bounds.
    category:
        Optional exact category name.
    """
    conditions = ["user_id = ?"]
    params: list = [user_id]
    if start_date:
        conditions.append("date >= ?")
        params.append(start_date.isoformat())
    if end_date:
        conditions.append("date <= ?")
        params.append(end_date.isoformat())
    if category:
        conditions.append("category = ?")
        params.append(category)
    where = " AND ".join(conditions)
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            f"""
            SELECT id, name, amount, category, date
            FROM expenses
            WHERE {where}
            ORDER BY date DESC, id DESC
            """,
            params,
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_transaction(r) for r in rows]


def get_expense(db_path: str, user_id: int, expense_id: int) -> Optional[Transaction]:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            """
            SELECT id, name, amount, category, date
            FROM expenses
            WHERE id = ? AND user_id = ?
            """,
            (expense_id, user_id),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_transaction(row) if row else None


def delete_expense(db_path: str, user_id: int, expense_id: int) -> bool:
    """Delete one of ``user_id``'s expenses; False when there is no such row."""
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            "DELETE FROM expenses WHERE id = ? AND user_id = ?", (expense_id, user_id)
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# milestones


def _row_to_milestone(row) -> Milestone:
    return Milestone(
        id=row[0], user_id=row[1], task=row[2], reward=row[3], completed=bool(row[4])
    )


def create_milestone(db_path: str, user_id: int, task: str, reward: str = "") -> Milestone:
    if not isinstance(task, str) or not task.strip():
        raise ValidationError("Milestone task is required")
    reward = reward or ""
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            "INSERT INTO milestones (user_id, task, reward) VALUES (?, ?, ?)",
            (user_id, task.strip(), reward),
        )
        conn.commit()
        return Milestone(id=cur.lastrowid, user_id=user_id, task=task.strip(), reward=reward)
    finally:
        conn.close()


def list_milestones(db_path: str, user_id: int) -> List[Milestone]:
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            """
            SELECT id, user_id, task, reward, completed
            FROM milestones
            WHERE user_id = ?
            ORDER BY id
            """,
            (user_id,),
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_milestone(r) for r in rows]


def get_milestone(db_path: str, user_id: int, milestone_id: int) -> Milestone:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            """
            SELECT id, user_id, task, reward, completed
            FROM milestones
            WHERE id = ? AND user_id = ?
            """,
            (milestone_id, user_id),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        raise NotFoundError(f"Milestone {milestone_id} not found")
    return _row_to_milestone(row)


def update_milestone(
    db_path: str,
    user_id: int,
    milestone_id: int,
    task: str | None = None,
    reward: str | None = None,
    completed: bool | None = None,
) -> Milestone:
    """Change only the given fields of a milestone and return the result."""
    current = get_milestone(db_path, user_id, milestone_id)
    if task is not None:
        if not task.strip():
            raise ValidationError("Milestone task is required")
        current.task = task.strip()
    if reward is not None:
        current.reward = reward
    if completed is not None:
        current.completed = bool(completed)
    conn = _connect(db_path)
    try:
        conn.execute(
            """
            UPDATE milestones SET task = ?, reward = ?, completed = ?
            WHERE id = ? AND user_id = ?
            """,
            (current.task, current.reward, int(current.completed), milestone_id, user_id),
        )
        conn.commit()
    finally:
        conn.close()
    return current


def complete_milestone(db_path: str, user_id: int, milestone_id: int) -> Milestone:
    return update_milestone(db_path, user_id, milestone_id, completed=True)


def delete_milestone(db_path: str, user_id: int, milestone_id: int) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            "DELETE FROM milestones WHERE id = ? AND user_id = ?", (milestone_id, user_id)
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# per-user settings


def load_user_settings(db_path: str, user_id: int) -> Tuple[float, float]:
    """Return ``(budget_limit, initial_balance)``, both 0 when never saved."""
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT budget_limit, initial_balance FROM user_settings WHERE user_id = ?",
            (user_id,),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return 0.0, 0.0
    return float(row[0]), float(row[1])


def update_user_settings(
    db_path: str,
    user_id: int,
    budget_limit: float | None = None,
    initial_balance: float | None = None,
) -> Tuple[float, float]:
    """Write the given fields in one statement and return the stored pair.

    A ``None`` field keeps its stored value (0 for a new row).
    """
    budget_limit = None if budget_limit is None else float(budget_limit)
    initial_balance = None if initial_balance is None else float(initial_balance)
    conn = _connect(db_path)
    try:
        conn.execute(
            """
            INSERT INTO user_settings (user_id, budget_limit, initial_balance)
            VALUES (?, COALESCE(?, 0), COALESCE(?, 0))
            ON CONFLICT(user_id) DO UPDATE SET
                budget_limit = COALESCE(?, budget_limit),
                initial_balance = COALESCE(?, initial_balance)
            """,
            (user_id, budget_limit, initial_balance, budget_limit, initial_balance),
        )
        row = conn.execute(
            "SELECT budget_limit, initial_balance FROM user_settings WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        conn.commit()
    finally:
        conn.close()
    return float(row[0]), float(row[1])
