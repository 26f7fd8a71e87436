# pocketguard/utils.py
import math
from datetime import date, datetime

from pocketguard.core.models import Transaction
from pocketguard.errors import ValidationError


def parse_date(value):
    """
    Accept a date, a datetime, ``YYYY-MM-DD`` or a full ISO timestamp such as
    ``2025-01-15T00:00:00.000Z`` and return the calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid date: {value!r}")


def parse_amount(value):
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}") from None
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"Amount must be a non-negative number, got {value!r}")
    return amount


def parse_transaction(record):
    """
    Build a Transaction from a JSON-shaped record. The label may be sent as
    either ``description`` or ``name``.
    """
    if not isinstance(record, dict):
        raise ValidationError(f"Expected a mapping, got {type(record).__name__}")
    description = record.get('description')
    if description is None:
        description = record.get('name', '')
    category = record.get('category')
    if not isinstance(category, str):
        raise ValidationError(f"Missing 'category' in record: {record}")
    return Transaction(
        id=str(record.get('id', '')),
        description=str(description),
        amount=parse_amount(record.get('amount')),
        category=category,
        date=parse_date(record.get('date')),
    )


def parse_transactions(payload):
    """
    Return the well-formed transactions in *payload*; anything that is not a
    list yields an empty list.
    """
    if not isinstance(payload, list):
        return []
    txs = []
    for record in payload:
        try:
            txs.append(parse_transaction(record))
        except ValidationError:
            continue
    return txs


def filter_transactions_by_month(transactions, month_str):
    """
    Return only those transactions whose date falls in the given YYYY-MM.
    """
    try:
        year, month = map(int, month_str.split('-'))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid month {month_str!r}, expected YYYY-MM") from None
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {month_str!r}, expected YYYY-MM")
    return [tx for tx in transactions if tx.date.year == year and tx.date.month == month]


def dedupe_transactions(transactions):
    """
    Remove duplicates based on (date, description, amount, category).
    """
    seen = set()
    unique = []
    for tx in transactions:
        key = (tx.date, tx.description, tx.amount, tx.category)
        if key not in seen:
            seen.add(key)
            unique.append(tx)
    return unique
