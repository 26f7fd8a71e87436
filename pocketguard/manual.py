# pocketguard/manual.py
import json
from pathlib import Path

import yaml

from pocketguard.errors import ValidationError
from pocketguard.utils import parse_transaction, parse_transactions


def load_manual_transactions(path):
    """Load expenses from a YAML list of entries."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise ValidationError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, list):
        raise ValidationError(f"{path} must contain a list of expenses")

    txs = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValidationError(f"Entry {index} is not a mapping: {entry}")
        if not entry.get('date'):
            raise ValidationError(f"Missing 'date' in manual entry: {entry}")
        record = dict(entry)
        record.setdefault('category', 'Other')
        txs.append(parse_transaction(record))
    return txs


def load_exported_transactions(path):
    """
    Load a JSON export of ``GET /api/transactions``. Records that do not
    parse are skipped, as the listing client does.
    """
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Could not parse {path}: {e}") from e
    return parse_transactions(data)


def load_expense_file(path):
    """Pick the loader by extension: ``.json`` exports, anything else YAML."""
    if Path(path).suffix.lower() == '.json':
        return load_exported_transactions(path)
    return load_manual_transactions(path)
