from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Dict

import yaml

from pocketguard.errors import ConfigError

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "pocketguard.db",
    "host": "127.0.0.1",
    "port": 5000,
    "jwt_secret": "your-secret-key",
    "token_ttl_days": 30,
    "google_client_id": None,
    "allowed_origins": [
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    "log_level": "INFO",
    "dashboard_cache_size": 256,
    "categories": [
        "Food",
        "Transport",
        "Entertainment",
        "Bills",
        "Shopping",
        "Healthcare",
        "Education",
        "Other",
    ],
}

CONFIG_PATH = Path("config.yaml")

# environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "POCKETGUARD_DB_PATH": ("db_path", str),
    "JWT_SECRET": ("jwt_secret", str),
    "POCKETGUARD_JWT_SECRET": ("jwt_secret", str),
    "GOOGLE_CLIENT_ID": ("google_client_id", str),
    "PORT": ("port", int),
    "POCKETGUARD_LOG_LEVEL": ("log_level", str),
}


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def _apply_env(config: Dict[str, object]) -> Dict[str, object]:
    for name, (key, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(name)
        if raw is None or raw == "":
            continue
        try:
            config[key] = convert(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc
    return config


def load_config(path: str | Path | None = None) -> Dict[str, object]:
    """Load the YAML config at *path*, falling back to the defaults.

    Environment overrides are applied last so deployments can keep secrets
    out of the file.
    """
    target = Path(path) if path else CONFIG_PATH
    data: Dict[str, object] = {}
    if target.exists():
        with target.open("r", encoding="utf-8") as fp:
            try:
                data = yaml.safe_load(fp) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Could not parse {target}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{target} must contain a mapping")
    return _apply_env(_merge_defaults(data, DEFAULT_CONFIG))


def save_config(config: Dict[str, object], path: str | Path | None = None) -> None:
    target = Path(path) if path else CONFIG_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)
