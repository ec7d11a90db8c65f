"""Configuration management for the users service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

STORE_KINDS = ("memory", "mongo")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigurationError(ValueError):
    """Raised when the service configuration is missing or invalid."""


@dataclass(frozen=True)
class MongoSettings:
    """Connection details for the MongoDB-backed store."""

    uri: str
    database: str = "users_api"
    collection: str = "Users"
    index: str = "users_by_id"
    timeout_ms: int = 5000

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "MongoSettings":
        uri = str(data.get("uri") or "").strip()
        if not uri:
            raise ConfigurationError("MONGODB_URI must be set when the mongo store is selected")
        try:
            timeout_ms = int(data.get("timeout_ms") or 5000)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("mongo.timeout_ms must be an integer") from exc
        return MongoSettings(
            uri=uri,
            database=str(data.get("database") or "users_api"),
            collection=str(data.get("collection") or "Users"),
            index=str(data.get("index") or "users_by_id"),
            timeout_ms=timeout_ms,
        )


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    store: str = "memory"
    trust_client_ids: bool = True
    mongo: Optional[MongoSettings] = None
    seed_users: Tuple[Dict[str, object], ...] = field(default_factory=tuple)


def _parse_flag(value: object, *, name: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {value!r}")


def _read_config_file(config_path: Path) -> Dict[str, object]:
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return raw


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file path."""
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from an optional YAML file and the environment.

    Environment variables take precedence over values from the file.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("USERS_API_CONFIG"))

    raw: Dict[str, object] = _read_config_file(config_path) if config_path is not None else {}

    store = str(env.get("USERS_API_STORE") or raw.get("store") or "memory").strip().lower()
    if store not in STORE_KINDS:
        raise ConfigurationError(f"Unknown store {store!r}; expected one of {', '.join(STORE_KINDS)}")

    trust_raw = env.get("USERS_API_TRUST_CLIENT_IDS") or raw.get("trust_client_ids", True)
    trust_client_ids = _parse_flag(trust_raw, name="trust_client_ids")

    mongo_raw = raw.get("mongo") or {}
    if not isinstance(mongo_raw, dict):
        raise ConfigurationError("The 'mongo' section must be a mapping")
    mongo_values: Dict[str, object] = dict(mongo_raw)
    for key, variable in (
        ("uri", "MONGODB_URI"),
        ("database", "MONGODB_DATABASE"),
        ("collection", "MONGODB_COLLECTION"),
        ("index", "MONGODB_INDEX"),
        ("timeout_ms", "MONGODB_TIMEOUT_MS"),
    ):
        if env.get(variable):
            mongo_values[key] = env[variable]

    mongo = MongoSettings.from_dict(mongo_values) if store == "mongo" else None

    seeds_raw = raw.get("seed_users") or []
    if not isinstance(seeds_raw, list) or not all(isinstance(item, dict) for item in seeds_raw):
        raise ConfigurationError("'seed_users' must be a list of mappings")

    return Settings(
        store=store,
        trust_client_ids=trust_client_ids,
        mongo=mongo,
        seed_users=tuple(dict(item) for item in seeds_raw),
    )


__all__ = [
    "ConfigurationError",
    "MongoSettings",
    "STORE_KINDS",
    "Settings",
    "load_settings",
    "resolve_config_path",
]
