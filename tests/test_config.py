from __future__ import annotations

from pathlib import Path

import pytest

from usersapi.config import ConfigurationError, MongoSettings, Settings, load_settings


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file_or_environment() -> None:
    assert load_settings(environ={}) == Settings()


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "users.yaml",
        """
store: mongo
trust_client_ids: false
mongo:
  uri: mongodb://localhost:27017
  database: people
seed_users:
  - id: "1"
    name: Seeded
""",
    )

    settings = load_settings(config, environ={})

    assert settings.store == "mongo"
    assert settings.trust_client_ids is False
    assert settings.mongo == MongoSettings(uri="mongodb://localhost:27017", database="people")
    assert settings.seed_users == ({"id": "1", "name": "Seeded"},)


def test_environment_overrides_file(tmp_path: Path) -> None:
    config = _write(tmp_path / "users.yaml", "store: memory\nmongo:\n  uri: mongodb://file\n")

    settings = load_settings(
        config,
        environ={
            "USERS_API_STORE": "mongo",
            "MONGODB_URI": "mongodb://env",
            "MONGODB_COLLECTION": "Members",
            "MONGODB_TIMEOUT_MS": "250",
            "USERS_API_TRUST_CLIENT_IDS": "no",
        },
    )

    assert settings.store == "mongo"
    assert settings.trust_client_ids is False
    assert settings.mongo is not None
    assert settings.mongo.uri == "mongodb://env"
    assert settings.mongo.collection == "Members"
    assert settings.mongo.timeout_ms == 250


def test_config_path_from_environment(tmp_path: Path) -> None:
    config = _write(tmp_path / "users.yaml", "trust_client_ids: off\n")

    settings = load_settings(environ={"USERS_API_CONFIG": str(config)})

    assert settings.trust_client_ids is False


@pytest.mark.parametrize(
    "environ",
    [
        {"USERS_API_STORE": "mongo"},
        {"USERS_API_STORE": "postgres"},
        {"USERS_API_TRUST_CLIENT_IDS": "sometimes"},
        {"USERS_API_STORE": "mongo", "MONGODB_URI": "mongodb://x", "MONGODB_TIMEOUT_MS": "soon"},
        {"USERS_API_CONFIG": "/nonexistent/users.yaml"},
    ],
)
def test_invalid_configuration_is_rejected(environ: dict) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(environ=environ)


def test_invalid_yaml_is_rejected(tmp_path: Path) -> None:
    config = _write(tmp_path / "users.yaml", "store: [unclosed\n")

    with pytest.raises(ConfigurationError):
        load_settings(config, environ={})


def test_seed_users_must_be_mappings(tmp_path: Path) -> None:
    config = _write(tmp_path / "users.yaml", "seed_users:\n  - just a name\n")

    with pytest.raises(ConfigurationError):
        load_settings(config, environ={})
