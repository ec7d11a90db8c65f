from __future__ import annotations

from datetime import datetime, timezone
from unittest import mock

import mongomock
import pytest
from fastapi.testclient import TestClient
from pymongo.errors import OperationFailure

from usersapi.application import build_store, create_application
from usersapi.config import ConfigurationError, MongoSettings, Settings, load_settings
from usersapi.documents import ProvisioningError
from usersapi.stores import DocumentUserStore, MemoryUserStore


def test_memory_store_is_seeded_from_settings() -> None:
    settings = Settings(seed_users=({"id": "1", "name": "Seeded", "dob": "27-01-2003"},))

    store = build_store(settings)

    assert isinstance(store, MemoryUserStore)
    [user] = store.list()
    assert user.id == "1"
    assert user.dob == datetime(2003, 1, 27, tzinfo=timezone.utc)
    assert user.created_at is not None


def test_invalid_seed_user_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        build_store(Settings(seed_users=({"id": "1", "name": "Bad", "dob": "whenever"},)))


def test_mongo_store_is_provisioned(monkeypatch) -> None:
    client = mongomock.MongoClient()
    monkeypatch.setattr("usersapi.documents.MongoClient", lambda uri, **kwargs: client)
    settings = Settings(store="mongo", mongo=MongoSettings(uri="mongodb://localhost:27017"))

    store = build_store(settings)

    assert isinstance(store, DocumentUserStore)
    assert "users_by_id" in client["users_api"]["Users"].index_information()


def test_provisioning_failure_aborts_startup(monkeypatch) -> None:
    client = mock.MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    collection.database.list_collection_names.side_effect = OperationFailure("auth failed")
    monkeypatch.setattr("usersapi.documents.MongoClient", lambda uri, **kwargs: client)
    settings = Settings(store="mongo", mongo=MongoSettings(uri="mongodb://localhost:27017"))

    with pytest.raises(ProvisioningError):
        create_application(settings=settings)


def test_application_mounts_api_under_prefix() -> None:
    store = MemoryUserStore()
    app = create_application(settings=Settings(), store=store)

    assert app.state.store is store
    with TestClient(app) as client:
        created = client.post("/api/users", json={"name": "Mounted"})
        assert created.status_code == 201
        assert client.get("/users").status_code == 404


def test_yaml_seed_with_unquoted_iso_date(tmp_path) -> None:
    config = tmp_path / "users.yaml"
    config.write_text("seed_users:\n  - id: '1'\n    name: Ada\n    dob: 2003-01-27\n", encoding="utf-8")

    store = build_store(load_settings(config, environ={}))

    [user] = store.list()
    assert user.name == "Ada"
    assert user.dob == datetime(2003, 1, 27, tzinfo=timezone.utc)


def test_duplicate_seed_ids_are_a_configuration_error(tmp_path) -> None:
    config = tmp_path / "users.yaml"
    config.write_text(
        "seed_users:\n  - id: '1'\n    name: First\n  - id: '1'\n    name: Second\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigurationError):
        build_store(load_settings(config, environ={}))


def test_routes_outside_api_use_message_bodies() -> None:
    with TestClient(create_application(settings=Settings(), store=MemoryUserStore())) as client:
        response = client.get("/")

    assert response.status_code == 404
    assert response.json() == {"message": "Not Found"}
