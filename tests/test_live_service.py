"""Exercise a running users service over plain HTTP.

Skipped unless ``USERS_API_URL`` points at a live instance, for example
``USERS_API_URL=http://localhost:3000 pytest tests/test_live_service.py``.
"""

from __future__ import annotations

import os

import httpx
import pytest

BASE_URL = os.getenv("USERS_API_URL")

pytestmark = pytest.mark.skipif(not BASE_URL, reason="USERS_API_URL is not set")


@pytest.fixture()
def client():
    with httpx.Client(base_url=f"{BASE_URL.rstrip('/')}/api", timeout=10.0) as http:
        yield http


def test_create_update_delete_cycle(client: httpx.Client) -> None:
    created = client.post(
        "/users",
        json={
            "id": None,
            "name": "Test User",
            "dob": "1999-03-09T05:08:06.880755794+05:30",
            "address": "Canada",
            "description": "I am a test user",
            "createdAt": None,
        },
    )
    assert created.status_code == 201, created.text
    user = created.json()
    assert user["id"] and user["createdAt"]

    fetched = client.get(f"/users/{user['id']}")
    assert fetched.status_code == 200

    updated = client.patch(
        f"/users/{user['id']}",
        json={
            "name": "Anonymous User",
            "address": "Anonymous Place",
            "description": "I am an anonymous user",
        },
    )
    assert updated.status_code == 206
    assert updated.json()["dob"] == user["dob"]

    deleted = client.delete(f"/users/{user['id']}")
    assert deleted.status_code == 202

    assert client.get(f"/users/{user['id']}").status_code == 404
