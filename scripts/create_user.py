"""Create a user on a running users service."""

from __future__ import annotations

import argparse
import json
import os
import sys

import httpx

_DEFAULT_SERVICE_URL = "http://localhost:3000"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user through the users API")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("--dob", default=None, help="Date of birth, e.g. 1999-03-09 or 27-01-2003")
    parser.add_argument("--address", default="", help="Postal address")
    parser.add_argument("--description", default="", help="Free-form description")
    parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of the running service (defaults to USERS_API_URL or http://localhost:3000)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(list(argv) if argv is not None else None)

    base_url = (args.service_url or os.getenv("USERS_API_URL") or _DEFAULT_SERVICE_URL).rstrip("/")
    payload = {
        "name": args.name.strip(),
        "dob": args.dob,
        "address": args.address,
        "description": args.description,
    }

    try:
        response = httpx.post(f"{base_url}/api/users", json=payload, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact users service: {exc}", file=sys.stderr)
        return 1

    if response.status_code != 201:
        print(f"Service responded with {response.status_code}: {response.text.strip()}", file=sys.stderr)
        return 1

    user = response.json()
    print(f"Created user {user['id']}: {user['name']}")
    print(json.dumps(user, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
