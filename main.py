"""Command-line interface for the users service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from usersapi.config import ConfigurationError, Settings, load_settings
from usersapi.documents import ProvisioningError, connect, provision

logger = logging.getLogger("usersapi.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users API service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP users service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (defaults to USERS_API_CONFIG)",
    )

    provision_parser = subparsers.add_parser(
        "provision", help="Create the MongoDB collection and index if they are missing"
    )
    provision_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (defaults to USERS_API_CONFIG)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "provision"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser().resolve(strict=False) if config else None
    try:
        return load_settings(config_path)
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc


def _serve(*, settings: Settings, host: str, port: int) -> None:
    from usersapi.application import create_application
    import uvicorn

    try:
        app = create_application(settings=settings)
    except (ConfigurationError, ProvisioningError) as exc:
        raise SystemExit(f"Unable to start the users service: {exc}") from exc

    logger.info("Starting users API on http://%s:%s using the %s store", host, port, settings.store)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _provision(settings: Settings) -> int:
    if settings.store != "mongo" or settings.mongo is None:
        print("Provisioning only applies to the mongo store; set USERS_API_STORE=mongo.", file=sys.stderr)
        return 1

    try:
        documents = connect(settings.mongo)
        provision(documents, settings.mongo.index)
    except (ConfigurationError, ProvisioningError) as exc:
        print(f"Provisioning failed: {exc}", file=sys.stderr)
        return 1

    print(f"Collection {settings.mongo.database}.{settings.mongo.collection} is ready.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)

    if args.command == "provision":
        return _provision(settings)

    _serve(settings=settings, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
