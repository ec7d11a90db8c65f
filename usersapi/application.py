"""Application factory wiring the configured store into the HTTP API."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import create_app as create_api_app, http_error_handler
from .config import ConfigurationError, Settings, load_settings
from .documents import connect, provision
from .models import user_from_dict
from .stores import DocumentUserStore, MemoryUserStore, StoreError, UserStore

logger = logging.getLogger("usersapi.application")


def build_store(settings: Settings) -> UserStore:
    """Create the store selected by ``settings``.

    For the mongo store this connects and provisions the collection, so a
    :class:`~usersapi.documents.ProvisioningError` here aborts startup.
    """

    if settings.store == "mongo":
        if settings.mongo is None:
            raise ConfigurationError("MongoDB settings are required for the mongo store")
        documents = connect(settings.mongo)
        provision(documents, settings.mongo.index)
        return DocumentUserStore(documents)

    try:
        seed = [user_from_dict(item) for item in settings.seed_users]
    except ValueError as exc:
        raise ConfigurationError(f"Invalid seed user: {exc}") from exc
    try:
        store = MemoryUserStore(seed, trust_client_ids=settings.trust_client_ids)
    except StoreError as exc:
        raise ConfigurationError(f"Invalid seed users: {exc}") from exc
    logger.info("Using in-memory store with %d seeded user(s)", len(seed))
    return store


def create_application(
    *,
    settings: Optional[Settings] = None,
    store: Optional[UserStore] = None,
) -> FastAPI:
    """Create the ASGI application serving the API under ``/api``."""

    if settings is None:
        settings = load_settings()
    if store is None:
        store = build_store(settings)

    api_app = create_api_app(store=store)

    app = FastAPI(
        title="Users API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.api = api_app

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.mount("/api", api_app)

    return app


__all__ = ["build_store", "create_application"]
