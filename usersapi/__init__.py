"""Users API: a CRUD service for user records."""

from __future__ import annotations

from typing import Any

from .models import User
from .stores import DocumentUserStore, MemoryUserStore, UserStore


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the ASGI application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "DocumentUserStore",
    "MemoryUserStore",
    "User",
    "UserStore",
    "create_application",
]
