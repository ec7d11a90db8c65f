"""Stores owning the authoritative collection of user records."""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .documents import DocumentCollection, DocumentNotFoundError, DocumentStoreError
from .models import MUTABLE_FIELDS, User, ensure_utc, user_from_dict, utc_now

logger = logging.getLogger("usersapi.stores")

IDGenerator = Callable[[], str]


class StoreError(Exception):
    """Base class for store failures."""


class UserNotFoundError(StoreError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id!r} not found")
        self.user_id = user_id


class DuplicateUserError(StoreError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"A user with id {user_id!r} already exists")
        self.user_id = user_id


class BackendError(StoreError):
    """Raised when the backing document database fails an operation."""


class IDGenerationError(StoreError):
    """Raised when a new user id cannot be allocated."""


def new_user_id() -> str:
    return uuid.uuid4().hex


def _check_changes(changes: Mapping[str, object]) -> Dict[str, object]:
    unknown = set(changes) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    return dict(changes)


class UserStore(ABC):
    """Common interface of the ephemeral and persistent stores."""

    kind: str = "abstract"

    @abstractmethod
    def list(self) -> List[User]:
        """Return every stored user."""

    @abstractmethod
    def get(self, user_id: str) -> User:
        """Return the user with ``user_id`` or raise :class:`UserNotFoundError`."""

    @abstractmethod
    def create(self, user: User) -> User:
        """Assign an id and creation time to ``user`` and persist it."""

    @abstractmethod
    def update(self, user_id: str, changes: Mapping[str, object]) -> User:
        """Apply ``changes`` to the stored user and return the merged record.

        Only the keys present in ``changes`` are written; each must be one of
        :data:`~usersapi.models.MUTABLE_FIELDS`.
        """

    @abstractmethod
    def delete(self, user_id: str) -> User:
        """Remove the user with ``user_id`` and return it."""


class MemoryUserStore(UserStore):
    """Process-local store backed by an insertion-ordered list."""

    kind = "memory"

    def __init__(
        self,
        seed: Iterable[User] = (),
        *,
        id_generator: IDGenerator = new_user_id,
        trust_client_ids: bool = True,
    ) -> None:
        self._users: List[User] = []
        self._lock = threading.Lock()
        self._id_generator = id_generator
        self._trust_client_ids = trust_client_ids
        for user in seed:
            self.create(user)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users)

    def get(self, user_id: str) -> User:
        with self._lock:
            return self._users[self._index_of(user_id)]

    def create(self, user: User) -> User:
        with self._lock:
            if self._trust_client_ids and user.id:
                user_id = user.id
                if any(existing.id == user_id for existing in self._users):
                    raise DuplicateUserError(user_id)
            else:
                user_id = self._next_id()

            created = replace(user, id=user_id, created_at=utc_now())
            self._users.append(created)
        logger.info("Created user %s in memory", user_id)
        return created

    def update(self, user_id: str, changes: Mapping[str, object]) -> User:
        checked = _check_changes(changes)
        with self._lock:
            index = self._index_of(user_id)
            updated = replace(self._users[index], **checked)
            self._users[index] = updated
        if checked:
            logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(checked)))
        return updated

    def delete(self, user_id: str) -> User:
        with self._lock:
            removed = self._users.pop(self._index_of(user_id))
        logger.info("Deleted user %s from memory", user_id)
        return removed

    def _index_of(self, user_id: str) -> int:
        for index, user in enumerate(self._users):
            if user.id == user_id:
                return index
        raise UserNotFoundError(user_id)

    def _next_id(self) -> str:
        try:
            user_id = self._id_generator()
        except Exception as exc:
            raise IDGenerationError("Unable to generate an id for the user") from exc
        if not user_id:
            raise IDGenerationError("Unable to generate an id for the user")
        return user_id


def _truncate_to_millis(value: Optional[datetime]) -> Optional[datetime]:
    # BSON dates keep millisecond precision only.
    if value is None:
        return None
    value = ensure_utc(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _encode_field(name: str, value: object) -> object:
    if name == "dob":
        return _truncate_to_millis(value)  # type: ignore[arg-type]
    return value


class DocumentUserStore(UserStore):
    """Store persisting users as documents in an external database.

    Nothing is cached locally; every call goes to the database and a failed
    call leaves no state behind in this process.
    """

    kind = "mongo"

    def __init__(self, documents: DocumentCollection) -> None:
        self._documents = documents

    def list(self) -> List[User]:
        try:
            documents = self._documents.list()
        except DocumentStoreError as exc:
            raise BackendError(str(exc)) from exc
        return [user_from_dict(document) for document in documents]

    def get(self, user_id: str) -> User:
        try:
            document = self._documents.fetch(user_id)
        except DocumentNotFoundError as exc:
            raise UserNotFoundError(user_id) from exc
        except DocumentStoreError as exc:
            raise BackendError(str(exc)) from exc
        return user_from_dict(document)

    def create(self, user: User) -> User:
        try:
            user_id = self._documents.generate_key()
        except Exception as exc:
            logger.warning("Key generation failed: %s", exc)
            raise IDGenerationError("Unable to generate an id for the user") from exc

        created = replace(
            user,
            id=user_id,
            dob=_truncate_to_millis(user.dob),
            created_at=_truncate_to_millis(utc_now()),
        )
        fields = {
            "name": created.name,
            "dob": created.dob,
            "address": created.address,
            "description": created.description,
            "createdAt": created.created_at,
        }
        try:
            self._documents.create(user_id, fields)
        except DocumentStoreError as exc:
            logger.warning("Persisting user %s failed: %s", user_id, exc)
            raise BackendError(str(exc)) from exc
        logger.info("Created user %s in collection %s", user_id, self._documents.name)
        return created

    def update(self, user_id: str, changes: Mapping[str, object]) -> User:
        checked = _check_changes(changes)
        fields = {name: _encode_field(name, value) for name, value in checked.items()}
        try:
            document = self._documents.update(user_id, fields)
        except DocumentNotFoundError as exc:
            raise UserNotFoundError(user_id) from exc
        except DocumentStoreError as exc:
            logger.warning("Updating user %s failed: %s", user_id, exc)
            raise BackendError(str(exc)) from exc
        if checked:
            logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(checked)))
        return user_from_dict(document)

    def delete(self, user_id: str) -> User:
        try:
            document = self._documents.delete(user_id)
        except DocumentNotFoundError as exc:
            raise UserNotFoundError(user_id) from exc
        except DocumentStoreError as exc:
            logger.warning("Deleting user %s failed: %s", user_id, exc)
            raise BackendError(str(exc)) from exc
        logger.info("Deleted user %s from collection %s", user_id, self._documents.name)
        return user_from_dict(document)


__all__ = [
    "BackendError",
    "DocumentUserStore",
    "DuplicateUserError",
    "IDGenerationError",
    "IDGenerator",
    "MemoryUserStore",
    "StoreError",
    "UserNotFoundError",
    "UserStore",
    "new_user_id",
]
