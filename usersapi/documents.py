"""MongoDB-backed document collection consumed by the persistent user store."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping

from bson import ObjectId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import CollectionInvalid, PyMongoError

from .config import ConfigurationError, MongoSettings

logger = logging.getLogger("usersapi.documents")

_NO_INTERNAL_ID = {"_id": False}


class DocumentStoreError(RuntimeError):
    """Raised when the document database rejects or fails an operation."""


class DocumentNotFoundError(DocumentStoreError):
    """Raised when no document exists for the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No document with key {key!r}")
        self.key = key


class ProvisioningError(RuntimeError):
    """Raised when the collection or its index cannot be set up."""


class DocumentCollection:
    """Key-addressed CRUD over a single MongoDB collection.

    Documents use the key as ``_id`` and repeat it in an ``id`` field so the
    auxiliary index can serve lookups by id. ``_id`` is never returned.
    """

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    @property
    def collection(self) -> Collection:
        return self._collection

    def generate_key(self) -> str:
        return str(ObjectId())

    def fetch(self, key: str) -> Dict[str, object]:
        try:
            document = self._collection.find_one({"_id": key}, _NO_INTERNAL_ID)
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to fetch document {key!r}: {exc}") from exc
        if document is None:
            raise DocumentNotFoundError(key)
        return document

    def list(self) -> List[Dict[str, object]]:
        try:
            cursor = self._collection.find({}, _NO_INTERNAL_ID).sort("createdAt", ASCENDING)
            return list(cursor)
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to list documents: {exc}") from exc

    def create(self, key: str, fields: Mapping[str, object]) -> Dict[str, object]:
        document = {**fields, "id": key}
        try:
            self._collection.insert_one({"_id": key, **document})
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to create document {key!r}: {exc}") from exc
        return document

    def update(self, key: str, fields: Mapping[str, object]) -> Dict[str, object]:
        if not fields:
            return self.fetch(key)
        try:
            document = self._collection.find_one_and_update(
                {"_id": key},
                {"$set": dict(fields)},
                projection=_NO_INTERNAL_ID,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to update document {key!r}: {exc}") from exc
        if document is None:
            raise DocumentNotFoundError(key)
        return document

    def delete(self, key: str) -> Dict[str, object]:
        try:
            document = self._collection.find_one_and_delete({"_id": key}, projection=_NO_INTERNAL_ID)
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to delete document {key!r}: {exc}") from exc
        if document is None:
            raise DocumentNotFoundError(key)
        return document


def connect(settings: MongoSettings) -> DocumentCollection:
    """Open a client for ``settings`` and return the configured collection."""

    try:
        client: MongoClient = MongoClient(
            settings.uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.timeout_ms,
        )
        collection = client[settings.database][settings.collection]
    except (PyMongoError, ValueError) as exc:
        raise ConfigurationError(f"Invalid MongoDB settings: {exc}") from exc
    logger.info("Using MongoDB collection %s.%s", settings.database, settings.collection)
    return DocumentCollection(collection)


def provision(documents: DocumentCollection, index_name: str) -> None:
    """Create the collection and its unique ``id`` index when missing.

    Safe to run on every boot: existing collections and indexes are left as
    they are. Any other failure is raised as :class:`ProvisioningError`.
    """

    collection = documents.collection
    database = collection.database

    try:
        existing = set(database.list_collection_names())
        if collection.name in existing:
            logger.info("Collection %s already exists", collection.name)
        else:
            try:
                database.create_collection(collection.name)
                logger.info("Created collection %s", collection.name)
            except CollectionInvalid:
                logger.info("Collection %s already exists", collection.name)

        collection.create_index([("id", ASCENDING)], name=index_name, unique=True)
        logger.info("Ensured index %s on %s", index_name, collection.name)
    except PyMongoError as exc:
        logger.error("Provisioning of %s failed: %s", collection.name, exc)
        raise ProvisioningError(f"Unable to provision collection {collection.name!r}: {exc}") from exc


__all__ = [
    "DocumentCollection",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "ProvisioningError",
    "connect",
    "provision",
]
