"""Document store access for visit records.

Production traffic goes through :class:`MongoVisitStore` (Motor); the
in-memory store backs local development and the test-suite.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Mapping

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import ConfigurationError as MongoConfigurationError
from pymongo.errors import PyMongoError

from shared.config.settings import ConfigurationError, MongoSettings
from shared.observability.logger import get_logger

__all__ = [
    "DOCUMENT_STORE_SOURCE",
    "DocumentStoreError",
    "InMemoryVisitStore",
    "MongoVisitStore",
    "VisitDocumentStore",
    "is_native_identifier",
]

logger = get_logger(__name__)

DOCUMENT_STORE_SOURCE = "document-store"


class DocumentStoreError(RuntimeError):
    """Raised when the document store rejects or cannot serve an operation."""

    def __init__(self, message: str, *, operation: str, collection: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.collection = collection


def is_native_identifier(value: str) -> bool:
    """Return whether ``value`` has the shape of a stored document id."""

    return ObjectId.is_valid(value)


class VisitDocumentStore(ABC):
    """Operations the visit service needs from the primary database."""

    name = DOCUMENT_STORE_SOURCE

    @abstractmethod
    async def find_visits(self) -> list[dict[str, Any]]:
        """Return every raw visit document.

        Date filtering happens after normalization, since stored dates may be
        datetimes, padded strings or keyed under any accepted alias.
        """

    @abstractmethod
    async def insert_visit(self, document: Mapping[str, Any]) -> str:
        """Store ``document`` and return its native identifier."""

    @abstractmethod
    async def delete_visit(self, document_id: str) -> bool:
        """Delete one document, returning ``False`` when nothing matched."""

    async def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


class MongoVisitStore(VisitDocumentStore):
    """Visit documents stored in a single MongoDB collection."""

    def __init__(
        self,
        client: AsyncIOMotorClient,
        *,
        collection: str,
        database: str | None = None,
    ) -> None:
        self._client = client
        try:
            db = client[database] if database else client.get_default_database()
        except MongoConfigurationError as exc:
            raise ConfigurationError(
                "MongoDB database name must be part of MONGODB_URI or set via MONGODB_DATABASE."
            ) from exc
        self._collection_name = collection
        self._collection: AsyncIOMotorCollection = db[collection]

    @classmethod
    def from_settings(cls, settings: MongoSettings) -> "MongoVisitStore":
        if not settings.uri:
            raise ConfigurationError("MONGODB_URI environment variable not set.")
        client = AsyncIOMotorClient(
            settings.uri,
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
            retryReads=True,
        )
        logger.info(
            "document_store_configured",
            database=settings.database,
            collection=settings.collection,
        )
        return cls(client, collection=settings.collection, database=settings.database)

    def _wrap(self, operation: str, exc: PyMongoError) -> DocumentStoreError:
        logger.warning(
            "document_store_operation_failed",
            operation=operation,
            collection=self._collection_name,
            error=exc.__class__.__name__,
        )
        return DocumentStoreError(
            f"MongoDB {operation} on '{self._collection_name}' failed: {exc.__class__.__name__}.",
            operation=operation,
            collection=self._collection_name,
        )

    async def find_visits(self) -> list[dict[str, Any]]:
        try:
            cursor = self._collection.find({})
            documents = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise self._wrap("find", exc) from exc
        logger.debug("document_store_find", count=len(documents))
        return documents

    async def insert_visit(self, document: Mapping[str, Any]) -> str:
        try:
            result = await self._collection.insert_one(dict(document))
        except PyMongoError as exc:
            raise self._wrap("insert", exc) from exc
        return str(result.inserted_id)

    async def delete_visit(self, document_id: str) -> bool:
        try:
            result = await self._collection.delete_one({"_id": ObjectId(document_id)})
        except PyMongoError as exc:
            raise self._wrap("delete", exc) from exc
        return result.deleted_count > 0

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("document_store_ping_failed", error=exc.__class__.__name__)
            return False
        return True

    def close(self) -> None:
        self._client.close()


class InMemoryVisitStore(VisitDocumentStore):
    """Document store kept in process memory, keyed by :class:`ObjectId`."""

    def __init__(self, documents: list[Mapping[str, Any]] | None = None) -> None:
        self._documents: list[dict[str, Any]] = []
        for document in documents or []:
            stored = dict(document)
            stored.setdefault("_id", ObjectId())
            self._documents.append(stored)

    @property
    def documents(self) -> list[dict[str, Any]]:
        return deepcopy(self._documents)

    async def find_visits(self) -> list[dict[str, Any]]:
        return deepcopy(self._documents)

    async def insert_visit(self, document: Mapping[str, Any]) -> str:
        stored = dict(document)
        stored["_id"] = ObjectId()
        self._documents.append(stored)
        return str(stored["_id"])

    async def delete_visit(self, document_id: str) -> bool:
        for position, document in enumerate(self._documents):
            if str(document["_id"]) == document_id:
                del self._documents[position]
                return True
        return False
