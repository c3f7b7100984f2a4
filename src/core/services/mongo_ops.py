"""
MongoDB operations — thin pass-through over pymongo.

Used by the ``db`` CLI group and the ``/api/db`` routes once MongoDB
is installed and running.  The installation engine never calls this
module.

Lock discipline: ``connect()`` / ``disconnect()`` take the lock;
every other operation reads a snapshot of the client handle without
it, so a slow query never blocks a disconnect.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE = "app_database"
_SERVER_SELECTION_TIMEOUT_MS = 5000


class DatabaseError(Exception):
    """A database operation failed; the message is user-facing."""


class MongoConnection:
    """Owns the single client handle for one database."""

    def __init__(
        self,
        database_name: str = DEFAULT_DATABASE,
        *,
        client_factory=MongoClient,
    ) -> None:
        self.database_name = database_name
        self._client_factory = client_factory
        self._client: MongoClient | None = None
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self, uri: str = DEFAULT_URI) -> None:
        """Open the client and verify it with ``ping`` (no-op if connected)."""
        with self._lock:
            if self._client is not None:
                return
            try:
                client = self._client_factory(
                    uri, serverSelectionTimeoutMS=_SERVER_SELECTION_TIMEOUT_MS,
                )
            except (PyMongoError, ValueError) as e:
                raise DatabaseError(f"Failed to create MongoDB client: {e}") from e
            try:
                client.admin.command("ping")
            except PyMongoError as e:
                client.close()
                raise DatabaseError(f"Failed to connect to MongoDB: {e}") from e
            self._client = client
            logger.info("Connected to MongoDB (database=%s)", self.database_name)

    def auto_connect(self, uri: str = DEFAULT_URI) -> bool:
        """Best-effort connect at startup; a failure is logged, not raised."""
        try:
            self.connect(uri)
        except DatabaseError as e:
            logger.warning("MongoDB auto-connect failed: %s", e)
            return False
        return True

    def disconnect(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.info("Disconnected from MongoDB")

    def database(self) -> Database:
        client = self._client
        if client is None:
            raise DatabaseError("Database connection not initialized. Call connect() first.")
        return client[self.database_name]


# ── CRUD ────────────────────────────────────────────────────────


def _object_id(document_id: str) -> ObjectId:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError) as e:
        raise DatabaseError(f"Invalid ObjectId: {e}") from e


def insert_document(conn: MongoConnection, collection: str, document: dict[str, Any]) -> str:
    """Insert one document; returns its id as hex."""
    try:
        result = conn.database()[collection].insert_one(dict(document))
    except PyMongoError as e:
        raise DatabaseError(f"Failed to insert document: {e}") from e
    if result.inserted_id is None:
        raise DatabaseError("Failed to get inserted document ID")
    return str(result.inserted_id)


def find_documents(
    conn: MongoConnection,
    collection: str,
    query: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """All documents matching ``query`` (ids as hex strings)."""
    try:
        docs = list(conn.database()[collection].find(query or {}))
    except PyMongoError as e:
        raise DatabaseError(f"Failed to find documents: {e}") from e
    for doc in docs:
        if isinstance(doc.get("_id"), ObjectId):
            doc["_id"] = str(doc["_id"])
    return docs


def update_document(
    conn: MongoConnection,
    collection: str,
    document_id: str,
    update: dict[str, Any],
) -> bool:
    """``$set`` fields on one document; True if it was modified."""
    oid = _object_id(document_id)
    try:
        result = conn.database()[collection].update_one({"_id": oid}, {"$set": update})
    except PyMongoError as e:
        raise DatabaseError(f"Failed to update document: {e}") from e
    return result.modified_count > 0


def delete_document(conn: MongoConnection, collection: str, document_id: str) -> bool:
    oid = _object_id(document_id)
    try:
        result = conn.database()[collection].delete_one({"_id": oid})
    except PyMongoError as e:
        raise DatabaseError(f"Failed to delete document: {e}") from e
    return result.deleted_count > 0


def list_collections(conn: MongoConnection) -> list[str]:
    try:
        return sorted(conn.database().list_collection_names())
    except PyMongoError as e:
        raise DatabaseError(f"Failed to list collections: {e}") from e
