"""
MongoDB adapter for the DocumentStore interface.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.errors import ExecutionTimeout, PyMongoError

from querylearn.errors import QueryTimeoutError, StoreError
from querylearn.store.base import DocumentStore

logger = logging.getLogger(__name__)


class MongoDocumentStore(DocumentStore):
    """
    DocumentStore backed by a pymongo database handle.

    Driver timeouts surface as QueryTimeoutError, every other driver error
    as StoreError.
    """

    def __init__(
        self,
        uri: str,
        database: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ):
        """
        Initialize the store.

        Args:
            uri: MongoDB connection string
            database: Database name (defaults to the one in the URI)
            client: Optional pre-built client, mainly for tests
        """
        self._owns_client = client is None
        self.client = client or MongoClient(uri)
        if database:
            self.db = self.client[database]
        else:
            self.db = self.client.get_default_database()
        logger.debug(f"Connected to MongoDB database: {self.db.name}")

    def _call(self, description: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ExecutionTimeout as e:
            raise QueryTimeoutError(f"{description} exceeded time budget: {e}") from e
        except PyMongoError as e:
            raise StoreError(f"{description} failed: {e}") from e

    def list_collections(self) -> List[str]:
        names = self._call("list_collections", self.db.list_collection_names)
        return sorted(n for n in names if not n.startswith("system."))

    def sample(self, collection: str, size: int, random: bool = False) -> List[Dict[str, Any]]:
        coll = self.db[collection]
        if random:
            return self._call(
                f"sample {collection}",
                lambda: list(coll.aggregate([{"$sample": {"size": size}}])),
            )
        return self._call(f"sample {collection}", lambda: list(coll.find().limit(size)))

    def count(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        max_time_ms: Optional[int] = None,
    ) -> int:
        kwargs = {"maxTimeMS": max_time_ms} if max_time_ms else {}
        return self._call(
            f"count {collection}",
            self.db[collection].count_documents,
            filter or {},
            **kwargs,
        )

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._call(f"find_one {collection}", self.db[collection].find_one, filter)

    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 0,
        max_time_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        def run():
            cursor = self.db[collection].find(filter or {})
            if limit:
                cursor = cursor.limit(limit)
            if max_time_ms:
                cursor = cursor.max_time_ms(max_time_ms)
            return list(cursor)

        return self._call(f"find {collection}", run)

    def aggregate(
        self,
        collection: str,
        pipeline: List[Dict[str, Any]],
        max_time_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        kwargs = {"maxTimeMS": max_time_ms} if max_time_ms else {}
        return self._call(
            f"aggregate {collection}",
            lambda: list(self.db[collection].aggregate(pipeline, allowDiskUse=True, **kwargs)),
        )

    def distinct(
        self,
        collection: str,
        field: str,
        filter: Optional[Dict[str, Any]] = None,
        max_time_ms: Optional[int] = None,
    ) -> List[Any]:
        kwargs = {"maxTimeMS": max_time_ms} if max_time_ms else {}
        return self._call(
            f"distinct {collection}.{field}",
            self.db[collection].distinct,
            field,
            filter or {},
            **kwargs,
        )

    def insert_many(self, collection: str, documents: List[Dict[str, Any]], drop: bool = False) -> int:
        """Insert documents, optionally dropping the collection first."""
        coll = self.db[collection]
        if drop:
            self._call(f"drop {collection}", coll.drop)
        if not documents:
            return 0
        result = self._call(f"insert {collection}", coll.insert_many, documents)
        return len(result.inserted_ids)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
