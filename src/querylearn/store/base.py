"""
Abstract document store interface.

The learning pipeline only ever talks to the database through this narrow
surface: sample documents, count, look up one document, run a filter, run a
pipeline, list distinct values. Every call that can be expensive accepts a
per-call time budget in milliseconds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    @abstractmethod
    def list_collections(self) -> List[str]:
        """Return the names of all user collections."""

    @abstractmethod
    def sample(self, collection: str, size: int, random: bool = False) -> List[Dict[str, Any]]:
        """
        Draw up to ``size`` documents from a collection.

        Args:
            collection: Collection name
            size: Maximum number of documents
            random: Use a random sample instead of natural order

        Returns:
            List of documents
        """

    @abstractmethod
    def count(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        max_time_ms: Optional[int] = None,
    ) -> int:
        """Count documents matching a filter."""

    @abstractmethod
    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first document matching a filter, or None."""

    @abstractmethod
    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 0,
        max_time_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run a filter query.

        Args:
            collection: Collection name
            filter: Query filter document
            limit: Maximum documents to return, 0 for no limit
            max_time_ms: Time budget for the call

        Raises:
            QueryTimeoutError: If the budget is exceeded
            StoreError: For any other store failure
        """

    @abstractmethod
    def aggregate(
        self,
        collection: str,
        pipeline: List[Dict[str, Any]],
        max_time_ms: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run an aggregation pipeline.

        Raises:
            QueryTimeoutError: If the budget is exceeded
            StoreError: For any other store failure
        """

    @abstractmethod
    def distinct(
        self,
        collection: str,
        field: str,
        filter: Optional[Dict[str, Any]] = None,
        max_time_ms: Optional[int] = None,
    ) -> List[Any]:
        """Return distinct values of a field."""

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self) -> DocumentStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
