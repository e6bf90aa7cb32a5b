"""
Document store access layer.

The learning pipeline depends only on DocumentStore; MongoDocumentStore is
the production adapter.
"""

from querylearn.store.base import DocumentStore
from querylearn.store.mongo import MongoDocumentStore

__all__ = [
    "DocumentStore",
    "MongoDocumentStore",
]
