"""
Schema Profiler - Infers field dictionaries from sampled documents.

Walks every key of every sampled document (recursing into sub-documents and
into the first element of arrays of sub-documents) and accumulates one
FieldProfile per dotted path. Type disagreements between documents are kept
as alternative types instead of failing.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from bson import Binary, Decimal128, Int64, ObjectId

from querylearn.models import CollectionProfile, FieldProfile, FieldType, LearningConfig, SizeClass
from querylearn.store.base import DocumentStore

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 3
SAMPLE_DOCUMENTS_KEPT = 3
ID_SUFFIXES = ("Id", "_id")


def get_type(value: Any) -> FieldType:
    """Map a Python/BSON value to its FieldType tag."""
    if value is None:
        return FieldType.NULL
    # bool is a subclass of int
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float, Decimal, Decimal128, Int64)):
        return FieldType.NUMBER
    if isinstance(value, str):
        return FieldType.STRING
    if isinstance(value, (datetime, date)):
        return FieldType.DATE
    if isinstance(value, (list, tuple)):
        return FieldType.ARRAY
    if isinstance(value, ObjectId):
        return FieldType.OBJECT_ID
    if isinstance(value, (bytes, Binary)):
        return FieldType.BINARY
    if isinstance(value, dict):
        return FieldType.OBJECT
    return FieldType.UNKNOWN


def is_id_key(key: str) -> bool:
    return key == "_id" or key.endswith(ID_SUFFIXES)


def _example_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _add_field(
    fields: Dict[str, FieldProfile],
    path: str,
    key: str,
    value: Any,
) -> FieldProfile:
    value_type = get_type(value)
    profile = fields.get(path)

    if profile is None:
        profile = FieldProfile(
            path=path,
            type=value_type,
            nullable=value is None,
            is_id=is_id_key(key) or value_type == FieldType.OBJECT_ID,
            examples=[value] if value is not None else [],
        )
        fields[path] = profile
        return profile

    if value is None:
        profile.nullable = True
        return profile

    if len(profile.examples) < MAX_EXAMPLES:
        seen = {_example_key(ex) for ex in profile.examples}
        if _example_key(value) not in seen:
            profile.examples.append(value)

    if value_type != profile.type and value_type not in profile.alternative_types:
        profile.alternative_types.append(value_type)
    if value_type == FieldType.OBJECT_ID:
        profile.is_id = True

    return profile


def _walk(
    document: Dict[str, Any],
    prefix: str,
    fields: Dict[str, FieldProfile],
    ignored_keys: Iterable[str],
    owner: Optional[FieldProfile] = None,
) -> None:
    for key, value in document.items():
        if key in ignored_keys:
            continue

        path = f"{prefix}.{key}" if prefix else key
        profile = _add_field(fields, path, key, value)

        if owner is not None and path not in owner.nested_paths:
            owner.nested_paths.append(path)

        if isinstance(value, dict):
            _walk(value, path, fields, ignored_keys, owner=profile)
        elif isinstance(value, (list, tuple)) and value:
            first = value[0]
            profile.array_item_type = get_type(first)
            if isinstance(first, dict):
                _walk(first, f"{path}[]", fields, ignored_keys, owner=profile)


def extract_fields(
    samples: List[Dict[str, Any]],
    ignored_keys: Iterable[str] = ("__v",),
) -> Dict[str, FieldProfile]:
    """
    Build the field dictionary for a list of sample documents.

    Args:
        samples: Sampled documents
        ignored_keys: Bookkeeping keys to skip at any depth

    Returns:
        Dict of dotted path -> FieldProfile
    """
    ignored = frozenset(ignored_keys)
    fields: Dict[str, FieldProfile] = {}
    for sample in samples:
        if sample:
            _walk(sample, "", fields, ignored)
    return fields


class SchemaProfiler:
    """
    Profiles collections in a document store.

    Each collection gets a bounded sample plus a total count. A failure while
    profiling one collection is recorded on that collection's profile and
    never stops the others.
    """

    def __init__(
        self,
        store: DocumentStore,
        sample_size: int = 20,
        random_sample: bool = False,
        large_collection_threshold: int = 100000,
        large_collections: Optional[List[str]] = None,
        ignored_keys: Optional[List[str]] = None,
    ):
        """
        Initialize the profiler.

        Args:
            store: Document store to read from
            sample_size: Documents sampled per collection
            random_sample: Use a random sample instead of natural order
            large_collection_threshold: Count at or above which a collection is large
            large_collections: Collections declared large regardless of count
            ignored_keys: Bookkeeping keys to skip
        """
        self.store = store
        self.sample_size = sample_size
        self.random_sample = random_sample
        self.large_collection_threshold = large_collection_threshold
        self.large_collections = set(large_collections or [])
        self.ignored_keys = list(ignored_keys) if ignored_keys is not None else ["__v"]

    @classmethod
    def from_config(cls, store: DocumentStore, config: LearningConfig) -> SchemaProfiler:
        return cls(
            store,
            sample_size=config.profile_sample_size,
            random_sample=config.random_sample,
            large_collection_threshold=config.large_collection_threshold,
            large_collections=config.large_collections,
            ignored_keys=config.ignored_keys,
        )

    def classify(self, name: str, count: int) -> SizeClass:
        if name in self.large_collections or count >= self.large_collection_threshold:
            return SizeClass.LARGE
        return SizeClass.SMALL

    def profile_collection(self, name: str) -> CollectionProfile:
        """
        Profile a single collection.

        Args:
            name: Collection name

        Returns:
            CollectionProfile; on a store failure its ``error`` is set
        """
        try:
            samples = self.store.sample(name, self.sample_size, random=self.random_sample)

            if not samples:
                logger.info(f"No documents found in collection: {name}")
                return CollectionProfile(
                    name=name,
                    count=0,
                    size_class=self.classify(name, 0),
                )

            fields = extract_fields(samples, self.ignored_keys)
            count = self.store.count(name)

            logger.info(f"Analyzed {count} documents in {name}, found {len(fields)} fields")
            return CollectionProfile(
                name=name,
                fields=fields,
                count=count,
                sample_data=samples[:SAMPLE_DOCUMENTS_KEPT],
                size_class=self.classify(name, count),
            )

        except Exception as e:
            logger.warning(f"Error analyzing collection {name}: {e}")
            return CollectionProfile(name=name, error=str(e))

    def profile_all(self, names: Optional[List[str]] = None) -> Dict[str, CollectionProfile]:
        """
        Profile several collections in order.

        Args:
            names: Collections to profile; all store collections when None

        Returns:
            Dict of collection name -> CollectionProfile
        """
        if names is None:
            names = self.store.list_collections()

        logger.info(f"Starting schema analysis of {len(names)} collections")
        profiles: Dict[str, CollectionProfile] = {}
        for name in names:
            logger.debug(f"Analyzing collection: {name}")
            profiles[name] = self.profile_collection(name)

        errors = sum(1 for p in profiles.values() if p.error)
        if errors:
            logger.warning(f"{errors} collections failed to profile")
        return profiles
