"""
querylearn - Self-learning query catalog for MongoDB

Learns the shape of a document database and builds a catalog of query
templates paired with natural-language questions.

Features:
- Schema profiling from bounded document samples
- Relationship discovery with verification, cardinality and confidence
- Query pattern generation with bounded joins for large collections
- Time-budgeted validation with timeout fallback
- Word-overlap retrieval of learned patterns for free-text questions
"""

__version__ = "0.1.0"
__author__ = "DDG Team"

from querylearn.models import (
    CollectionProfile,
    FieldProfile,
    LearningConfig,
    LearningSnapshot,
    MultiLevelRelationship,
    Question,
    QueryPattern,
    Relationship,
    RunSummary,
)

from querylearn.store import DocumentStore, MongoDocumentStore
from querylearn.profiler import SchemaProfiler
from querylearn.discovery import RelationshipDiscoverer
from querylearn.patterns import QueryPatternGenerator
from querylearn.questions import QuestionGenerator
from querylearn.executor import QueryExecutor

from querylearn.learner import SelfLearningRun, run_self_learning
from querylearn.retrieval import KnowledgeBase

__all__ = [
    # Core models
    "CollectionProfile",
    "FieldProfile",
    "LearningConfig",
    "LearningSnapshot",
    "MultiLevelRelationship",
    "Question",
    "QueryPattern",
    "Relationship",
    "RunSummary",
    # Store
    "DocumentStore",
    "MongoDocumentStore",
    # Pipeline stages
    "SchemaProfiler",
    "RelationshipDiscoverer",
    "QueryPatternGenerator",
    "QuestionGenerator",
    "QueryExecutor",
    # Orchestration and retrieval
    "SelfLearningRun",
    "run_self_learning",
    "KnowledgeBase",
]
