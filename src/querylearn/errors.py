"""
Exception hierarchy for querylearn.

Only persistence and configuration errors are meant to escape a learning run;
the others are caught at their scope and recorded as data.
"""


class QueryLearnError(Exception):
    """Base class for all querylearn errors."""


class ConfigError(QueryLearnError):
    """Invalid or unreadable configuration."""


class StoreError(QueryLearnError):
    """A document store call failed."""


class QueryTimeoutError(StoreError):
    """A document store call exceeded its time budget."""


class MissingParameterError(QueryLearnError):
    """A query template still has an unresolved parameter placeholder."""

    def __init__(self, name: str):
        super().__init__(f"Missing value for parameter: {name}")
        self.name = name


class PersistenceError(QueryLearnError):
    """Writing or publishing the artifact snapshot failed."""
