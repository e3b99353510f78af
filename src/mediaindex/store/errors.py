"""Index store errors."""


class StoreError(Exception):
    """Base exception for index store operations."""


class StoreSchemaError(StoreError):
    """Raised when the database exists but does not hold a readable index."""
