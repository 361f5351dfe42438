# core/errors.py

from typing import Optional


class VectorIndexError(Exception):
    """Base class for all vector index failures"""


class NotInitializedError(VectorIndexError):
    """Operation attempted before the index finished initializing"""

    def __init__(self, operation: str = "operation"):
        super().__init__(f"Vector index not initialized; cannot run {operation}")
        self.operation = operation


class DimensionMismatchError(VectorIndexError):
    """Vector length differs from the index dimension"""

    def __init__(self, expected: int, actual: int, path: Optional[str] = None):
        message = f"Vector dimension mismatch: expected {expected}, got {actual}"
        if path:
            message += f" (path: {path})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.path = path


class IndexNotFoundError(VectorIndexError):
    """No persisted index exists at the storage location"""


class CorruptStateError(VectorIndexError):
    """Persisted artifacts are missing a companion or disagree with each other"""


class IndexIOError(VectorIndexError):
    """Reading or writing a persisted artifact failed"""


class InvalidArgumentError(VectorIndexError, ValueError):
    """Argument outside its accepted range"""
