"""Domain-specific exceptions for the nearest-neighbor structure.

Every failure surfaced by the structure derives from ``NeighborsError`` and
carries a machine-readable ``code`` next to its human-readable message.
"""

from typing import Any


class NeighborsError(Exception):
    """Base class for all nearest-neighbor errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class EmptyStructureError(NeighborsError):
    """Raised when a single nearest element is requested from an empty structure."""

    def __init__(self) -> None:
        super().__init__(
            "No elements found in nearest neighbors data structure", "EMPTY_STRUCTURE"
        )


class InvalidConfigurationError(NeighborsError):
    """Raised when an index engine rejects its build configuration."""

    def __init__(self, algorithm: str, reason: str) -> None:
        message = f"Invalid configuration for index '{algorithm}': {reason}"
        super().__init__(message, "INVALID_CONFIGURATION")
        self.algorithm = algorithm
        self.reason = reason


class InvalidSearchParameterError(NeighborsError):
    """Raised when query parameters are invalid."""

    def __init__(self, parameter: str, value: Any, reason: str) -> None:
        message = f"Invalid search parameter '{parameter}' = {value}: {reason}"
        super().__init__(message, "INVALID_SEARCH_PARAMETER")
        self.parameter = parameter
        self.value = value
        self.reason = reason


class IndexEngineError(NeighborsError):
    """Raised when an index engine reports a failure."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Index engine failure: {reason}", "INDEX_ENGINE_ERROR")
        self.reason = reason


class DimensionMismatchError(NeighborsError):
    """Raised when an element's dimension doesn't match the structure dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        message = f"Element dimension mismatch: expected {expected}, got {actual}"
        super().__init__(message, "DIMENSION_MISMATCH")
        self.expected = expected
        self.actual = actual
