"""Domain layer for the nearest-neighbor structure.

This package contains the domain-specific exceptions shared by the element
store, the index engines and the query layer.
"""

from .errors import (
    DimensionMismatchError,
    EmptyStructureError,
    IndexEngineError,
    InvalidConfigurationError,
    InvalidSearchParameterError,
    NeighborsError,
)

__all__ = [
    "NeighborsError",
    "EmptyStructureError",
    "InvalidConfigurationError",
    "InvalidSearchParameterError",
    "IndexEngineError",
    "DimensionMismatchError",
]
