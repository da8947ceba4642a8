"""Nearest-neighbor search over arbitrary elements with pluggable index engines."""

from .distance import Distance, DistanceFunction, FunctionDistance, L2Distance
from .domain import (
    DimensionMismatchError,
    EmptyStructureError,
    IndexEngineError,
    InvalidConfigurationError,
    InvalidSearchParameterError,
    NeighborsError,
)
from .indexes import (
    CHECKS_UNLIMITED,
    CompositeIndexParams,
    HierarchicalClusteringIndexParams,
    IndexParams,
    KDTreeIndexParams,
    KDTreeSingleIndexParams,
    KMeansIndexParams,
    LinearIndexParams,
    SearchParams,
)
from .rebuild import RebuildReason
from .storage import ArrayStore, ElementStore, ListStore
from .structure import NearestNeighbors, VectorNearestNeighbors

__version__ = "0.1.0"

__all__ = [
    "CHECKS_UNLIMITED",
    "ArrayStore",
    "CompositeIndexParams",
    "DimensionMismatchError",
    "Distance",
    "DistanceFunction",
    "ElementStore",
    "EmptyStructureError",
    "FunctionDistance",
    "HierarchicalClusteringIndexParams",
    "IndexEngineError",
    "IndexParams",
    "InvalidConfigurationError",
    "InvalidSearchParameterError",
    "KDTreeIndexParams",
    "KDTreeSingleIndexParams",
    "KMeansIndexParams",
    "L2Distance",
    "LinearIndexParams",
    "ListStore",
    "NearestNeighbors",
    "NeighborsError",
    "RebuildReason",
    "SearchParams",
    "VectorNearestNeighbors",
]
