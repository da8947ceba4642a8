"""Index engines for nearest neighbor search.

This package provides the engines a nearest-neighbor structure delegates to,
each selected by an index configuration rather than by type.

Available Algorithms:
- LinearIndex: Exhaustive scan with exact results, any distance
- KDTreeIndex: Randomized kd-forest for numeric vectors
- KDTreeSingleIndex: Single kd-tree with exact search for low dimensions
- KMeansIndex: Hierarchical k-means tree for numeric vectors
- HierarchicalClusteringIndex: Pivot-based clustering, any distance
- CompositeIndex: KD-forest and k-means tree searched together
"""

from .base import (
    BaseIndexEngine,
    IndexEngine,
    KNNResultSet,
    RadiusResultSet,
    ResultSet,
    SearchResult,
)
from .composite import CompositeIndex
from .hierarchical import HierarchicalClusteringIndex
from .kdtree import KDTreeIndex, KDTreeSingleIndex
from .kmeans import KMeansIndex
from .linear import LinearIndex
from .manager import IndexAdapter, check_compatible, create_index, engine_class
from .params import (
    CHECKS_UNLIMITED,
    BaseIndexParams,
    CompositeIndexParams,
    HierarchicalClusteringIndexParams,
    IndexAlgo,
    IndexParams,
    KDTreeIndexParams,
    KDTreeSingleIndexParams,
    KMeansIndexParams,
    LinearIndexParams,
    SearchParams,
    parse_index_params,
)

__all__ = [
    "CHECKS_UNLIMITED",
    "BaseIndexEngine",
    "BaseIndexParams",
    "CompositeIndex",
    "CompositeIndexParams",
    "HierarchicalClusteringIndex",
    "HierarchicalClusteringIndexParams",
    "IndexAdapter",
    "IndexAlgo",
    "IndexEngine",
    "IndexParams",
    "KDTreeIndex",
    "KDTreeIndexParams",
    "KDTreeSingleIndex",
    "KDTreeSingleIndexParams",
    "KMeansIndex",
    "KMeansIndexParams",
    "KNNResultSet",
    "LinearIndex",
    "LinearIndexParams",
    "RadiusResultSet",
    "ResultSet",
    "SearchParams",
    "SearchResult",
    "check_compatible",
    "create_index",
    "engine_class",
    "parse_index_params",
]
