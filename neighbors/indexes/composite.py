"""Composite index engine combining randomized kd-trees and a k-means tree."""

import logging
from collections.abc import Iterable
from typing import Any

import numpy as np

from .base import BaseIndexEngine, ResultSet
from .kdtree import KDTreeIndex
from .kmeans import KMeansIndex
from .params import SearchParams

logger = logging.getLogger(__name__)


class CompositeIndex(BaseIndexEngine):
    """Searches a kd-forest and a k-means tree into one result set.

    Both halves index the same buffer positions; points found by both are
    scored once.
    """

    requires_vectors = True

    def __init__(self, buffer: Any, count: int, distance: Any, params: Any) -> None:
        """Initialize both halves over the same buffer."""
        super().__init__(buffer, count, distance, params)
        self._kdtree = KDTreeIndex(buffer, count, distance, params.kdtree_params())
        self._kmeans = KMeansIndex(buffer, count, distance, params.kmeans_params())

    def _build_index(self, indices: np.ndarray) -> None:
        self._kdtree._build_index(indices)
        self._kmeans._build_index(indices)

    def _add_to_index(self, indices: Iterable[int]) -> None:
        indices = list(indices)
        self._kdtree._add_to_index(indices)
        self._kmeans._add_to_index(indices)

    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        self._kmeans._search(query, result, params)
        self._kdtree._search(query, result, params)

    def get_stats(self) -> dict[str, Any]:
        """Composite statistics covering both halves."""
        return {
            **super().get_stats(),
            "trees": len(self._kdtree._roots),
            "tree_depth": self._kdtree.get_tree_depth(),
            "leaves": self._kmeans.count_leaves(),
        }
