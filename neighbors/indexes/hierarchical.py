"""Hierarchical clustering index engine for arbitrary distance functions."""

import heapq
import itertools
import logging
from collections.abc import Iterable
from typing import Any

import numpy as np

from .base import BaseIndexEngine, ResultSet
from .params import SearchParams

logger = logging.getLogger(__name__)


class ClusterNode:
    """Tree node grouping the points closest to one pivot element."""

    def __init__(
        self,
        pivot: int,
        children: list["ClusterNode"] | None = None,
        indices: list[int] | None = None,
    ) -> None:
        """Initialize cluster node around buffer position ``pivot``."""
        self.pivot = pivot
        self.children = children
        self.indices = indices

    @property
    def is_leaf(self) -> bool:
        return self.indices is not None


class HierarchicalClusteringIndex(BaseIndexEngine):
    """Trees of clusters built around pivots picked among the points.

    Unlike the kd-tree and k-means engines this one never computes centers or
    coordinates: it only compares elements through the distance adapter, so
    it works with any element type. Several trees built from different random
    pivots are searched together. Pruning would rely on the triangle
    inequality, which caller distances don't promise, so an unlimited search
    visits every leaf.

    Time: Build O(T * N * B * log_B N) distance evaluations, Query O(checks)
    Best for: Opaque elements with an expensive distance function
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Initialize hierarchical clustering engine."""
        super().__init__(*args, **kwargs)
        self._roots: list[ClusterNode] = []

    def _build_index(self, indices: np.ndarray) -> None:
        """Build every tree from stored elements."""
        rng = np.random.default_rng(self._params.random_seed)
        if len(indices) == 0:
            self._roots = []
            return

        roots = []
        for _ in range(self._params.trees):
            pivot = int(indices[rng.integers(0, len(indices))])
            roots.append(self._build_node(pivot, indices, rng))
        self._roots = roots

        logger.debug(
            f"Built HierarchicalClusteringIndex with {len(self._roots)} trees "
            f"over {len(indices)} points"
        )

    def _build_node(
        self, pivot: int, indices: np.ndarray, rng: np.random.Generator
    ) -> ClusterNode:
        """Recursively split indices around freshly chosen pivots."""
        if len(indices) <= self._params.leaf_max_size:
            return ClusterNode(pivot, indices=[int(i) for i in indices])

        pivots = self._choose_pivots(indices, rng)
        # Distance from every pivot to every point, shape (pivots, points)
        distances = np.vstack(
            [
                self._distance.pairwise(self._buffer[p], self._buffer, indices)
                for p in pivots
            ]
        )
        assignments = np.argmin(distances, axis=0)

        children = []
        for cluster_id, child_pivot in enumerate(pivots):
            members = indices[assignments == cluster_id]
            if len(members) == len(indices):
                # Every point collapsed onto one pivot
                return ClusterNode(pivot, indices=[int(i) for i in indices])
            if len(members) > 0:
                children.append(self._build_node(child_pivot, members, rng))

        return ClusterNode(pivot, children=children)

    def _choose_pivots(self, indices: np.ndarray, rng: np.random.Generator) -> list[int]:
        """Pick up to ``branching`` distinct pivot positions."""
        n_pivots = min(self._params.branching, len(indices))

        if self._params.centers_init == "gonzales":
            # Farthest-first traversal
            pivots = [int(indices[rng.integers(0, len(indices))])]
            closest = self._distance.pairwise(self._buffer[pivots[0]], self._buffer, indices)
            while len(pivots) < n_pivots:
                candidate = int(indices[int(np.argmax(closest))])
                if closest.max() <= 0.0:
                    break
                pivots.append(candidate)
                closest = np.minimum(
                    closest,
                    self._distance.pairwise(self._buffer[candidate], self._buffer, indices),
                )
            return pivots

        return [int(i) for i in rng.choice(indices, n_pivots, replace=False)]

    def _add_to_index(self, indices: Iterable[int]) -> None:
        """Descend each new point to the leaf of its nearest pivots."""
        indices = list(indices)
        if not self._roots and indices:
            first = indices.pop(0)
            roots = [
                ClusterNode(first, indices=[first]) for _ in range(self._params.trees)
            ]
        else:
            roots = self._roots

        # Locate every leaf before appending to any
        placements = [
            (index, self._find_leaf(root, self._buffer[index]))
            for index in indices
            for root in roots
        ]

        self._roots = roots
        for index, leaf in placements:
            leaf.indices.append(index)

    def _find_leaf(self, root: ClusterNode, element: Any) -> ClusterNode:
        node = root
        while not node.is_leaf:
            node = min(
                node.children,
                key=lambda child: self._distance(element, self._buffer[child.pivot]),
            )
        return node

    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        """Best-bin-first search ordered by distance to pivots."""
        counter = itertools.count()
        branches = [(0.0, next(counter), root) for root in self._roots]
        heapq.heapify(branches)
        checks = 0

        while branches:
            _, _, node = heapq.heappop(branches)
            if self._budget_spent(checks, params, result):
                break

            while not node.is_leaf:
                pivots = [child.pivot for child in node.children]
                distances = self._distance.pairwise(query, self._buffer, pivots)
                closest = int(np.argmin(distances))
                for i, child in enumerate(node.children):
                    if i != closest:
                        heapq.heappush(branches, (float(distances[i]), next(counter), child))
                node = node.children[closest]

            checks += self._score(query, node.indices, result)

    def get_stats(self) -> dict[str, Any]:
        """Hierarchical clustering statistics."""
        return {
            **super().get_stats(),
            "trees": len(self._roots),
            "branching": self._params.branching,
        }
