"""KD-Tree index engines."""

import heapq
import itertools
import logging
from collections.abc import Iterable
from typing import Any, Optional

import numpy as np

from .base import BaseIndexEngine, ResultSet
from .params import SearchParams

logger = logging.getLogger(__name__)

# Points per leaf in randomized trees
_LEAF_SIZE = 8
# Rows used to estimate per-dimension variance
_SAMPLE_SIZE = 100
# Highest-variance dimensions a randomized split picks from
_RAND_DIMS = 5


class KDNode:
    """KD-Tree node: either a split on one dimension or a leaf of positions."""

    def __init__(
        self,
        split_dim: int = -1,
        split_value: float = 0.0,
        left: Optional["KDNode"] = None,
        right: Optional["KDNode"] = None,
        indices: list[int] | None = None,
    ) -> None:
        """Initialize KD-Tree node."""
        self.split_dim = split_dim
        self.split_value = split_value
        self.left = left
        self.right = right
        self.indices = indices

    @property
    def is_leaf(self) -> bool:
        return self.indices is not None


class KDTreeIndex(BaseIndexEngine):
    """Forest of randomized KD-Trees searched with a shared priority queue.

    Each tree splits at the median of a dimension drawn at random from the
    few dimensions with the highest variance, so the trees partition space
    differently and an approximate search bounded by ``checks`` explores
    complementary cells. With unlimited checks the search is exact.

    Time: Build O(T * N log N), Query O(checks) approximate, Space O(T * N)
    Best for: Low-medium dimensions, tunable accuracy
    """

    requires_vectors = True
    # Approximate searches stop after params.checks scored points
    _bounded_by_checks = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Initialize KD-Tree engine."""
        super().__init__(*args, **kwargs)
        self._roots: list[KDNode] = []

    def _tree_count(self) -> int:
        return self._params.trees

    def _leaf_size(self) -> int:
        return _LEAF_SIZE

    def _seed(self) -> int:
        return self._params.random_seed

    def _build_index(self, indices: np.ndarray) -> None:
        """Build every tree from stored vectors."""
        rng = np.random.default_rng(self._seed())
        self._roots = [
            self._build_tree(indices, rng) for _ in range(self._tree_count())
        ]

        logger.debug(
            f"Built {self.__class__.__name__} with {len(self._roots)} trees "
            f"over {len(indices)} points"
        )

    def _build_tree(self, indices: np.ndarray, rng: np.random.Generator) -> KDNode:
        """Recursively build one KD-Tree."""
        if len(indices) <= self._leaf_size():
            return KDNode(indices=[int(i) for i in indices])

        points = self._buffer[indices]
        split_dim = self._choose_split_dim(points, rng)
        if split_dim is None:
            # All points coincide
            return KDNode(indices=[int(i) for i in indices])

        # Split at the median so each side gets half the points
        order = np.argsort(points[:, split_dim], kind="stable")
        half = len(indices) // 2
        split_value = float(points[order[half], split_dim])

        return KDNode(
            split_dim,
            split_value,
            left=self._build_tree(indices[order[:half]], rng),
            right=self._build_tree(indices[order[half:]], rng),
        )

    def _choose_split_dim(
        self, points: np.ndarray, rng: np.random.Generator
    ) -> int | None:
        """Pick a random dimension among the highest-variance ones."""
        variance = points[:_SAMPLE_SIZE].var(axis=0)
        if variance.max() <= 0.0:
            variance = points.var(axis=0)
            if variance.max() <= 0.0:
                return None

        top = np.argsort(variance)[::-1][:_RAND_DIMS]
        top = top[variance[top] > 0.0]
        return int(rng.choice(top))

    def _add_to_index(self, indices: Iterable[int]) -> None:
        """Drop each new point into the matching leaf of every tree."""
        for index in indices:
            point = self._buffer[index]
            for root in self._roots:
                node = root
                while not node.is_leaf:
                    if point[node.split_dim] <= node.split_value:
                        node = node.left
                    else:
                        node = node.right
                node.indices.append(index)

    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        """Best-bin-first search over all trees."""
        counter = itertools.count()
        branches = [(0.0, next(counter), root) for root in self._roots]
        heapq.heapify(branches)

        eps_factor = 1.0 + params.eps
        checks = 0

        while branches:
            bound, _, node = heapq.heappop(branches)

            # Remaining branches can't hold anything closer
            if bound * eps_factor > result.worst_distance:
                break
            if self._bounded_by_checks and self._budget_spent(checks, params, result):
                break

            while not node.is_leaf:
                diff = query[node.split_dim] - node.split_value
                if diff < 0:
                    near, far = node.left, node.right
                else:
                    near, far = node.right, node.left

                far_bound = max(bound, abs(float(diff)))
                if far_bound * eps_factor <= result.worst_distance:
                    heapq.heappush(branches, (far_bound, next(counter), far))
                node = near

            checks += self._score(query, node.indices, result)

    def get_tree_depth(self) -> int:
        """Maximum depth over all trees."""

        def get_depth(node: KDNode | None) -> int:
            if node is None:
                return 0
            if node.is_leaf:
                return 1
            return 1 + max(get_depth(node.left), get_depth(node.right))

        return max((get_depth(root) for root in self._roots), default=0)

    def get_stats(self) -> dict[str, Any]:
        """KD-Tree statistics."""
        return {
            **super().get_stats(),
            "trees": len(self._roots),
            "tree_depth": self.get_tree_depth(),
        }


class KDTreeSingleIndex(KDTreeIndex):
    """Single KD-Tree with exact search.

    Splits on the dimension with the widest spread. The search ignores
    ``checks``; only ``eps`` relaxes it.

    Best for: Low dimensions (D <= 10), exact results required
    """

    _bounded_by_checks = False

    def _tree_count(self) -> int:
        return 1

    def _leaf_size(self) -> int:
        return self._params.leaf_max_size

    def _seed(self) -> int:
        return 0

    def _choose_split_dim(
        self, points: np.ndarray, rng: np.random.Generator
    ) -> int | None:
        """Pick the dimension with the widest spread."""
        spread = np.ptp(points, axis=0)
        if spread.max() <= 0.0:
            return None
        return int(np.argmax(spread))
