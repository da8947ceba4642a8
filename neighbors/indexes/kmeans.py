"""Hierarchical k-means tree index engine.

This module implements a tree of nested k-means clusterings. Every internal
node partitions its points into ``branching`` clusters; recursion stops when
a node holds fewer points than that. Queries descend towards the closest
cluster centers and keep the other branches in a priority queue, so an
approximate search bounded by ``checks`` examines only a few leaves while an
unlimited search prunes branches by cluster radius and stays exact.
"""

import heapq
import itertools
import logging
from collections.abc import Iterable
from typing import Any

import numpy as np

from .base import BaseIndexEngine, ResultSet
from .params import SearchParams

logger = logging.getLogger(__name__)


class KMeansNode:
    """Cluster node with its center, covering radius and mean squared spread."""

    def __init__(
        self,
        center: np.ndarray,
        radius: float,
        variance: float,
        children: list["KMeansNode"] | None = None,
        indices: list[int] | None = None,
    ) -> None:
        """Initialize cluster node."""
        self.center = center
        self.radius = radius
        self.variance = variance
        self.children = children
        self.indices = indices

    @property
    def is_leaf(self) -> bool:
        return self.indices is not None


class KMeansIndex(BaseIndexEngine):
    """Hierarchical k-means tree index.

    Time Complexity:
    - Build: O(N * B * I * log_B N) - B branching, I k-means iterations
    - Query: O(checks + B * log_B N) approximate
    - Add: O(B * log_B N) - descend to nearest leaf

    Characteristics:
    - Good performance in high dimensions
    - Approximate results (tunable via checks and cb_index)
    - Exact results with unlimited checks
    """

    requires_vectors = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Initialize the k-means tree engine."""
        super().__init__(*args, **kwargs)
        self._root: KMeansNode | None = None
        self._rng = np.random.default_rng(self._params.random_seed)

    def _build_index(self, indices: np.ndarray) -> None:
        """Build the tree by recursive k-means clustering."""
        self._rng = np.random.default_rng(self._params.random_seed)
        self._root = self._build_node(indices) if len(indices) else None

        logger.debug(
            f"Built KMeansIndex over {len(indices)} points: "
            f"{self.count_leaves()} leaves, depth {self.get_tree_depth()}"
        )

    def _build_node(self, indices: np.ndarray) -> KMeansNode:
        """Recursively cluster indices into a subtree."""
        points = self._buffer[indices]
        center = points.mean(axis=0)
        spread = np.linalg.norm(points - center, axis=1)
        node = KMeansNode(center, float(spread.max()), float(np.mean(spread**2)))

        branching = self._params.branching
        if len(indices) < branching:
            node.indices = [int(i) for i in indices]
            return node

        assignments = self._kmeans_clustering(points, branching)
        clusters = [indices[assignments == c] for c in range(branching)]
        clusters = [cluster for cluster in clusters if len(cluster) > 0]

        if len(clusters) < 2:
            # Points can't be separated (duplicates)
            node.indices = [int(i) for i in indices]
            return node

        node.children = [self._build_node(cluster) for cluster in clusters]
        return node

    def _kmeans_clustering(self, points: np.ndarray, n_clusters: int) -> np.ndarray:
        """Perform k-means clustering, returns the cluster of every point."""
        n_points = len(points)

        if self._params.centers_init == "kmeanspp":
            centroids = self._init_kmeans_pp(points, n_clusters)
        else:
            centroid_indices = self._rng.choice(n_points, n_clusters, replace=False)
            centroids = points[centroid_indices].copy()

        if self._params.iterations < 0:
            rounds: Iterable[int] = itertools.count()
        else:
            rounds = range(self._params.iterations)

        assignments = self._assign(points, centroids)
        for iteration in rounds:
            # Update centroids, keeping the old one for empty clusters
            new_centroids = centroids.copy()
            for cluster_id in range(n_clusters):
                members = points[assignments == cluster_id]
                if len(members) > 0:
                    new_centroids[cluster_id] = members.mean(axis=0)
            centroids = new_centroids

            new_assignments = self._assign(points, centroids)
            if np.array_equal(new_assignments, assignments):
                logger.debug(f"K-means converged after {iteration + 1} iterations")
                break
            assignments = new_assignments

        return assignments

    def _init_kmeans_pp(self, points: np.ndarray, n_clusters: int) -> np.ndarray:
        """K-means++ seeding."""
        n_points = len(points)
        centroids = np.empty((n_clusters, points.shape[1]), dtype=points.dtype)
        centroids[0] = points[int(self._rng.integers(0, n_points))]

        dist_sq = np.sum((points - centroids[0]) ** 2, axis=1)
        for i in range(1, n_clusters):
            total = float(dist_sq.sum())
            if total <= 0.0:
                centroids[i] = points[int(self._rng.integers(0, n_points))]
                continue
            idx = int(self._rng.choice(n_points, p=dist_sq / total))
            centroids[i] = points[idx]
            dist_sq = np.minimum(dist_sq, np.sum((points - centroids[i]) ** 2, axis=1))

        return centroids

    @staticmethod
    def _assign(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Nearest centroid for every point."""
        # dist^2 = ||x||^2 + ||c||^2 - 2 x.c
        x_norm = np.sum(points * points, axis=1, keepdims=True)
        c_norm = np.sum(centroids * centroids, axis=1)[None, :]
        dist_sq = x_norm + c_norm - 2.0 * (points @ centroids.T)
        return np.argmin(dist_sq, axis=1)

    def _add_to_index(self, indices: Iterable[int]) -> None:
        """Descend each new point to its nearest leaf, widening radii on the way."""
        for index in indices:
            point = self._buffer[index]
            if self._root is None:
                self._root = self._build_node(np.array([index], dtype=np.intp))
                continue

            node = self._root
            while True:
                node.radius = max(node.radius, float(np.linalg.norm(point - node.center)))
                if node.is_leaf:
                    node.indices.append(index)
                    break
                node = min(
                    node.children,
                    key=lambda child: float(np.linalg.norm(point - child.center)),
                )

    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        """Best-bin-first search over the cluster tree."""
        if self._root is None:
            return

        counter = itertools.count()
        branches: list[tuple[float, float, int, KMeansNode]] = [
            (0.0, 0.0, next(counter), self._root)
        ]
        eps_factor = 1.0 + params.eps
        checks = 0

        while branches:
            _, bound, _, node = heapq.heappop(branches)

            if bound * eps_factor > result.worst_distance:
                continue
            if self._budget_spent(checks, params, result):
                break

            while not node.is_leaf:
                nearest = None
                for child in node.children:
                    distance = float(np.linalg.norm(query - child.center))
                    child_bound = max(bound, distance - child.radius)
                    priority = distance - self._params.cb_index * child.variance
                    entry = (priority, child_bound, next(counter), child)
                    if nearest is None or entry < nearest:
                        if nearest is not None:
                            self._push(branches, nearest, eps_factor, result)
                        nearest = entry
                    else:
                        self._push(branches, entry, eps_factor, result)
                _, bound, _, node = nearest

            checks += self._score(query, node.indices, result)

    @staticmethod
    def _push(
        branches: list, entry: tuple, eps_factor: float, result: ResultSet
    ) -> None:
        if entry[1] * eps_factor <= result.worst_distance:
            heapq.heappush(branches, entry)

    def count_leaves(self) -> int:
        """Number of leaf clusters."""

        def count(node: KMeansNode | None) -> int:
            if node is None:
                return 0
            if node.is_leaf:
                return 1
            return sum(count(child) for child in node.children)

        return count(self._root)

    def get_tree_depth(self) -> int:
        """Maximum depth of the cluster tree."""

        def get_depth(node: KMeansNode | None) -> int:
            if node is None:
                return 0
            if node.is_leaf:
                return 1
            return 1 + max(get_depth(child) for child in node.children)

        return get_depth(self._root)

    def get_stats(self) -> dict[str, Any]:
        """K-means tree statistics."""
        return {
            **super().get_stats(),
            "branching": self._params.branching,
            "leaves": self.count_leaves(),
            "tree_depth": self.get_tree_depth(),
        }
