"""Nearest-neighbor structures delegating search to pluggable index engines."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

import numpy as np
from pydantic import ValidationError

from neighbors.distance import Distance, DistanceFunction, FunctionDistance, L2Distance
from neighbors.domain import (
    EmptyStructureError,
    InvalidSearchParameterError,
)
from neighbors.indexes import (
    IndexAdapter,
    IndexParams,
    SearchParams,
    check_compatible,
    parse_index_params,
)
from neighbors.rebuild import RebuildReason, reallocation_capacity, rebuild_store
from neighbors.storage import ArrayStore, ElementStore, ListStore

logger = logging.getLogger(__name__)


class NearestNeighbors:
    """Nearest-neighbor structure over opaque elements and a caller distance.

    The structure owns every inserted element in an element store and keeps
    one index engine, chosen by ``index_params``, built over that store.
    Insertions extend the engine in place until the store must grow; growth,
    a verified removal, a new distance function or a new index configuration
    rebuild store and engine together.

    Instances are not thread-safe: concurrent calls on one instance must be
    serialized by the caller, and the distance function must not query the
    structure it is installed in.
    """

    def __init__(
        self,
        distance: DistanceFunction,
        index_params: IndexParams | Mapping[str, Any] | str | None = None,
        search_params: SearchParams | Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize an empty structure."""
        self._distance = self._make_distance(distance)
        self._index_params = parse_index_params(index_params)
        check_compatible(self._index_params, self._distance)
        self._search_params = _coerce_search_params(search_params)

        self._store = self._make_store()
        self._index: IndexAdapter | None = None
        self._rebuilds: Counter[RebuildReason] = Counter()

        logger.debug(
            f"Initialized {self.__class__.__name__} with "
            f"algorithm={self._index_params.algorithm}"
        )

    def _make_distance(self, distance: DistanceFunction) -> Distance:
        return FunctionDistance(distance)

    def _make_store(self) -> ElementStore:
        return ListStore()

    def _export(self, element: Any) -> Any:
        """Convert an engine-held element into the value handed to callers."""
        return element

    def _equal(self, stored: Any, element: Any) -> bool:
        return bool(stored == element)

    # Configuration

    @property
    def index_params(self) -> IndexParams:
        """Index configuration of the current engine."""
        return self._index_params

    @index_params.setter
    def index_params(self, params: IndexParams | Mapping[str, Any] | str) -> None:
        self.set_index_params(params)

    def set_index_params(self, params: IndexParams | Mapping[str, Any] | str) -> None:
        """Switch engine configuration, rebuilding over the stored elements."""
        params = parse_index_params(params)
        check_compatible(params, self._distance)
        self._rebuild(RebuildReason.CONFIGURATION_CHANGED, index_params=params)

    @property
    def search_params(self) -> SearchParams:
        """Query-time configuration used unless a call asks for exact search."""
        return self._search_params

    @search_params.setter
    def search_params(self, params: SearchParams | Mapping[str, Any]) -> None:
        self._search_params = _coerce_search_params(params)

    def set_distance_function(self, distance: DistanceFunction) -> None:
        """Replace the distance function, rebuilding over the stored elements."""
        self._rebuild(
            RebuildReason.DISTANCE_CHANGED, distance=self._make_distance(distance)
        )

    @property
    def dimension(self) -> int:
        """Scalar components per element exposed to engines."""
        return 1

    # Size

    @property
    def size(self) -> int:
        """Number of stored elements, as reported by the engine."""
        return self._index.size if self._index is not None else 0

    def __len__(self) -> int:
        return self.size

    @property
    def capacity(self) -> int:
        """Allocated element slots."""
        return self._store.capacity

    @property
    def rebuild_count(self) -> int:
        """Total number of full rebuilds so far."""
        return sum(self._rebuilds.values())

    @property
    def rebuild_counts(self) -> dict[RebuildReason, int]:
        """Number of full rebuilds per triggering event."""
        return dict(self._rebuilds)

    # Mutation

    def add(self, element: Any) -> None:
        """Insert one element."""
        item = self._distance.prepare(element)

        capacity = reallocation_capacity(self._store, self._index, 1)
        if capacity is not None:
            self._rebuild(RebuildReason.REALLOCATION, capacity=capacity)

        start = self._store.size
        self._store.append(item)
        self._extend_index(start)

    def add_many(self, elements: Iterable[Any]) -> None:
        """Insert many elements as one batch."""
        items = [self._distance.prepare(element) for element in elements]
        if not items:
            return

        capacity = reallocation_capacity(self._store, self._index, len(items))
        if capacity is not None:
            self._rebuild(RebuildReason.REALLOCATION, capacity=capacity)

        start = self._store.size
        self._store.extend(items)
        self._extend_index(start)

    def remove(self, element: Any) -> bool:
        """Remove a stored element exactly equal to ``element``.

        The candidate comes from a single nearest-neighbor query under the
        current search configuration; a close but unequal candidate is not
        removed.
        """
        if self._index is None:
            return False

        indices, _ = self._index.knn_search(element, 1, self._search_params)
        if len(indices) == 0:
            return False

        position = int(indices[0])
        if not self._equal(self._index.get_point(position), element):
            return False

        self._index.remove_point(position)
        self._rebuild(RebuildReason.REMOVAL)
        return True

    def clear(self) -> None:
        """Discard every element and the engine."""
        if self._index is not None:
            self._index.release()
        self._index = None
        self._store.clear()

        logger.debug(f"Cleared {self.__class__.__name__}")

    # Queries

    def nearest(self, query: Any) -> Any:
        """Closest stored element."""
        if self.size == 0:
            raise EmptyStructureError()

        indices, _ = self._index.knn_search(query, 1, self._search_params)
        return self._export(self._index.get_point(int(indices[0])))

    def k_nearest(self, query: Any, k: int, exact: bool = False) -> list[Any]:
        """Up to k closest elements, ordered by non-decreasing distance."""
        return [element for element, _ in self.k_nearest_with_distances(query, k, exact)]

    def k_nearest_with_distances(
        self, query: Any, k: int, exact: bool = False
    ) -> list[tuple[Any, float]]:
        """Up to k closest (element, distance) pairs, closest first."""
        if k < 0:
            raise InvalidSearchParameterError("k", k, "must be non-negative")
        if self._index is None or k == 0:
            return []

        indices, distances = self._index.knn_search(
            query, min(k, self.size), self._params_for(exact)
        )
        return self._collect(indices, distances)

    def within_radius(self, query: Any, radius: float, exact: bool = False) -> list[Any]:
        """Every element within radius, ordered by non-decreasing distance."""
        return [
            element
            for element, _ in self.within_radius_with_distances(query, radius, exact)
        ]

    def within_radius_with_distances(
        self, query: Any, radius: float, exact: bool = False
    ) -> list[tuple[Any, float]]:
        """Every (element, distance) pair within radius, closest first."""
        if radius < 0:
            raise InvalidSearchParameterError("radius", radius, "must be non-negative")
        if self._index is None:
            return []

        indices, distances = self._index.radius_search(
            query, radius, self._params_for(exact)
        )
        return self._collect(indices, distances)

    def list(self) -> list[Any]:
        """Every stored element exactly once."""
        if self.size == 0:
            return []

        # Any stored element works as the query of an exhaustive search
        anchor = self._index.get_point(0)
        return self.k_nearest(anchor, self.size, exact=True)

    def get_stats(self) -> dict[str, Any]:
        """Structure and engine statistics."""
        stats = self._index.get_stats() if self._index is not None else {
            "algorithm": self._index_params.algorithm,
            "size": 0,
            "is_built": False,
        }
        stats["structure"] = {
            "capacity": self._store.capacity,
            "stored": self._store.size,
            "rebuilds": {reason.value: n for reason, n in self._rebuilds.items()},
        }
        return stats

    # Internals

    def _params_for(self, exact: bool) -> SearchParams:
        if exact:
            return SearchParams.exhaustive()
        # Query results are always ordered by distance
        return self._search_params.model_copy(update={"sorted": True})

    def _collect(
        self, indices: np.ndarray, distances: np.ndarray
    ) -> list[tuple[Any, float]]:
        return [
            (self._export(self._index.get_point(int(i))), float(d))
            for i, d in zip(indices, distances, strict=True)
        ]

    def _extend_index(self, start: int) -> None:
        """Index store elements from ``start`` on, dropping them if that fails."""
        try:
            if self._index is not None:
                self._index.add_points(start, self._store.size)
            else:
                self._index = IndexAdapter.build(
                    self._store, self._distance, self._index_params
                )
        except Exception:
            self._store.truncate(start)
            raise

    def _rebuild(
        self,
        reason: RebuildReason,
        capacity: int = 0,
        distance: Distance | None = None,
        index_params: IndexParams | None = None,
    ) -> None:
        """Replace store and engine with fresh ones holding the same elements."""
        distance = distance or self._distance
        index_params = index_params or self._index_params

        if self._index is not None:
            elements = self.list()
            store, index = rebuild_store(
                elements, self._make_store, distance, index_params, capacity
            )
            old_index = self._index
            self._store, self._index = store, index
            old_index.release()
            self._rebuilds[reason] += 1

            logger.info(
                f"Rebuilt {index_params.algorithm} index over {len(elements)} "
                f"elements ({reason.value}, capacity {store.capacity})"
            )

        self._distance = distance
        self._index_params = index_params


class VectorNearestNeighbors(NearestNeighbors):
    """Nearest-neighbor structure over numeric vectors under Euclidean distance.

    Elements are scalars (``dimension=1``) or sequences of ``dimension``
    numbers and come back as 1-D float arrays. Engines compute distances
    directly on the flat element buffer, which also unlocks the kd-tree,
    k-means and composite engines.
    """

    def __init__(
        self,
        dimension: int = 1,
        index_params: IndexParams | Mapping[str, Any] | str | None = None,
        search_params: SearchParams | Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize an empty structure for vectors of the given dimension."""
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        super().__init__(None, index_params, search_params)

    def _make_distance(self, distance: DistanceFunction | None) -> Distance:
        return L2Distance(self._dimension)

    def _make_store(self) -> ElementStore:
        return ArrayStore(self._dimension)

    def _export(self, element: np.ndarray) -> np.ndarray:
        return np.array(element, dtype=np.float64)

    def _equal(self, stored: Any, element: Any) -> bool:
        candidate = np.asarray(element, dtype=np.float64).reshape(-1)
        return bool(np.array_equal(np.asarray(stored), candidate))

    @property
    def dimension(self) -> int:
        """Scalar components per element."""
        return self._dimension

    def set_distance_function(self, distance: DistanceFunction) -> None:
        """Not supported: the Euclidean metric is built in."""
        raise TypeError(
            f"{self.__class__.__name__} uses a built-in Euclidean distance"
        )


def _coerce_search_params(params: SearchParams | Mapping[str, Any] | None) -> SearchParams:
    if params is None:
        return SearchParams()
    if isinstance(params, SearchParams):
        return params
    try:
        return SearchParams(**params)
    except ValidationError as e:
        raise InvalidSearchParameterError("search_params", dict(params), str(e)) from e
