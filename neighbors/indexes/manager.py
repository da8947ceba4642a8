"""Index engine factory and the adapter owning one engine instance."""

import logging
from collections.abc import Mapping
from typing import Any

from neighbors.core.config import settings
from neighbors.distance import Distance
from neighbors.domain import IndexEngineError, InvalidConfigurationError
from neighbors.storage import ElementStore

from .base import BaseIndexEngine, SearchResult
from .composite import CompositeIndex
from .hierarchical import HierarchicalClusteringIndex
from .kdtree import KDTreeIndex, KDTreeSingleIndex
from .kmeans import KMeansIndex
from .linear import LinearIndex
from .params import BaseIndexParams, IndexParams, SearchParams, parse_index_params

logger = logging.getLogger(__name__)

_ENGINES: dict[str, type[BaseIndexEngine]] = {
    "linear": LinearIndex,
    "kdtree": KDTreeIndex,
    "kdtree_single": KDTreeSingleIndex,
    "kmeans": KMeansIndex,
    "hierarchical": HierarchicalClusteringIndex,
    "composite": CompositeIndex,
}


def engine_class(params: BaseIndexParams) -> type[BaseIndexEngine]:
    """Engine class implementing the configured algorithm."""
    try:
        return _ENGINES[params.algorithm]
    except KeyError:
        raise InvalidConfigurationError(
            params.algorithm,
            f"unsupported index type. Supported types: {', '.join(_ENGINES)}",
        ) from None


def check_compatible(params: BaseIndexParams, distance: Distance) -> None:
    """Raise InvalidConfigurationError if the engine can't use this distance."""
    if engine_class(params).requires_vectors and not distance.requires_vectors:
        raise InvalidConfigurationError(
            params.algorithm,
            "engine requires numeric vector elements under the built-in "
            "Euclidean distance",
        )


def create_index(
    params: IndexParams | Mapping[str, Any] | str | None,
    buffer: Any,
    distance: Distance,
    count: int,
) -> BaseIndexEngine:
    """Factory to create and build an engine over buffer[0:count]."""
    params = parse_index_params(params)

    engine = engine_class(params)(buffer, count, distance, params)
    engine.build()
    return engine


class IndexAdapter:
    """Owns exactly one engine built over an element store's buffer.

    The adapter remembers the store generation it was built against. Once the
    store replaces its buffer the engine references memory the store no
    longer uses, and every call fails until the owner rebuilds.
    """

    def __init__(self, engine: BaseIndexEngine, store: ElementStore) -> None:
        """Initialize adapter around an already built engine."""
        self._engine: BaseIndexEngine | None = engine
        self._store = store
        self._generation = store.generation

    @classmethod
    def build(
        cls,
        store: ElementStore,
        distance: Distance,
        params: IndexParams | Mapping[str, Any] | str | None,
    ) -> "IndexAdapter":
        """Build a fresh engine over every element currently in store."""
        engine = create_index(params, store.buffer, distance, store.size)

        logger.debug(
            f"Built {type(engine).__name__} over {store.size} elements "
            f"(store capacity {store.capacity})"
        )
        return cls(engine, store)

    @property
    def engine(self) -> BaseIndexEngine:
        """The owned engine."""
        if self._engine is None:
            raise IndexEngineError("index has been released")
        return self._engine

    @property
    def is_stale(self) -> bool:
        """True if the store reallocated since the engine was built."""
        return self._store.generation != self._generation

    @property
    def size(self) -> int:
        """Number of elements the engine reports."""
        return self._current().size

    def add_points(self, start: int, stop: int) -> None:
        """Extend the engine with store elements [start, stop)."""
        rebalance_factor = settings.rebalance_budget / max(stop, 1)
        self._current().add_points(start, stop, rebalance_factor)

    def remove_point(self, index: int) -> bool:
        """Remove element at store position from the engine."""
        return self._current().remove_point(index)

    def get_point(self, index: int) -> Any:
        """Element at store position, as held by the engine."""
        return self._current().get_point(index)

    def knn_search(self, query: Any, k: int, params: SearchParams) -> SearchResult:
        """Find the k nearest elements, returns (positions, distances)."""
        return self._current().knn_search(query, k, params)

    def radius_search(
        self, query: Any, radius: float, params: SearchParams
    ) -> SearchResult:
        """Find every element within radius, returns (positions, distances)."""
        return self._current().radius_search(query, radius, params)

    def get_stats(self) -> dict[str, Any]:
        """Engine statistics."""
        return self._current().get_stats()

    def release(self) -> None:
        """Drop the engine."""
        self._engine = None

    def _current(self) -> BaseIndexEngine:
        engine = self.engine
        if self.is_stale:
            raise IndexEngineError(
                "element store reallocated since the index was built; rebuild required"
            )
        return engine
