"""Base protocol and interfaces for index engines.

An engine indexes a prefix of an element store's buffer by position. It keeps
a reference to that buffer, never a copy, and addresses elements through the
distance adapter it was built with.
"""

import heapq
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any, ClassVar, Protocol, runtime_checkable

import numpy as np

from neighbors.distance import Distance
from neighbors.domain import IndexEngineError, InvalidConfigurationError, InvalidSearchParameterError

from .params import BaseIndexParams, SearchParams

logger = logging.getLogger(__name__)

SearchResult = tuple[np.ndarray, np.ndarray]


@runtime_checkable
class IndexEngine(Protocol):
    """Protocol for index engine implementations."""

    @property
    def size(self) -> int:
        """Number of indexed, non-removed points."""
        ...

    @property
    def is_built(self) -> bool:
        """True if engine is built and ready for queries."""
        ...

    def build(self) -> None:
        """Build the engine over the current buffer prefix."""
        ...

    def add_points(self, start: int, stop: int, rebalance_factor: float) -> None:
        """Extend the engine with buffer[start:stop]."""
        ...

    def remove_point(self, index: int) -> bool:
        """Remove point at buffer position, returns True if it was indexed."""
        ...

    def get_point(self, index: int) -> Any:
        """Element stored at buffer position."""
        ...

    def knn_search(self, query: Any, k: int, params: SearchParams) -> SearchResult:
        """Find k nearest neighbors, returns (indices, distances)."""
        ...

    def radius_search(
        self, query: Any, radius: float, params: SearchParams
    ) -> SearchResult:
        """Find every point within radius, returns (indices, distances)."""
        ...


class ResultSet(ABC):
    """Collects candidates during a search, skipping removed or repeated points."""

    def __init__(self, removed: set[int]) -> None:
        self._removed = removed
        self._seen: set[int] = set()

    def unseen(self, indices: Iterable[int]) -> list[int]:
        """Filter to live points not scored yet, marking them as scored."""
        fresh = [
            int(i) for i in indices if i not in self._seen and i not in self._removed
        ]
        self._seen.update(fresh)
        return fresh

    @property
    @abstractmethod
    def full(self) -> bool:
        """True if further candidates can only replace existing ones."""
        pass

    @property
    @abstractmethod
    def worst_distance(self) -> float:
        """Distance a candidate must not exceed to be accepted."""
        pass

    @abstractmethod
    def add(self, indices: Sequence[int], distances: np.ndarray) -> None:
        """Offer scored candidates."""
        pass

    @abstractmethod
    def results(self, sort: bool) -> SearchResult:
        """Accepted (indices, distances)."""
        pass


class KNNResultSet(ResultSet):
    """Keeps the k closest candidates."""

    def __init__(self, k: int, removed: set[int]) -> None:
        super().__init__(removed)
        self._k = k
        # Max-heap of (-distance, -index)
        self._heap: list[tuple[float, int]] = []

    @property
    def full(self) -> bool:
        return len(self._heap) >= self._k

    @property
    def worst_distance(self) -> float:
        if not self.full:
            return float("inf")
        return -self._heap[0][0]

    def add(self, indices: Sequence[int], distances: np.ndarray) -> None:
        for index, distance in zip(indices, distances, strict=True):
            item = (-float(distance), -int(index))
            if not self.full:
                heapq.heappush(self._heap, item)
            elif item > self._heap[0]:
                heapq.heapreplace(self._heap, item)

    def results(self, sort: bool) -> SearchResult:
        items = [(-d, -i) for d, i in self._heap]
        if sort:
            items.sort()
        return _as_arrays(items)


class RadiusResultSet(ResultSet):
    """Keeps every candidate within a fixed radius."""

    def __init__(self, radius: float, removed: set[int]) -> None:
        super().__init__(removed)
        self._radius = radius
        self._items: list[tuple[float, int]] = []

    @property
    def full(self) -> bool:
        return True

    @property
    def worst_distance(self) -> float:
        return self._radius

    def add(self, indices: Sequence[int], distances: np.ndarray) -> None:
        for index, distance in zip(indices, distances, strict=True):
            if distance <= self._radius:
                self._items.append((float(distance), int(index)))

    def results(self, sort: bool) -> SearchResult:
        items = sorted(self._items) if sort else self._items
        return _as_arrays(items)


def _as_arrays(items: list[tuple[float, int]]) -> SearchResult:
    indices = np.array([i for _, i in items], dtype=np.intp)
    distances = np.array([d for d, _ in items], dtype=np.float64)
    return indices, distances


class BaseIndexEngine(ABC):
    """Base class with common functionality for index engine implementations."""

    # True if the engine needs numeric vectors under a built-in metric
    requires_vectors: ClassVar[bool] = False

    def __init__(
        self, buffer: Any, count: int, distance: Distance, params: BaseIndexParams
    ) -> None:
        """Initialize engine over buffer[0:count]."""
        if self.requires_vectors and not distance.requires_vectors:
            raise InvalidConfigurationError(
                params.algorithm,
                "engine requires numeric vector elements under the built-in "
                "Euclidean distance",
            )

        self._buffer = buffer
        self._count = count
        self._distance = distance
        self._params = params
        self._removed: set[int] = set()
        self._size_at_build = 0
        self._is_built = False

        logger.debug(
            f"Initialized {self.__class__.__name__} over {count} points "
            f"with {distance!r}"
        )

    @property
    def params(self) -> BaseIndexParams:
        """Index configuration this engine was built with."""
        return self._params

    @property
    def distance(self) -> Distance:
        """Distance adapter used by this engine."""
        return self._distance

    @property
    def buffer(self) -> Any:
        """Buffer this engine indexes by position."""
        return self._buffer

    @property
    def size(self) -> int:
        """Number of indexed, non-removed points."""
        return self._count - len(self._removed)

    @property
    def is_built(self) -> bool:
        """Check if the engine has been built and is ready for queries."""
        return self._is_built

    def build(self) -> None:
        """Build the engine from the current buffer prefix."""
        logger.info(f"Building {self.__class__.__name__} with {self._count} points")

        self._removed.clear()
        self._restructure()
        self._is_built = True

        logger.info(f"Successfully built {self.__class__.__name__}")

    def add_points(self, start: int, stop: int, rebalance_factor: float) -> None:
        """Extend the engine with buffer[start:stop].

        The engine restructures itself from scratch once it holds more than
        ``rebalance_factor`` times the points it was last built with.
        """
        self._ensure_built()
        if start != self._count or stop < start:
            raise IndexEngineError(
                f"points [{start}, {stop}) don't extend indexed prefix of {self._count}"
            )

        if stop > self._size_at_build * rebalance_factor:
            logger.debug(f"Rebalancing {self.__class__.__name__} at {stop} points")
            self._restructure(stop)
        else:
            self._add_to_index(range(start, stop))
        self._count = stop

    def remove_point(self, index: int) -> bool:
        """Remove point from engine; the buffer slot itself is left untouched."""
        if index < 0 or index >= self._count or index in self._removed:
            return False

        self._removed.add(index)

        logger.debug(f"Removed point at index {index}")
        return True

    def get_point(self, index: int) -> Any:
        """Element stored at buffer position."""
        if index < 0 or index >= self._count:
            raise IndexEngineError(f"point index {index} out of range")
        return self._buffer[index]

    def knn_search(self, query: Any, k: int, params: SearchParams) -> SearchResult:
        """Find the k nearest neighbors of query."""
        self._ensure_built()
        if k <= 0 or self.size == 0:
            return _as_arrays([])

        result = KNNResultSet(min(k, self.size), self._removed)
        self._search(self._distance.prepare(query), result, params)
        return result.results(params.sorted)

    def radius_search(
        self, query: Any, radius: float, params: SearchParams
    ) -> SearchResult:
        """Find every point within radius of query."""
        self._ensure_built()
        if radius < 0:
            raise InvalidSearchParameterError("radius", radius, "must be non-negative")
        if self.size == 0:
            return _as_arrays([])

        result = RadiusResultSet(radius, self._removed)
        self._search(self._distance.prepare(query), result, params)
        return result.results(params.sorted)

    def get_stats(self) -> dict[str, Any]:
        """Engine statistics."""
        return {
            "algorithm": self._params.algorithm,
            "size": self.size,
            "indexed_points": self._count,
            "removed_points": len(self._removed),
            "size_at_build": self._size_at_build,
            "is_built": self._is_built,
        }

    def _ensure_built(self) -> None:
        if not self._is_built:
            raise IndexEngineError(f"{self.__class__.__name__} must be built before use")

    def _restructure(self, count: int | None = None) -> None:
        """Rebuild internal structure over every live point in buffer[0:count]."""
        count = self._count if count is None else count
        live = np.array(
            [i for i in range(count) if i not in self._removed], dtype=np.intp
        )
        self._build_index(live)
        self._size_at_build = count

    def _score(self, query: Any, indices: Iterable[int], result: ResultSet) -> int:
        """Score unseen points against query, returns number of points scored."""
        fresh = result.unseen(indices)
        if fresh:
            result.add(fresh, self._distance.pairwise(query, self._buffer, fresh))
        return len(fresh)

    @staticmethod
    def _budget_spent(checks: int, params: SearchParams, result: ResultSet) -> bool:
        """True once an approximate search has visited its allotted candidates."""
        return not params.unlimited and checks >= params.checks and result.full

    @abstractmethod
    def _build_index(self, indices: np.ndarray) -> None:
        """Build concrete index structure over the given positions."""
        pass

    @abstractmethod
    def _add_to_index(self, indices: Iterable[int]) -> None:
        """Insert positions into the existing structure."""
        pass

    @abstractmethod
    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        """Concrete search implementation filling result."""
        pass
