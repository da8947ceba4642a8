"""Distance adapters bridging caller metrics into index engines.

Engines never call a user function directly. They talk to a ``Distance``
adapter, which offers two calling conventions:

- ``distance(a, b)``: raw pair form, used when an engine compares two
  elements it holds (cluster centers, split candidates).
- ``distance.pairwise(query, buffer, indices)``: positions form, used when an
  engine scores many stored points against one query.

``FunctionDistance`` wraps an arbitrary callback and works with any element
type. ``L2Distance`` is the specialised path for numeric vectors: it never
calls back into Python per pair and lets numpy compute Euclidean distances
over the flat buffer.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import numpy as np

from neighbors.domain import DimensionMismatchError

logger = logging.getLogger(__name__)

DistanceFunction = Callable[[Any, Any], float]


@runtime_checkable
class Distance(Protocol):
    """Protocol for distance adapters consumed by index engines."""

    @property
    def requires_vectors(self) -> bool:
        """True if elements are fixed-length numeric vectors."""
        ...

    def __call__(self, a: Any, b: Any) -> float:
        """Distance between two elements."""
        ...

    def pairwise(self, query: Any, buffer: Any, indices: Sequence[int]) -> np.ndarray:
        """Distances from query to buffer[i] for each i in indices."""
        ...

    def prepare(self, element: Any) -> Any:
        """Convert a caller-supplied element into the engine's element form."""
        ...


class FunctionDistance:
    """Generic adapter over a caller-supplied distance function.

    The adapter holds a reference to ``function``; it is not copied, so the
    function must stay valid for as long as any engine built with this
    adapter is alive.
    """

    requires_vectors = False

    def __init__(self, function: DistanceFunction) -> None:
        """Initialize adapter around the caller's distance function."""
        if not callable(function):
            raise TypeError("distance function must be callable")
        self._function = function

    @property
    def function(self) -> DistanceFunction:
        """The wrapped distance function."""
        return self._function

    def __call__(self, a: Any, b: Any) -> float:
        return float(self._function(a, b))

    def pairwise(self, query: Any, buffer: Any, indices: Sequence[int]) -> np.ndarray:
        function = self._function
        return np.fromiter(
            (function(query, buffer[i]) for i in indices),
            dtype=np.float64,
            count=len(indices),
        )

    def prepare(self, element: Any) -> Any:
        return element

    def __repr__(self) -> str:
        return f"FunctionDistance({self._function!r})"


class L2Distance:
    """Euclidean adapter for scalar or fixed-dimension numeric elements."""

    requires_vectors = True

    def __init__(self, dimension: int = 1) -> None:
        """Initialize adapter for vectors of the given dimension."""
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        """Number of scalar components per element."""
        return self._dimension

    def __call__(self, a: Any, b: Any) -> float:
        return float(np.linalg.norm(self.prepare(a) - self.prepare(b)))

    def pairwise(self, query: Any, buffer: Any, indices: Sequence[int]) -> np.ndarray:
        points = buffer[np.asarray(indices, dtype=np.intp)]
        return np.linalg.norm(points - self.prepare(query), axis=1)

    def prepare(self, element: Any) -> np.ndarray:
        vector = np.asarray(element, dtype=np.float64).reshape(-1)
        if vector.shape[0] != self._dimension:
            raise DimensionMismatchError(self._dimension, vector.shape[0])
        return vector

    def __repr__(self) -> str:
        return f"L2Distance(dimension={self._dimension})"
