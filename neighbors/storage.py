"""Element stores owning every element handed to the structure.

Index engines keep a reference to the store's backing buffer and address
elements by position. A store therefore only ever replaces its buffer object
when it must grow; ``generation`` changes whenever that happens so the owner
can tell that an engine built over the old buffer is stale.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from typing import Any

import numpy as np

from neighbors.domain import DimensionMismatchError

logger = logging.getLogger(__name__)


class ElementStore(ABC):
    """Growable, owning container with explicit capacity."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._buffer = self._allocate(0)
        self._size = 0
        self._capacity = 0
        self._generation = 0

    @property
    def size(self) -> int:
        """Number of stored elements."""
        return self._size

    @property
    def capacity(self) -> int:
        """Number of allocated slots."""
        return self._capacity

    @property
    def generation(self) -> int:
        """Counter bumped every time the backing buffer object is replaced."""
        return self._generation

    @property
    def buffer(self) -> Any:
        """Backing buffer; only the first ``size`` slots hold elements."""
        return self._buffer

    def fits(self, count: int) -> bool:
        """True if ``count`` more elements can be added without reallocating."""
        return self._size + count <= self._capacity

    def grown_capacity(self, new_size: int) -> int:
        """Capacity the store grows to when it must hold ``new_size`` elements."""
        return max(2 * self._capacity, new_size)

    def reserve(self, capacity: int) -> None:
        """Ensure room for at least ``capacity`` elements."""
        if capacity > self._capacity:
            self._reallocate(capacity)

    def append(self, element: Any) -> bool:
        """Append one element, returns True if the buffer was reallocated."""
        item = self._coerce(element)
        reallocated = not self.fits(1)
        if reallocated:
            self._reallocate(self.grown_capacity(self._size + 1))
        self._buffer[self._size] = item
        self._size += 1
        return reallocated

    def extend(self, elements: Iterable[Any]) -> bool:
        """Append many elements, returns True if the buffer was reallocated."""
        items = [self._coerce(element) for element in elements]
        if not items:
            return False
        new_size = self._size + len(items)
        reallocated = not self.fits(len(items))
        if reallocated:
            self._reallocate(self.grown_capacity(new_size))
        self._store_slice(self._size, new_size, items)
        self._size = new_size
        return reallocated

    def truncate(self, size: int) -> None:
        """Drop every element from position ``size`` on, keeping the buffer."""
        if size < 0 or size > self._size:
            raise IndexError(f"Cannot truncate {self._size} elements to {size}")
        self._size = size

    def clear(self) -> None:
        """Drop every element and release the buffer."""
        self._buffer = self._allocate(0)
        self._size = 0
        self._capacity = 0
        self._generation += 1

    def _reallocate(self, capacity: int) -> None:
        """Move the live prefix into a fresh buffer of the given capacity."""
        buffer = self._allocate(capacity)
        buffer[: self._size] = self._buffer[: self._size]
        self._buffer = buffer
        self._capacity = capacity
        self._generation += 1

        logger.debug(
            f"Reallocated {self.__class__.__name__} to capacity {capacity} "
            f"(generation {self._generation})"
        )

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, index: int) -> Any:
        if index < 0 or index >= self._size:
            raise IndexError(f"Element index {index} out of range")
        return self._export(self._buffer[index])

    def __iter__(self) -> Iterator[Any]:
        for i in range(self._size):
            yield self._export(self._buffer[i])

    @abstractmethod
    def _allocate(self, capacity: int) -> Any:
        """Create an empty buffer with the given number of slots."""
        pass

    @abstractmethod
    def _coerce(self, element: Any) -> Any:
        """Convert an incoming element into its stored form."""
        pass

    @abstractmethod
    def _store_slice(self, start: int, stop: int, items: list[Any]) -> None:
        """Write items into buffer[start:stop]."""
        pass

    def _export(self, item: Any) -> Any:
        """Convert a stored item into the form handed back to callers."""
        return item


class ListStore(ElementStore):
    """Store for opaque elements backed by a pre-sized Python list."""

    def _allocate(self, capacity: int) -> list[Any]:
        return [None] * capacity

    def _coerce(self, element: Any) -> Any:
        return element

    def _store_slice(self, start: int, stop: int, items: list[Any]) -> None:
        self._buffer[start:stop] = items


class ArrayStore(ElementStore):
    """Store for fixed-dimension numeric vectors backed by a 2-D float array."""

    def __init__(self, dimension: int = 1) -> None:
        """Initialize an empty store for vectors of the given dimension."""
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        super().__init__()

    @property
    def dimension(self) -> int:
        """Number of scalar components per element."""
        return self._dimension

    def _allocate(self, capacity: int) -> np.ndarray:
        return np.empty((capacity, self._dimension), dtype=np.float64)

    def _coerce(self, element: Any) -> np.ndarray:
        vector = np.asarray(element, dtype=np.float64).reshape(-1)
        if vector.shape[0] != self._dimension:
            raise DimensionMismatchError(self._dimension, vector.shape[0])
        return vector

    def _store_slice(self, start: int, stop: int, items: list[Any]) -> None:
        self._buffer[start:stop] = np.stack(items)

    def _export(self, item: np.ndarray) -> np.ndarray:
        return item.copy()
