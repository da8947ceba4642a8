"""Linear scan index engine."""

import logging
from collections.abc import Iterable
from typing import Any

import numpy as np

from .base import BaseIndexEngine, ResultSet
from .params import SearchParams

logger = logging.getLogger(__name__)


class LinearIndex(BaseIndexEngine):
    """Linear scan index - exhaustive search baseline.

    Time: Build O(1), Query O(N) distance evaluations, Space O(1)
    Best for: Small datasets, exact results, arbitrary distance functions
    """

    def _build_index(self, indices: np.ndarray) -> None:
        """Build linear scan index (trivial - points live in the buffer)."""
        logger.debug(f"Built LinearIndex with {len(indices)} points")

    def _add_to_index(self, indices: Iterable[int]) -> None:
        """Nothing to insert; the scan covers the whole indexed prefix."""
        pass

    def _search(self, query: Any, result: ResultSet, params: SearchParams) -> None:
        """Score every indexed point; checks and eps don't apply."""
        self._score(query, range(self._count), result)
