"""Rebuild policy: when a full rebuild is unavoidable and how it runs.

A rebuild replaces both the element store and the index. It is transactional:
the fresh store and index are fully built before the caller swaps them in, so
a failure part way leaves the previous pair untouched.
"""

import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

from neighbors.distance import Distance
from neighbors.indexes import IndexAdapter, IndexParams
from neighbors.storage import ElementStore

logger = logging.getLogger(__name__)


class RebuildReason(str, Enum):
    """Events that force a full rebuild."""

    REALLOCATION = "reallocation"
    DISTANCE_CHANGED = "distance_changed"
    CONFIGURATION_CHANGED = "configuration_changed"
    REMOVAL = "removal"


def reallocation_capacity(
    store: ElementStore, index: IndexAdapter | None, incoming: int
) -> int | None:
    """Capacity to rebuild with before adding ``incoming`` elements, or None.

    Without an index the store may reallocate freely; with one, growth would
    move every element out from under the engine.
    """
    if index is None or store.fits(incoming):
        return None
    return store.grown_capacity(store.size + incoming)


def rebuild_store(
    elements: Sequence[Any],
    make_store: Callable[[], ElementStore],
    distance: Distance,
    params: IndexParams,
    capacity: int = 0,
) -> tuple[ElementStore, IndexAdapter | None]:
    """Build a fresh store holding ``elements`` and an index over it."""
    store = make_store()
    store.reserve(max(capacity, len(elements)))
    store.extend(elements)

    index = IndexAdapter.build(store, distance, params) if store.size else None
    return store, index
