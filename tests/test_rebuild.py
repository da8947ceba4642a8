"""Tests for storage growth and full rebuilds of the structure."""

import pytest

from neighbors import (
    EmptyStructureError,
    InvalidConfigurationError,
    NearestNeighbors,
    RebuildReason,
    VectorNearestNeighbors,
)
from neighbors.distance import FunctionDistance
from neighbors.indexes import IndexAdapter, parse_index_params
from neighbors.rebuild import reallocation_capacity, rebuild_store
from neighbors.storage import ListStore
from tests.conftest import euclidean


def grid(n: int) -> list[tuple[float, float]]:
    """n distinct 2-D points."""
    return [(float(i % 10), float(i // 10)) for i in range(n)]


class TestReallocationRebuilds:
    """Test that growth rebuilds follow the doubling schedule."""

    def test_single_inserts(self, distance_fn):
        """Test that N single inserts rebuild about log2(N) times."""
        nn = NearestNeighbors(distance_fn)

        for point in grid(100):
            nn.add(point)

        assert nn.size == 100
        assert nn.capacity == 128
        assert nn.rebuild_count == 7
        assert nn.rebuild_counts == {RebuildReason.REALLOCATION: 7}

    def test_capacity_schedule(self, distance_fn):
        """Test capacity after each insert."""
        nn = NearestNeighbors(distance_fn)
        capacities = []

        for point in grid(9):
            nn.add(point)
            capacities.append(nn.capacity)

        assert capacities == [1, 2, 4, 4, 8, 8, 8, 8, 16]

    def test_batch_insert_on_empty_structure(self, distance_fn):
        """Test that the first batch needs no rebuild."""
        nn = NearestNeighbors(distance_fn)

        nn.add_many(grid(10))

        assert nn.capacity == 10
        assert nn.rebuild_count == 0

    def test_batch_insert_grows_to_fit(self, distance_fn):
        """Test that a batch larger than double capacity gets exactly what it needs."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(3))

        nn.add_many(grid(20)[3:])

        assert nn.capacity == 20
        assert nn.rebuild_count == 1
        assert sorted(nn.list()) == sorted(grid(20))

    def test_inserts_within_capacity_extend_in_place(self, distance_fn):
        """Test that inserts that fit don't rebuild."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(3))
        nn.add((100.0, 100.0))
        before = nn.rebuild_count

        nn.add((200.0, 200.0))
        nn.add((300.0, 300.0))

        assert nn.rebuild_count == before
        assert nn.nearest((299.0, 299.0)) == (300.0, 300.0)

    def test_answers_survive_rebuilds(self):
        """Test that every element is still found after many rebuilds."""
        nn = VectorNearestNeighbors(
            2, {"algorithm": "kdtree", "trees": 2}, search_params={"checks": -1}
        )
        points = grid(50)

        for point in points:
            nn.add(point)

        for point in points:
            assert tuple(nn.nearest(point).tolist()) == point


class TestRemovalRebuilds:
    """Test rebuilds triggered by removal."""

    def test_removal_rebuilds(self, distance_fn):
        """Test that a successful removal rebuilds once."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(5))

        assert nn.remove((1.0, 0.0)) is True

        assert nn.rebuild_counts == {RebuildReason.REMOVAL: 1}
        assert nn.capacity == 4

    def test_failed_removal_does_not_rebuild(self, distance_fn):
        """Test that a miss leaves the structure alone."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(5))

        assert nn.remove((1.5, 0.0)) is False

        assert nn.rebuild_count == 0

    def test_removing_last_element(self, distance_fn):
        """Test that removing the only element leaves an empty structure."""
        nn = NearestNeighbors(distance_fn)
        nn.add((1.0, 1.0))

        assert nn.remove((1.0, 1.0)) is True

        assert nn.size == 0
        assert nn.list() == []
        with pytest.raises(EmptyStructureError):
            nn.nearest((1.0, 1.0))

        nn.add((2.0, 2.0))
        assert nn.nearest((0.0, 0.0)) == (2.0, 2.0)


class TestConfigurationRebuilds:
    """Test switching engines on a populated structure."""

    def test_switch_engine(self):
        """Test that switching engines keeps every element."""
        nn = VectorNearestNeighbors(2)
        nn.add_many(grid(30))

        nn.set_index_params({"algorithm": "kmeans", "branching": 3})

        assert nn.index_params.algorithm == "kmeans"
        assert nn.get_stats()["algorithm"] == "kmeans"
        assert nn.rebuild_counts == {RebuildReason.CONFIGURATION_CHANGED: 1}
        assert sorted(tuple(v.tolist()) for v in nn.list()) == sorted(grid(30))

    def test_property_setter(self, distance_fn):
        """Test switching engines through the property."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(10))

        nn.index_params = "hierarchical"

        assert nn.index_params.algorithm == "hierarchical"
        assert nn.nearest((0.2, 0.2)) == (0.0, 0.0)

    def test_invalid_switch_keeps_state(self, distance_fn):
        """Test that a refused configuration changes nothing."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(10))

        with pytest.raises(InvalidConfigurationError):
            nn.set_index_params("kdtree")
        with pytest.raises(InvalidConfigurationError):
            nn.set_index_params({"algorithm": "hierarchical", "branching": 1})

        assert nn.index_params.algorithm == "linear"
        assert nn.size == 10
        assert nn.rebuild_count == 0

    def test_distance_change_counts(self, distance_fn):
        """Test that replacing the metric rebuilds once."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(4))

        nn.set_distance_function(lambda a, b: abs(a[0] - b[0]) + abs(a[1] - b[1]))

        assert nn.rebuild_counts == {RebuildReason.DISTANCE_CHANGED: 1}

    def test_stats_report_rebuilds(self, distance_fn):
        """Test that stats expose rebuild counts per reason."""
        nn = NearestNeighbors(distance_fn)
        for point in grid(3):
            nn.add(point)

        stats = nn.get_stats()

        assert stats["structure"]["rebuilds"] == {"reallocation": 2}
        assert stats["structure"]["stored"] == 3
        assert stats["structure"]["capacity"] == 4


class TestTransactionalRebuild:
    """Test that failed rebuilds leave the previous state intact."""

    def test_failed_reallocation_rebuild(self, distance_fn, monkeypatch):
        """Test that an insert whose rebuild fails is not applied."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(4))

        def failing_rebuild(*args, **kwargs):
            raise RuntimeError("out of memory")

        monkeypatch.setattr("neighbors.structure.rebuild_store", failing_rebuild)

        with pytest.raises(RuntimeError):
            nn.add((50.0, 50.0))

        assert nn.size == 4
        assert nn.capacity == 4
        assert nn.rebuild_count == 0
        assert sorted(nn.list()) == sorted(grid(4))

    def test_failing_distance_during_switch(self, distance_fn):
        """Test that a metric failing mid-build leaves the old one in place."""
        nn = NearestNeighbors(distance_fn)
        nn.add_many(grid(20))
        calls = []

        def flaky(a, b):
            calls.append(1)
            if len(calls) > 5:
                raise ValueError("distance exploded")
            return euclidean(a, b)

        nn.set_index_params({"algorithm": "hierarchical", "leaf_max_size": 2})
        with pytest.raises(ValueError):
            nn.set_distance_function(flaky)

        assert nn.size == 20
        assert nn.nearest((0.1, 0.1)) == (0.0, 0.0)
        assert nn.rebuild_counts == {RebuildReason.CONFIGURATION_CHANGED: 1}

    def test_failing_first_build(self, monkeypatch):
        """Test that a failed first build leaves the structure empty."""
        nn = NearestNeighbors(euclidean)

        def failing_build(*args, **kwargs):
            raise RuntimeError("build failed")

        monkeypatch.setattr(IndexAdapter, "build", failing_build)

        with pytest.raises(RuntimeError):
            nn.add((1.0, 1.0))

        assert nn.size == 0
        assert nn.list() == []

        monkeypatch.undo()
        nn.add((2.0, 2.0))

        assert nn.list() == [(2.0, 2.0)]

    def test_failing_incremental_insert(self):
        """Test that an insert the engine can't index is dropped again."""
        failing = []

        def flaky(a, b):
            if failing:
                raise ValueError("distance exploded")
            return euclidean(a, b)

        nn = NearestNeighbors(
            flaky, {"algorithm": "hierarchical", "branching": 2, "leaf_max_size": 2}
        )
        nn.add_many(grid(10))
        nn.add((20.0, 20.0))
        capacity = nn.capacity

        failing.append(True)
        with pytest.raises(ValueError):
            nn.add((50.0, 50.0))
        failing.clear()

        assert nn.size == 11
        assert len(nn.list()) == 11
        assert nn.capacity == capacity

        nn.add((50.0, 50.0))

        assert nn.size == 12
        assert nn.nearest((49.0, 49.0)) == (50.0, 50.0)


class TestRebuildHelpers:
    """Test the rebuild policy helpers directly."""

    def test_no_rebuild_without_index(self):
        """Test that a store without an engine may grow freely."""
        store = ListStore()

        assert reallocation_capacity(store, None, 5) is None

    def test_rebuild_capacity(self):
        """Test the capacity chosen for a growth rebuild."""
        store = ListStore()
        store.extend(grid(4))
        index = IndexAdapter.build(store, FunctionDistance(euclidean), "linear")

        assert reallocation_capacity(store, index, 1) == 8
        assert reallocation_capacity(store, index, 9) == 13

    def test_rebuild_store(self):
        """Test building a fresh store and index pair."""
        store, index = rebuild_store(
            grid(3),
            ListStore,
            FunctionDistance(euclidean),
            parse_index_params("linear"),
            capacity=8,
        )

        assert store.capacity == 8
        assert list(store) == grid(3)
        assert index.size == 3

    def test_rebuild_store_without_elements(self):
        """Test that no index is built over an empty store."""
        store, index = rebuild_store(
            [], ListStore, FunctionDistance(euclidean), parse_index_params("linear")
        )

        assert store.size == 0
        assert index is None
