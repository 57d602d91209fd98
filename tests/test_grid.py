"""Tests for the sparse distribution grid."""
import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from ndt_multigrid.distribution import CovarianceLimit
from ndt_multigrid.grid import DistributionGrid
from ndt_multigrid.transform import se2, se3


def unit_grid():
    return DistributionGrid(se2(0.0, 0.0, 0.0), 1.0, height=10.0, width=10.0)


class TestEmptyGrid:

    def test_sample_is_zero_everywhere(self, rng):
        grid = unit_grid()
        for p in rng.uniform(-5.0, 15.0, size=(50, 2)):
            assert grid.sample(p) == 0.0
            s, q = grid.sample_non_normalized(p)
            assert s == 0.0
            assert q is None
        assert len(grid) == 0

    def test_read_does_not_insert(self):
        grid = unit_grid()
        assert grid.get_distribution((3, 3)) is None
        grid.sample([3.5, 3.5])
        assert len(grid) == 0


class TestScenario:
    """Resolution 1, origin 0, 10 x 10."""

    def test_point_lands_in_cell_2_2(self):
        grid = unit_grid()
        assert grid.index_of([2.3, 2.7]) == (2, 2)
        for p in ([2.3, 2.7], [2.4, 2.6], [2.2, 2.65]):
            grid.add(p)
        assert grid.indices() == [(2, 2)]
        assert grid.get_distribution((2, 2)).n == 3

        inside = grid.sample([2.3, 2.7])
        outside = grid.sample([9.9, 9.9])
        assert outside == 0.0
        assert inside > outside

    def test_single_point_cell_exists_but_is_not_sampled(self):
        grid = unit_grid()
        grid.add([2.3, 2.7])
        assert grid.indices() == [(2, 2)]
        assert grid.sample([2.3, 2.7]) == 0.0
        s, q = grid.sample_non_normalized([2.5, 2.5])
        assert s == 0.0
        np.testing.assert_allclose(q, [0.2, -0.2])
        assert grid.sample_non_normalized([9.9, 9.9]) == (0.0, None)

    def test_add_marks_touched(self):
        grid = unit_grid()
        grid.add([2.3, 2.7])
        assert grid.is_touched((2, 2))
        grid.clear_touched()
        assert not grid.is_touched((2, 2))


class TestIndexing:

    def test_same_cell_same_index(self):
        grid = DistributionGrid(se2(0.0, 0.0, 0.0), 0.5, height=5.0, width=5.0)
        assert grid.index_of([1.01, 2.02]) == grid.index_of([1.49, 2.49])

    def test_adjacent_cells_differ_by_one_component(self):
        grid = DistributionGrid(se2(0.0, 0.0, 0.0), 0.5, height=5.0, width=5.0)
        a = grid.index_of([1.2, 2.2])
        b = grid.index_of([1.6, 2.2])
        c = grid.index_of([1.2, 2.6])
        assert (b[0] - a[0], b[1] - a[1]) == (1, 0)
        assert (c[0] - a[0], c[1] - a[1]) == (0, 1)

    def test_rotated_origin_round_trip(self):
        grid = DistributionGrid.from_pose(1.0, 2.0, math.pi / 2, 0.5,
                                          height=4.0, width=4.0)
        np.testing.assert_allclose(grid.to_world(grid.min_index), [1.0, 2.0],
                                   atol=1e-12)
        # one cell along the map x axis is +y in the world
        p = grid.to_world(grid.min_index) + [-0.1, 0.6]
        index = grid.index_of(p)
        assert index == (grid.min_index[0] + 1, grid.min_index[1])

    def test_three_dimensional_grid(self):
        grid = DistributionGrid(se3([0.0, 0.0, 0.0], [0.0, 0.0, 0.0]), 1.0,
                                height=4.0, width=4.0, depth=2.0)
        assert grid.dim == 3
        assert grid.index_of([1.5, 2.5, 0.5]) == (1, 2, 0)
        assert grid.max_index == (4, 4, 2)


class TestBoundingRange:

    def test_index_range_is_fixed(self, rng):
        grid = DistributionGrid(se2(0.5, -1.2, 0.0), 0.5, height=3.0, width=4.0)
        expected_min = (math.floor(0.5 / 0.5), math.floor(-1.2 / 0.5))
        expected_max = (math.floor(4.5 / 0.5), math.floor(1.8 / 0.5))
        assert grid.min_index == expected_min
        assert grid.max_index == expected_max

        for p in rng.uniform([0.5, -1.2], [4.4, 1.7], size=(100, 2)):
            grid.add(p)
        assert grid.min_index == expected_min
        assert grid.max_index == expected_max
        np.testing.assert_allclose(grid.min, [0.5, -1.2])
        np.testing.assert_allclose(grid.max, [4.5, 1.8])

    def test_add_outside_range_is_rejected(self):
        grid = unit_grid()
        with pytest.raises(IndexError):
            grid.add([25.0, 1.0])
        assert len(grid) == 0

    def test_sample_outside_range_is_a_miss(self):
        grid = unit_grid()
        for p in ([1.2, 1.2], [1.5, 1.7], [1.8, 1.3]):
            grid.add(p)
        assert grid.sample([-50.0, 300.0]) == 0.0

    @pytest.mark.parametrize("kwargs", [
        dict(resolution=0.0, height=1.0, width=1.0),
        dict(resolution=1.0, height=0.0, width=1.0),
        dict(resolution=1.0, height=1.0, width=-2.0),
    ])
    def test_rejects_non_positive_configuration(self, kwargs):
        with pytest.raises(ValueError):
            DistributionGrid(se2(0.0, 0.0, 0.0), **kwargs)

    def test_three_dimensional_grid_requires_depth(self):
        with pytest.raises(ValueError):
            DistributionGrid(np.eye(4), 1.0, height=1.0, width=1.0)


class TestConcurrency:

    def test_parallel_writers_on_one_cell_lose_nothing(self):
        grid = DistributionGrid(se2(0.0, 0.0, 0.0), 1.0, height=4.0, width=4.0,
                                covariance_limit=CovarianceLimit())
        points = np.random.default_rng(7).uniform(1.0, 2.0, size=(8, 200, 2))

        def writer(batch):
            for p in batch:
                grid.add(p)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(writer, points))

        assert grid.indices() == [(1, 1)]
        stats = grid.get_distribution((1, 1))
        assert stats.n == 1600
        np.testing.assert_allclose(stats.mean, points.reshape(-1, 2).mean(axis=0),
                                   atol=1e-9)

    def test_parallel_writers_on_different_cells(self):
        grid = DistributionGrid(se2(0.0, 0.0, 0.0), 1.0, height=8.0, width=8.0)

        def writer(i):
            for _ in range(50):
                grid.add([i + 0.5, 0.5])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(writer, range(8)))

        assert len(grid) == 8
        assert all(grid.get_distribution((i, 0)).n == 50 for i in range(8))
