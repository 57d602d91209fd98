"""Overlapping multi-grid: 2**D distribution grids offset by half a cell.

Sub-grid order in 2-D is (0, 0), (res/2, 0), (0, res/2), (res/2, res/2);
3-D continues the same pattern with the z offset. Every query point falls
into exactly one cell of each sub-grid.
"""
import itertools
import numpy as np

from .distribution import MIN_SAMPLES, CovarianceLimit
from .grid import DistributionGrid
from .types import PointCloud


def half_cell_offsets(dim: int) -> list:
    """Offset pattern (0 or 1 half cells per axis), x varying fastest."""
    return [tuple(reversed(c)) for c in itertools.product((0, 1), repeat=dim)]


class MultiGrid:
    """Four (2-D) or eight (3-D) overlapping DistributionGrids."""

    def __init__(self, size, resolution, origin,
                 covariance_limit: CovarianceLimit = None):
        """
        Args:
            size: Number of cells per axis covering the data.
            resolution: Cell edge length, scalar or per axis.
            origin: (D,) world position of the data's lower corner.
            covariance_limit: Eigenvalue floor policy for every cell.
        """
        origin = np.asarray(origin, dtype=np.float64)
        dim = origin.shape[0]
        if dim not in (2, 3):
            raise ValueError(f"origin must have 2 or 3 entries, got {origin.shape}")
        size = np.broadcast_to(np.asarray(size, dtype=np.int64), (dim,))
        resolution = np.broadcast_to(
            np.asarray(resolution, dtype=np.float64), (dim,)).copy()
        if np.any(resolution <= 0.0):
            raise ValueError(f"resolution must be positive, got {resolution}")

        self.dim = dim
        self.resolution = resolution
        self.origin = origin
        self.size = size.copy()
        self.offsets = half_cell_offsets(dim)

        # one cell of padding on each side keeps the shifted grids covering
        # the full data range
        extent = (self.size + 2) * resolution
        self.grids = []
        for offset in self.offsets:
            T = np.eye(dim + 1)
            T[0:dim, dim] = origin - resolution + 0.5 * resolution * np.asarray(offset)
            depth = extent[2] if dim == 3 else None
            self.grids.append(DistributionGrid(
                T, resolution, height=extent[1], width=extent[0], depth=depth,
                covariance_limit=covariance_limit))

    @classmethod
    def from_cloud(cls, cloud: PointCloud, resolution,
                   covariance_limit: CovarianceLimit = None) -> 'MultiGrid':
        """Size a multi-grid from a cloud's bounding range and fill it.

        Raises:
            ValueError: if the cloud range is not finite and strictly positive.
        """
        resolution = np.broadcast_to(
            np.asarray(resolution, dtype=np.float64), (cloud.dim,))
        cloud_range = cloud.range()
        if not np.all(np.isfinite(cloud_range)):
            raise ValueError(f"Point cloud contains non-finite valid points: "
                             f"range {cloud_range}")
        if np.any(cloud_range <= 0.0):
            raise ValueError(f"Point cloud boundaries are not set properly: "
                             f"range {cloud_range}")
        size = np.floor(cloud_range / resolution + 0.5).astype(np.int64)
        grid = cls(size, resolution, cloud.min, covariance_limit)
        grid.add(cloud)
        return grid

    def __len__(self):
        return len(self.grids)

    def add(self, data):
        """Add one point, an (N, D) array, or the valid points of a PointCloud."""
        if isinstance(data, PointCloud):
            points = data.valid_points()
        else:
            points = np.atleast_2d(np.asarray(data, dtype=np.float64))
        for grid in self.grids:
            grid.add_points(points)

    def get(self, point) -> list:
        """One DistributionStats (or None for an empty cell) per sub-grid."""
        return [grid.get_distribution(grid.index_of(point)) for grid in self.grids]

    def lookup(self, points: np.ndarray):
        """Gather cell statistics for many points at once.

        Args:
            points: (N, D) world points.

        Returns:
            means: (N, G, D)
            inv_covs: (N, G, D, D)
            valid: (N, G) True where the cell exists, holds at least
                MIN_SAMPLES points and has a positive definite covariance.
        """
        n = len(points)
        G = len(self.grids)
        D = self.dim
        means = np.zeros((n, G, D))
        inv_covs = np.zeros((n, G, D, D))
        valid = np.zeros((n, G), dtype=np.bool_)
        if n == 0:
            return means, inv_covs, valid

        for g, grid in enumerate(self.grids):
            keys = [tuple(row) for row in grid.indices_of(points).tolist()]
            for i, stats in enumerate(grid.get_distributions(keys)):
                if stats is None or stats.n < MIN_SAMPLES or not stats.valid:
                    continue
                means[i, g] = stats.mean
                inv_covs[i, g] = stats.inverse_covariance
                valid[i, g] = True
        return means, inv_covs, valid
