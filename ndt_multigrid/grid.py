"""Sparse grid of per-cell Gaussian distributions.

Cells live in a dict keyed by integer index tuples and are created on the
first point that falls into them. The index range is fixed at construction:

    min_index = floor(origin_t / resolution)
    max_index = floor((origin_t + extent) / resolution)

and a world point maps to

    index = floor(m_T_w(p) / resolution) + min_index

so cell boundaries follow the grid origin.
"""
import threading
import numpy as np

from .distribution import CovarianceLimit, Distribution
from .transform import apply, invert, se2


class DistributionGrid:
    """Fixed-range sparse grid of Distribution accumulators.

    A single lock per grid serializes cell lookup and insertion. The numeric
    update of an accumulator happens after the grid lock is released and is
    guarded by the accumulator itself.
    """

    def __init__(self, origin: np.ndarray, resolution, height: float,
                 width: float, depth: float = None,
                 covariance_limit: CovarianceLimit = None):
        """
        Args:
            origin: (3, 3) or (4, 4) homogeneous map -> world transform.
            resolution: Cell edge length, scalar or one value per axis.
            height: Extent along y.
            width: Extent along x.
            depth: Extent along z (3-D grids only).
            covariance_limit: Eigenvalue floor policy for every cell,
                None to use raw covariances.
        """
        origin = np.asarray(origin, dtype=np.float64)
        dim = origin.shape[0] - 1
        if origin.shape != (dim + 1, dim + 1) or dim not in (2, 3):
            raise ValueError(f"origin must be a (3, 3) or (4, 4) transform, "
                             f"got {origin.shape}")
        extent = [width, height]
        if dim == 3:
            if depth is None:
                raise ValueError("3-D grid requires a depth")
            extent.append(depth)
        extent = np.asarray(extent, dtype=np.float64)
        if np.any(extent <= 0.0):
            raise ValueError(f"grid extent must be positive, got {extent}")

        resolution = np.broadcast_to(
            np.asarray(resolution, dtype=np.float64), (dim,)).copy()
        if np.any(resolution <= 0.0):
            raise ValueError(f"resolution must be positive, got {resolution}")

        self.dim = dim
        self.covariance_limit = covariance_limit
        self._resolution = resolution
        self._resolution_inv = 1.0 / resolution
        self._extent = extent
        self._w_T_m = origin.copy()
        self._m_T_w = invert(origin)

        origin_t = origin[0:dim, dim]
        self._min_index = tuple(int(v) for v in np.floor(origin_t * self._resolution_inv))
        self._max_index = tuple(int(v) for v in np.floor((origin_t + extent) * self._resolution_inv))
        self._min_index_arr = np.array(self._min_index, dtype=np.int64)
        self._max_index_arr = np.array(self._max_index, dtype=np.int64)

        self._storage = {}  # dict[index tuple] -> Distribution
        self._storage_lock = threading.Lock()

    @classmethod
    def from_pose(cls, origin_x: float, origin_y: float, origin_phi: float,
                  resolution, height: float, width: float,
                  covariance_limit: CovarianceLimit = None) -> 'DistributionGrid':
        """Planar grid from an origin given as x, y, heading."""
        return cls(se2(origin_x, origin_y, origin_phi), resolution, height,
                   width, covariance_limit=covariance_limit)

    # ── metadata ─────────────────────────────────────────────────────

    @property
    def origin(self) -> np.ndarray:
        return self._w_T_m.copy()

    @property
    def resolution(self) -> np.ndarray:
        return self._resolution.copy()

    @property
    def min(self) -> np.ndarray:
        return self._w_T_m[0:self.dim, self.dim].copy()

    @property
    def max(self) -> np.ndarray:
        return self.min + self._extent

    @property
    def min_index(self) -> tuple:
        return self._min_index

    @property
    def max_index(self) -> tuple:
        return self._max_index

    def __len__(self):
        with self._storage_lock:
            return len(self._storage)

    def indices(self) -> list:
        """Snapshot of the populated cell indices."""
        with self._storage_lock:
            return list(self._storage.keys())

    # ── coordinates ──────────────────────────────────────────────────

    def indices_of(self, points: np.ndarray) -> np.ndarray:
        """(N, D) world points to (N, D) int64 cell indices."""
        p_m = apply(self._m_T_w, np.atleast_2d(points))
        return np.floor(p_m * self._resolution_inv).astype(np.int64) + self._min_index_arr

    def index_of(self, point) -> tuple:
        return tuple(int(v) for v in self.indices_of(np.asarray(point, dtype=np.float64))[0])

    def to_world(self, index) -> np.ndarray:
        """World position of a cell's lower corner."""
        offset = (np.asarray(index, dtype=np.float64) - self._min_index_arr) * self._resolution
        return apply(self._w_T_m, offset[np.newaxis, :])[0]

    def contains_index(self, index) -> bool:
        return all(lo <= i <= hi for i, lo, hi in
                   zip(index, self._min_index, self._max_index))

    # ── storage ──────────────────────────────────────────────────────

    def add(self, point):
        """Accumulate a world point into its cell, creating the cell if needed.

        Raises:
            IndexError: if the point lies outside the grid's index range.
        """
        p = np.asarray(point, dtype=np.float64)
        index = self.index_of(p)
        if not self.contains_index(index):
            raise IndexError(f"cell {index} outside grid range "
                             f"[{self._min_index}, {self._max_index}]")
        with self._storage_lock:
            distribution = self._storage.get(index)
            if distribution is None:
                distribution = Distribution(self.dim, self.covariance_limit)
                self._storage[index] = distribution
        distribution.add(p)

    def add_points(self, points: np.ndarray):
        for p in np.atleast_2d(points):
            self.add(p)

    def get_distribution(self, index):
        """DistributionStats of the cell at ``index`` or None. Never inserts."""
        with self._storage_lock:
            distribution = self._storage.get(tuple(index))
        return None if distribution is None else distribution.stats()

    def get_distributions(self, indices) -> list:
        """Batch form of get_distribution, taking the grid lock once."""
        with self._storage_lock:
            found = [self._storage.get(index) for index in indices]
        return [None if d is None else d.stats() for d in found]

    def sample(self, point) -> float:
        """Normalized density at a world point; 0.0 on a miss."""
        stats = self.get_distribution(self.index_of(point))
        return 0.0 if stats is None else stats.sample(point)

    def sample_non_normalized(self, point):
        """Unnormalized density and offset from the cell mean.

        Returns:
            Tuple (s, q). A cell that exists always yields q = point - mean,
            with s = 0.0 while it holds fewer than MIN_SAMPLES points or
            has a singular covariance. A miss (no cell, or outside the
            grid) has no mean to offset from and returns (0.0, None).
        """
        stats = self.get_distribution(self.index_of(point))
        if stats is None:
            return 0.0, None
        return stats.sample_non_normalized(point)

    def is_touched(self, index) -> bool:
        with self._storage_lock:
            distribution = self._storage.get(tuple(index))
        return distribution is not None and distribution.touched

    def clear_touched(self):
        """Reset the touched marker of every cell."""
        with self._storage_lock:
            for distribution in self._storage.values():
                distribution.touched = False
