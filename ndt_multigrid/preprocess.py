"""Scan preprocessing: finite / minimum range filter and voxel downsampling.

All operations are vectorized with NumPy.
"""
import numpy as np

from .downsampler import voxel_grid_downsample
from .types import PointCloud


class Preprocessor:
    """Clean a raw scan before it is used as a matcher source or reference."""

    def __init__(self, min_range: float = 0.0, filter_size: float = 0.0):
        """
        Args:
            min_range: Minimum range in meters. Points closer are removed.
            filter_size: Voxel leaf size for downsampling, 0 keeps all points.
        """
        self.min_range_sqr = min_range * min_range
        self.filter_size = filter_size

    def process(self, points: np.ndarray) -> PointCloud:
        """Filter and downsample one scan given in the sensor frame.

        Args:
            points: (N, D) point coordinates.

        Returns:
            PointCloud of the surviving points (all valid).
        """
        points = np.asarray(points, dtype=np.float64)
        if len(points) == 0:
            return PointCloud(points=points.reshape(0, points.shape[-1]))

        finite_mask = np.all(np.isfinite(points), axis=1)
        r2 = np.sum(np.where(finite_mask[:, np.newaxis], points, 0.0) ** 2, axis=1)
        valid_mask = finite_mask & (r2 >= self.min_range_sqr)

        kept = voxel_grid_downsample(points[valid_mask], self.filter_size)
        return PointCloud(points=kept)
