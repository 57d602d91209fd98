"""Voxel grid downsampling using NumPy."""
import numpy as np


def voxel_grid_downsample(points: np.ndarray, leaf_size: float) -> np.ndarray:
    """Downsample a point cloud using voxel grid filtering.

    For each occupied voxel, the centroid of all points within it is returned.
    A non-positive leaf size returns a copy of the input.

    Args:
        points: (N, D) point coordinates, D in (2, 3).
        leaf_size: Voxel edge length in meters.

    Returns:
        (M, D) downsampled point coordinates (centroids), ordered by voxel.
    """
    if len(points) == 0 or leaf_size <= 0.0:
        return points.copy()

    dim = points.shape[1]
    voxel_idx = np.floor(points / leaf_size).astype(np.int64)

    # Unique rows give one group per voxel
    _, inverse = np.unique(voxel_idx, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    n_voxels = inverse.max() + 1

    centroids = np.zeros((n_voxels, dim))
    counts = np.bincount(inverse, minlength=n_voxels).astype(np.float64)

    for d in range(dim):
        centroids[:, d] = np.bincount(
            inverse, weights=points[:, d], minlength=n_voxels
        ) / counts

    return centroids
