"""Shared synthetic scenes for the test suite."""
import numpy as np
import pytest

from ndt_multigrid.types import PointCloud


def sample_segments(segments, rng, spacing=0.05, noise=0.01):
    """Noisy points along 2-D line segments."""
    points = []
    for a, b in segments:
        a = np.asarray(a, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        n = max(2, int(np.linalg.norm(b - a) / spacing))
        t = np.linspace(0.0, 1.0, n, endpoint=False)[:, np.newaxis]
        points.append(a + t * (b - a))
    points = np.vstack(points)
    return points + rng.normal(scale=noise, size=points.shape)


def sample_box_faces(lo, hi, rng, spacing=0.2, noise=0.01):
    """Noisy points on the six faces of an axis-aligned box."""
    lo = np.asarray(lo, dtype=np.float64)
    hi = np.asarray(hi, dtype=np.float64)
    points = []
    for axis in range(3):
        u, v = [a for a in range(3) if a != axis]
        gu = np.arange(lo[u], hi[u], spacing)
        gv = np.arange(lo[v], hi[v], spacing)
        mu, mv = np.meshgrid(gu, gv, indexing='ij')
        for value in (lo[axis], hi[axis]):
            face = np.zeros((mu.size, 3))
            face[:, u] = mu.ravel()
            face[:, v] = mv.ravel()
            face[:, axis] = value
            points.append(face)
    points = np.vstack(points)
    return points + rng.normal(scale=noise, size=points.shape)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def room_2d(rng):
    """Rectangular room with an off-center L-shaped obstacle."""
    segments = [
        ((-4.0, -3.0), (4.0, -3.0)),
        ((4.0, -3.0), (4.0, 3.0)),
        ((4.0, 3.0), (-4.0, 3.0)),
        ((-4.0, 3.0), (-4.0, -3.0)),
        ((1.0, 0.5), (2.5, 0.5)),
        ((1.0, 0.5), (1.0, 2.0)),
    ]
    return PointCloud(points=sample_segments(segments, rng))


@pytest.fixture
def room_3d(rng):
    """Box room with a box obstacle standing on the floor."""
    walls = sample_box_faces((-3.0, -2.5, 0.0), (3.0, 2.5, 2.5), rng)
    obstacle = sample_box_faces((0.5, 0.5, 0.0), (1.5, 1.7, 1.0), rng)
    return PointCloud(points=np.vstack([walls, obstacle]))
