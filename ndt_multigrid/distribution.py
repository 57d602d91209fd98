"""Per-cell Gaussian statistics.

A Distribution accumulates points with a Welford update of mean and
scatter matrix. Readers never see the live accumulator: ``stats()`` returns
an immutable DistributionStats snapshot that is cached until the next add.
"""
import math
import threading
import numpy as np
from dataclasses import dataclass

from .numba_kernels import gaussian_non_normalized_jit

# Distributions with fewer samples have no usable covariance.
MIN_SAMPLES = 3


@dataclass(frozen=True)
class CovarianceLimit:
    """Eigenvalue floor applied to a covariance before it is inverted.

    Eigenvalues below ``lambda_ratio * max_eigenvalue`` are raised to that
    value, which keeps near-collinear / near-coplanar cells invertible.
    """
    lambda_ratio: float = 0.01

    def __post_init__(self):
        if not 0.0 < self.lambda_ratio <= 1.0:
            raise ValueError(f"lambda_ratio must be in (0, 1], got {self.lambda_ratio}")

    def apply(self, cov: np.ndarray) -> np.ndarray:
        evals, evecs = np.linalg.eigh(cov)
        max_eval = evals.max()
        if max_eval <= 0.0:
            return cov
        evals = np.maximum(evals, self.lambda_ratio * max_eval)
        return evecs @ np.diag(evals) @ evecs.T


@dataclass(frozen=True)
class DistributionStats:
    """Read-only view of a cell's Gaussian at the time it was taken."""
    n: int
    mean: np.ndarray
    covariance: np.ndarray
    inverse_covariance: np.ndarray
    determinant: float

    @property
    def dim(self) -> int:
        return self.mean.shape[0]

    @property
    def valid(self) -> bool:
        """True when the Gaussian can be evaluated."""
        return self.n >= MIN_SAMPLES and self.determinant > 0.0

    def sample_non_normalized(self, point):
        """Unnormalized density at ``point``.

        Returns:
            Tuple (s, q): s = exp(-0.5 q^T Sigma^-1 q) (0.0 when the
            distribution is not valid) and q = point - mean.
        """
        q = np.asarray(point, dtype=np.float64) - self.mean
        if not self.valid:
            return 0.0, q
        return gaussian_non_normalized_jit(q, self.inverse_covariance), q

    def sample(self, point) -> float:
        """Normalized Gaussian density at ``point``; 0.0 when not valid."""
        s, _ = self.sample_non_normalized(point)
        if s == 0.0:
            return 0.0
        norm = math.sqrt((2.0 * math.pi) ** self.dim * self.determinant)
        return s / norm


def _empty_stats(dim: int) -> DistributionStats:
    return DistributionStats(0, np.zeros(dim), np.zeros((dim, dim)),
                             np.zeros((dim, dim)), 0.0)


class Distribution:
    """Running Gaussian statistics of the points added to one cell.

    The numeric update is serialized by the accumulator's own lock, so
    concurrent writers to the same cell do not lose samples.
    """

    __slots__ = ['dim', 'covariance_limit', 'touched',
                 '_n', '_mean', '_scatter', '_stats', '_lock']

    def __init__(self, dim: int, covariance_limit: CovarianceLimit = None):
        self.dim = dim
        self.covariance_limit = covariance_limit
        self.touched = False
        self._n = 0
        self._mean = np.zeros(dim)
        self._scatter = np.zeros((dim, dim))
        self._stats = None
        self._lock = threading.Lock()

    def add(self, point):
        """Add one sample and mark the cell touched."""
        p = np.asarray(point, dtype=np.float64)
        with self._lock:
            self._n += 1
            delta = p - self._mean
            self._mean = self._mean + delta / self._n
            self._scatter = self._scatter + np.outer(delta, p - self._mean)
            self._stats = None
            self.touched = True

    @property
    def n(self) -> int:
        return self._n

    @property
    def mean(self) -> np.ndarray:
        return self.stats().mean

    @property
    def covariance(self) -> np.ndarray:
        return self.stats().covariance

    @property
    def inverse_covariance(self) -> np.ndarray:
        return self.stats().inverse_covariance

    def stats(self) -> DistributionStats:
        """Immutable snapshot; recomputed lazily after each add."""
        with self._lock:
            if self._stats is None:
                self._stats = self._compute_stats()
            return self._stats

    def sample(self, point) -> float:
        return self.stats().sample(point)

    def sample_non_normalized(self, point):
        return self.stats().sample_non_normalized(point)

    def _compute_stats(self) -> DistributionStats:
        n = self._n
        if n == 0:
            return _empty_stats(self.dim)
        mean = self._mean.copy()
        if n < 2:
            cov = np.zeros((self.dim, self.dim))
        else:
            cov = self._scatter / (n - 1)
            cov = 0.5 * (cov + cov.T)
        if self.covariance_limit is not None:
            cov = self.covariance_limit.apply(cov)

        det = float(np.linalg.det(cov))
        inv_cov = np.zeros((self.dim, self.dim))
        if n >= MIN_SAMPLES and det > 0.0:
            try:
                inv_cov = np.linalg.inv(cov)
            except np.linalg.LinAlgError:
                inv_cov = np.linalg.pinv(cov)

        for arr in (mean, cov, inv_cov):
            arr.setflags(write=False)
        return DistributionStats(n, mean, cov, inv_cov, det)
