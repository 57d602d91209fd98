"""Data structures shared by the grid, matcher and pipeline."""
import numpy as np
from dataclasses import dataclass, field

from .transform import apply


@dataclass
class PointCloud:
    """Ordered point sequence with a per-point validity mask.

    ``min``/``max`` are the bounds of the valid points; ``range()`` is
    their difference and is what the matcher sizes its grids from.
    """
    points: np.ndarray = None  # (N, D) world coordinates, D in (2, 3)
    mask: np.ndarray = None    # (N,) True = valid

    def __post_init__(self):
        if self.points is None:
            self.points = np.zeros((0, 2))
        self.points = np.asarray(self.points, dtype=np.float64)
        if self.points.ndim != 2 or self.points.shape[1] not in (2, 3):
            raise ValueError(f"points must have shape (N, 2) or (N, 3), "
                             f"got {self.points.shape}")
        if self.mask is None:
            self.mask = np.ones(len(self.points), dtype=bool)
        else:
            self.mask = np.asarray(self.mask, dtype=bool)
            if self.mask.shape != (len(self.points),):
                raise ValueError(f"mask must have shape ({len(self.points)},), "
                                 f"got {self.mask.shape}")

    def __len__(self):
        return len(self.points)

    @property
    def dim(self) -> int:
        return self.points.shape[1]

    def valid_points(self) -> np.ndarray:
        return self.points[self.mask]

    @property
    def min(self) -> np.ndarray:
        valid = self.valid_points()
        if len(valid) == 0:
            return np.zeros(self.dim)
        return valid.min(axis=0)

    @property
    def max(self) -> np.ndarray:
        valid = self.valid_points()
        if len(valid) == 0:
            return np.zeros(self.dim)
        return valid.max(axis=0)

    def range(self) -> np.ndarray:
        return self.max - self.min

    def transformed(self, T: np.ndarray) -> 'PointCloud':
        """Copy of the cloud with every point mapped through T."""
        return PointCloud(points=apply(T, self.points), mask=self.mask.copy())


@dataclass
class MatchResult:
    """Outcome of one MultiGridMatcher.match call."""
    transform: np.ndarray = None   # (D+1, D+1) source -> reference frame
    params: np.ndarray = None      # pose parameters of ``transform``
    score: float = 0.0             # best accepted score
    iterations: int = 0
    converged: bool = False
    damping: float = 0.0           # damping factor at exit
    rejected_steps: int = 0
    score_history: list = field(default_factory=list)
